"""加权信号量：单次申请可以占用多个许可。

普通资源占用 1 个许可，超大资源一次性占用全部许可以独占处理能力。
等待队列严格先进先出：队首请求未被满足前，后面的请求即使数量更小也不会被放行。
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from md_localizer.core.exceptions import PermitRequestError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PermitRequest:
    """排队中的许可申请，被放行后即丢弃。"""

    count: int
    future: asyncio.Future


class WeightedSemaphore:
    """基于 asyncio 的加权信号量。

    所有状态只在事件循环线程内修改，``acquire``/``release`` 之间不会交错执行。
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise PermitRequestError(f"信号量容量必须大于 0: {capacity}")
        self._capacity = capacity
        self._available = capacity
        self._waiters: deque[PermitRequest] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        return self._available

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def available_count(self) -> int:
        """当前可用许可数（只读，不阻塞）。"""

        return self._available

    async def acquire(self, count: int = 1) -> None:
        """申请 ``count`` 个许可，不足时排队等待。

        申请数量超过容量永远无法满足，视为调用方缺陷，立即抛出 PermitRequestError。
        """

        self._check_count(count)
        if not self._waiters and self._available >= count:
            self._available -= count
            return

        loop = asyncio.get_running_loop()
        request = PermitRequest(count=count, future=loop.create_future())
        self._waiters.append(request)
        LOGGER.debug("许可不足，进入等待队列: 申请=%d 可用=%d 排队=%d", count, self._available, len(self._waiters))

        try:
            await request.future
        except asyncio.CancelledError:
            if request.future.done() and not request.future.cancelled():
                # 已放行但调用方被取消：归还许可
                self._available += count
            elif request in self._waiters:
                self._waiters.remove(request)
            self._wake_up()
            raise

    def release(self, count: int = 1) -> None:
        """归还 ``count`` 个许可并按 FIFO 顺序唤醒等待者。"""

        if count < 1:
            raise PermitRequestError(f"释放数量必须大于 0: {count}")
        if self._available + count > self._capacity:
            raise PermitRequestError(
                f"释放数量超过已持有的许可: 释放={count} 可用={self._available} 容量={self._capacity}"
            )
        self._available += count
        self._wake_up()

    @asynccontextmanager
    async def hold(self, count: int = 1) -> AsyncIterator[None]:
        """在上下文内持有 ``count`` 个许可。"""

        await self.acquire(count)
        try:
            yield
        finally:
            self.release(count)

    def _wake_up(self) -> None:
        while self._waiters:
            head = self._waiters[0]
            if head.future.done():
                # 已取消的请求由 acquire 负责移除，这里只跳过
                self._waiters.popleft()
                continue
            if head.count > self._available:
                break
            self._waiters.popleft()
            self._available -= head.count
            head.future.set_result(None)

    def _check_count(self, count: int) -> None:
        if count < 1:
            raise PermitRequestError(f"申请数量必须大于 0: {count}")
        if count > self._capacity:
            raise PermitRequestError(f"申请数量超过信号量容量: 申请={count} 容量={self._capacity}")


class PermitLease:
    """记录单个任务实际持有的许可数量。

    ``escalate`` 先归还已持有的许可再整体重新排队，任务在等待期间不持有任何许可，
    两个同时升级的任务不会互相卡死。
    """

    def __init__(self, gate: WeightedSemaphore) -> None:
        self._gate = gate
        self.held = 0

    async def acquire(self, count: int) -> None:
        if self.held:
            raise PermitRequestError(f"租约已持有 {self.held} 个许可，不能重复申请")
        await self._gate.acquire(count)
        self.held = count

    async def escalate(self, count: int) -> None:
        """把持有量提升到 ``count``，已满足时直接返回。"""

        if count <= self.held:
            return
        LOGGER.debug("许可升级: %d -> %d", self.held, count)
        self.release()
        await self.acquire(count)

    def release(self) -> None:
        if self.held:
            held, self.held = self.held, 0
            self._gate.release(held)
