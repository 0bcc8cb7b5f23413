"""单个图片引用的处理单元：探测、申请许可、下载、转码、落盘、释放、记录。"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from md_localizer.core.config import JobConfig
from md_localizer.core.exceptions import AssetError
from md_localizer.core.models import STATUS_FAILED, STATUS_SUCCESS, AssetLogEntry, AssetReference
from md_localizer.core.output_manager import DocumentTarget, content_address, find_existing_asset, persist_asset
from md_localizer.core.report import RunLog
from md_localizer.core.semaphore import PermitLease, WeightedSemaphore
from md_localizer.processing.fetcher import estimate_weight, fetch_asset, probe_asset, resolve_extension
from md_localizer.processing.transcoder import transcode_asset

LOGGER = logging.getLogger(__name__)

SettledCallback = Optional[Callable[[AssetLogEntry], None]]


@dataclass(slots=True)
class TaskContext:
    """一次批处理内所有任务共享的对象，随批处理创建，不使用全局单例。"""

    config: JobConfig
    gate: WeightedSemaphore
    client: httpx.AsyncClient
    run_log: RunLog
    executor: Optional[Executor] = None
    on_settled: SettledCallback = None


@dataclass(slots=True)
class FetchTask:
    """描述单个图片引用的处理任务。"""

    reference: AssetReference
    target: DocumentTarget

    @property
    def asset_dir(self) -> Path:
        return self.target.asset_dir


async def run_task(task: FetchTask, context: TaskContext) -> AssetLogEntry:
    """执行完整的本地化流程，资源级错误转换为失败记录而不是抛出。"""

    url = task.reference.url
    digest = content_address(url)

    existing = find_existing_asset(task.asset_dir, digest)
    if existing is not None:
        size = existing.stat().st_size
        entry = AssetLogEntry(
            document_id=task.reference.document_id,
            url=url,
            status=STATUS_SUCCESS,
            local_path=task.target.relative_asset_path(existing.name),
            original_size=size,
            final_size=size,
            reused=True,
        )
        return _settle(entry, context)

    capacity = context.gate.capacity
    threshold = context.config.concurrency.large_asset_threshold
    weight = 1
    if context.config.fetch.probe_enabled:
        probe = await probe_asset(context.client, url, context.config.fetch)
        weight = estimate_weight(probe, capacity, threshold)
        if weight > 1:
            LOGGER.info("大图独占全部许可 (%d): %s", weight, url)

    lease = PermitLease(context.gate)
    try:
        await lease.acquire(weight)
        fetched = await fetch_asset(context.client, url, context.config.fetch)

        if fetched.size > threshold and lease.held < capacity:
            # 探测未给出体积，下载后才发现是大图
            LOGGER.info("下载后发现大图 (%d 字节)，升级为独占: %s", fetched.size, url)
            await lease.escalate(capacity)

        extension = resolve_extension(fetched.content_type, url)
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(
            context.executor, transcode_asset, fetched.content, extension, context.config.transcode
        )

        filename = f"{digest}{outcome.extension}"
        persist_asset(task.asset_dir / filename, outcome.data)
        entry = AssetLogEntry(
            document_id=task.reference.document_id,
            url=url,
            status=STATUS_SUCCESS,
            local_path=task.target.relative_asset_path(filename),
            original_size=fetched.size,
            final_size=outcome.final_size,
            stages=tuple(outcome.stage_names),
        )
    except AssetError as exc:
        LOGGER.warning("资源处理失败 %s: %s", url, exc)
        entry = failed_entry(task.reference, str(exc))
    finally:
        lease.release()

    return _settle(entry, context)


def failed_entry(reference: AssetReference, message: str) -> AssetLogEntry:
    return AssetLogEntry(document_id=reference.document_id, url=reference.url, status=STATUS_FAILED, error=message)


def _settle(entry: AssetLogEntry, context: TaskContext) -> AssetLogEntry:
    context.run_log.append(entry)
    if context.on_settled:
        context.on_settled(entry)
    return entry
