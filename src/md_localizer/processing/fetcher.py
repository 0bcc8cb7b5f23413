"""网络访问：体积探测、下载与扩展名推断。"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlsplit

import httpx

from md_localizer.core.config import FetchConfig
from md_localizer.core.exceptions import AssetFetchError

LOGGER = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
}
EXTENSION_ALIASES = {".jpeg": ".jpg"}
KNOWN_EXTENSIONS = set(MIME_EXTENSIONS.values())
DEFAULT_EXTENSION = ".png"


@dataclass(slots=True)
class ProbeResult:
    """只取响应头的探测结果。"""

    status: int
    content_type: Optional[str]
    content_length: Optional[int]


@dataclass(slots=True)
class FetchedAsset:
    """下载得到的原始资源。"""

    url: str
    content: bytes
    content_type: Optional[str]

    @property
    def size(self) -> int:
        return len(self.content)


def build_client(config: FetchConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """创建批处理共用的异步客户端：连接/读写超时独立于整体超时，连接池等待不设超时。"""

    timeout = httpx.Timeout(config.connect_timeout, pool=None)
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
        transport=transport,
    )


def is_remote_url(url: str) -> bool:
    return url.lower().startswith(("http://", "https://"))


async def probe_asset(client: httpx.AsyncClient, url: str, config: FetchConfig) -> Optional[ProbeResult]:
    """探测资源声明的大小。

    先尝试 HEAD；服务器拒绝 HEAD 或未给出长度时改用 ``Range: bytes=0-0`` 的 GET。
    探测失败返回 None，不抛出异常。
    """

    try:
        return await asyncio.wait_for(_probe(client, url), timeout=config.total_timeout)
    except (httpx.HTTPError, asyncio.TimeoutError) as exc:
        LOGGER.debug("体积探测失败 %s: %s", url, exc)
        return None


async def _probe(client: httpx.AsyncClient, url: str) -> Optional[ProbeResult]:
    response = await client.head(url)
    if response.is_success:
        result = _extract_probe_result(response)
        if result.content_length is not None:
            return result

    async with client.stream("GET", url, headers={"Range": "bytes=0-0"}) as ranged:
        if ranged.status_code not in (200, 206):
            return None
        return _extract_probe_result(ranged)


def _extract_probe_result(response: httpx.Response) -> ProbeResult:
    content_length: Optional[int] = None

    if response.status_code == 206:
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        if total.isdigit():
            content_length = int(total)
    elif response.status_code == 200:
        header = response.headers.get("Content-Length", "")
        if header.isdigit():
            content_length = int(header)

    return ProbeResult(
        status=response.status_code,
        content_type=response.headers.get("Content-Type"),
        content_length=content_length,
    )


def estimate_weight(probe: Optional[ProbeResult], capacity: int, large_threshold: int) -> int:
    """声明体积超过大图阈值时独占全部许可，否则（包括探测失败）只占 1 个。"""

    if probe is None or probe.content_length is None:
        return 1
    if probe.content_length > large_threshold:
        return capacity
    return 1


async def fetch_asset(client: httpx.AsyncClient, url: str, config: FetchConfig) -> FetchedAsset:
    """下载资源；整体超时会中止传输。所有网络问题都转换为 AssetFetchError。"""

    try:
        response = await asyncio.wait_for(client.get(url), timeout=config.total_timeout)
        response.raise_for_status()
    except asyncio.TimeoutError as exc:
        raise AssetFetchError(f"下载超时 ({config.total_timeout:g}s)") from exc
    except httpx.TimeoutException as exc:
        raise AssetFetchError(f"连接或读取超时: {exc.__class__.__name__}") from exc
    except httpx.HTTPStatusError as exc:
        raise AssetFetchError(f"HTTP {exc.response.status_code}: {exc.response.reason_phrase}") from exc
    except httpx.HTTPError as exc:
        raise AssetFetchError(f"请求失败: {exc.__class__.__name__}: {exc}") from exc

    return FetchedAsset(url=url, content=response.content, content_type=response.headers.get("Content-Type"))


def resolve_extension(content_type: Optional[str], url: str) -> str:
    """根据 Content-Type 推断扩展名；无法识别时使用 URL 的扩展名，仍无结果则用 ``.png``。"""

    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in MIME_EXTENSIONS:
            return MIME_EXTENSIONS[mime]

    suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
    suffix = EXTENSION_ALIASES.get(suffix, suffix)
    if suffix in KNOWN_EXTENSIONS:
        return suffix
    return DEFAULT_EXTENSION
