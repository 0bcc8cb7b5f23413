"""单个资源任务：许可权重、升级、失败记录与内容寻址复用。"""

from __future__ import annotations

import asyncio
import hashlib
import io
from pathlib import Path

import httpx
from PIL import Image

from md_localizer.core.config import ConcurrencyConfig, FetchConfig, JobConfig, OutputConfig
from md_localizer.core.models import AssetReference
from md_localizer.core.output_manager import DocumentTarget
from md_localizer.core.report import RunLog
from md_localizer.core.semaphore import WeightedSemaphore
from md_localizer.processing.fetcher import build_client
from md_localizer.processing.worker import FetchTask, TaskContext, run_task

URL = "https://img.example.com/photo.png"


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (48, 48), "purple").save(buffer, format="PNG")
    return buffer.getvalue()


def _make_config(tmp_path: Path, *, threshold: int, probe: bool = True) -> JobConfig:
    return JobConfig(
        source=tmp_path,
        output=OutputConfig(output_dir=tmp_path / "out"),
        fetch=FetchConfig(probe_enabled=probe),
        concurrency=ConcurrencyConfig(permits=5, large_asset_threshold=threshold),
    )


def _run_single(tmp_path: Path, config: JobConfig, handler, gate: WeightedSemaphore):
    target = DocumentTarget(
        document_path=tmp_path / "doc.md",
        asset_dir=tmp_path / "assets",
        assets_dirname="assets",
    )
    target.asset_dir.mkdir(exist_ok=True)
    run_log = RunLog()

    async def scenario():
        async with build_client(config.fetch, httpx.MockTransport(handler)) as client:
            context = TaskContext(config=config, gate=gate, client=client, run_log=run_log)
            reference = AssetReference("doc.md", URL, 0, len(URL))
            return await run_task(FetchTask(reference=reference, target=target), context)

    return asyncio.run(scenario()), run_log, target


def _image_handler(body: bytes, gate: WeightedSemaphore, observed: list[int]):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            return httpx.Response(200, headers={"Content-Type": "image/png", "Content-Length": str(len(body))})
        observed.append(gate.available)
        return httpx.Response(200, headers={"Content-Type": "image/png"}, content=body)

    return handler


def test_small_asset_takes_single_permit(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)
    observed: list[int] = []
    config = _make_config(tmp_path, threshold=10 * 1024 * 1024)

    entry, run_log, target = _run_single(tmp_path, config, _image_handler(_png_bytes(), gate, observed), gate)

    digest = hashlib.md5(URL.encode("utf-8")).hexdigest()
    assert observed == [4]
    assert entry.succeeded
    assert entry.local_path == f"./assets/{digest}.webp"
    assert entry.stages == ("webp-convert",)
    assert (target.asset_dir / f"{digest}.webp").exists()
    assert run_log.entries == (entry,)
    assert gate.available == 5


def test_large_asset_monopolizes_gate(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)
    observed: list[int] = []
    config = _make_config(tmp_path, threshold=10)

    entry, _run_log, _target = _run_single(tmp_path, config, _image_handler(_png_bytes(), gate, observed), gate)

    assert observed == [0]
    assert entry.succeeded
    assert gate.available == 5


def test_unprobed_large_asset_escalates_and_releases_everything(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)
    observed: list[int] = []
    config = _make_config(tmp_path, threshold=10, probe=False)

    entry, _run_log, _target = _run_single(tmp_path, config, _image_handler(_png_bytes(), gate, observed), gate)

    assert observed == [4]
    assert entry.succeeded
    assert gate.available == 5


def test_failed_download_is_logged_and_releases_permits(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    entry, run_log, target = _run_single(tmp_path, _make_config(tmp_path, threshold=100), handler, gate)

    assert not entry.succeeded
    assert entry.local_path is None
    assert "404" in (entry.error or "")
    assert run_log.entries == (entry,)
    assert list(target.asset_dir.iterdir()) == []
    assert gate.available == 5


def test_undecodable_body_is_a_failure(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Type": "image/png"}, content=b"<html>not found</html>")

    entry, _run_log, _target = _run_single(tmp_path, _make_config(tmp_path, threshold=100), handler, gate)

    assert not entry.succeeded
    assert gate.available == 5


def test_existing_asset_is_reused_without_network(tmp_path: Path) -> None:
    gate = WeightedSemaphore(5)
    digest = hashlib.md5(URL.encode("utf-8")).hexdigest()
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / f"{digest}.webp").write_bytes(b"cached")
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(500)

    entry, _run_log, _target = _run_single(tmp_path, _make_config(tmp_path, threshold=100), handler, gate)

    assert calls == []
    assert entry.succeeded and entry.reused
    assert entry.local_path == f"./assets/{digest}.webp"
    assert entry.final_size == 6
