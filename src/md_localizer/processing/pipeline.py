"""处理流水线：按顺序处理文档，文档内的图片并发本地化，并按体积分区输出。"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Callable, Optional

import httpx

from md_localizer.core.config import JobConfig, validate_config
from md_localizer.core.exceptions import DocumentProcessingError, PermitRequestError
from md_localizer.core.models import AssetLogEntry, BatchResult, DocumentOutcome, SourceDocument
from md_localizer.core.output_manager import OutputManager
from md_localizer.core.partition import PartitionAllocator
from md_localizer.core.progress import ProgressUpdate
from md_localizer.core.report import RunLog, write_run_log
from md_localizer.core.scanner import collect_documents
from md_localizer.core.semaphore import WeightedSemaphore
from md_localizer.processing.document import MarkdownDocument
from md_localizer.processing.fetcher import build_client
from md_localizer.processing.worker import FetchTask, TaskContext, failed_entry, run_task

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def process_batch(
    config: JobConfig,
    progress_callback: ProgressCallback = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BatchResult:
    """同步入口，供命令行与测试调用。"""

    return asyncio.run(run_batch(config, progress_callback, transport=transport))


async def run_batch(
    config: JobConfig,
    progress_callback: ProgressCallback = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BatchResult:
    """批量处理入口：扫描、逐个文档本地化图片、分区输出并写入运行日志。"""

    validate_config(config)

    LOGGER.info("开始扫描输入路径: %s", config.source)
    documents = collect_documents(config)
    total = len(documents)
    LOGGER.info("发现 %d 个 Markdown 文档", total)

    output_manager = OutputManager(config.output)
    allocator = PartitionAllocator(output_manager.output_dir, config.partition)
    run_log = RunLog()
    outcomes: list[DocumentOutcome] = []

    workers = config.concurrency.transcode_workers
    executor = ProcessPoolExecutor(max_workers=workers) if workers > 1 else None

    try:
        async with build_client(config.fetch, transport) as client:
            context = TaskContext(
                config=config,
                gate=WeightedSemaphore(config.concurrency.permits),
                client=client,
                run_log=run_log,
                executor=executor,
            )
            for completed, document in enumerate(documents):
                _emit_progress(
                    progress_callback, completed, total, f"开始 {document.document_id}", allocator, document
                )
                try:
                    outcome = await _process_document(
                        document, context, output_manager, allocator, progress_callback, completed, total
                    )
                except DocumentProcessingError as exc:
                    LOGGER.error("文档处理失败 %s: %s", document.document_id, exc)
                    outcome = DocumentOutcome(
                        source_path=document.source_path,
                        document_id=document.document_id,
                        status="error-document",
                        partition_index=allocator.index,
                        message=str(exc),
                    )
                outcomes.append(outcome)
                allocator.on_document_complete()
                _emit_progress(
                    progress_callback, completed + 1, total, f"完成 {document.document_id}", allocator, document
                )
    finally:
        if executor is not None:
            executor.shutdown()

    result = BatchResult(
        documents=outcomes,
        output_dir=output_manager.output_dir,
        partitions=[path for path in allocator.partitions if path.exists()],
    )
    _write_log(config, output_manager, run_log, result)
    _emit_progress(progress_callback, total, total, "处理完成", allocator, None, status="finished")
    return result


async def _process_document(
    document: SourceDocument,
    context: TaskContext,
    output_manager: OutputManager,
    allocator: PartitionAllocator,
    progress_callback: ProgressCallback,
    completed: int,
    total: int,
) -> DocumentOutcome:
    text = output_manager.read_document(document)
    parsed = MarkdownDocument.parse(text, document.document_id)
    target = output_manager.prepare_document(document, allocator.current_path())
    references = parsed.remote_references()

    settled = 0

    def on_settled(entry: AssetLogEntry) -> None:
        nonlocal settled
        settled += 1
        _emit_progress(
            progress_callback,
            completed,
            total,
            None,
            allocator,
            document,
            assets_total=len(references),
            assets_completed=settled,
        )

    context.on_settled = on_settled
    tasks = [FetchTask(reference=reference, target=target) for reference in references]
    results = await asyncio.gather(*(run_task(task, context) for task in tasks), return_exceptions=True)
    context.on_settled = None

    entries: list[AssetLogEntry] = []
    for task, result in zip(tasks, results):
        if isinstance(result, PermitRequestError) or not isinstance(result, (Exception, AssetLogEntry)):
            raise result
        if isinstance(result, Exception):
            LOGGER.error("任务执行异常：%s", task.reference.url, exc_info=result)
            result = failed_entry(task.reference, f"{result.__class__.__name__}: {result}")
            context.run_log.append(result)
            on_settled(result)
        entries.append(result)
        if result.succeeded:
            task.reference.resolved_path = result.local_path

    output_manager.write_document(document, target, parsed.serialize())
    LOGGER.info(
        "文档 %s 已本地化：成功 %d，失败 %d",
        document.document_id,
        sum(1 for entry in entries if entry.succeeded),
        sum(1 for entry in entries if not entry.succeeded),
    )
    return DocumentOutcome(
        source_path=document.source_path,
        document_id=document.document_id,
        status="processed",
        output_path=target.document_path,
        partition_index=allocator.index,
        assets=entries,
    )


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str],
    allocator: PartitionAllocator,
    document: Optional[SourceDocument],
    *,
    status: str = "running",
    assets_total: int = 0,
    assets_completed: int = 0,
) -> None:
    if not callback:
        return
    callback(
        ProgressUpdate(
            total=total,
            completed=completed,
            message=message,
            status=status,
            current_document=document.document_id if document else None,
            assets_total=assets_total,
            assets_completed=assets_completed,
            partition_index=allocator.index,
        )
    )


def _write_log(config: JobConfig, output_manager: OutputManager, run_log: RunLog, result: BatchResult) -> None:
    try:
        result.log_path = write_run_log(
            run_log, output_manager.output_dir, config.output.log_prefix, result.failed
        )
    except OSError as exc:
        LOGGER.error("写入运行日志失败：%s", exc)
