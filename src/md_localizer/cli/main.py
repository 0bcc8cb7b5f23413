"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from md_localizer.core.config import (
    MB,
    ConcurrencyConfig,
    FetchConfig,
    JobConfig,
    OutputConfig,
    PartitionConfig,
    TranscodeConfig,
    default_output_dir,
)
from md_localizer.core.exceptions import InvalidConfigurationError, ProcessingAborted
from md_localizer.core.models import BatchResult
from md_localizer.core.progress import ProgressUpdate
from md_localizer.processing.pipeline import process_batch
from md_localizer.utils.logging import setup_logging

app = typer.Typer(help="下载 Markdown 文档中的网络图片并改写为本地引用。")

CONFIRM_ANSWERS = {"y", "yes", ""}


def clean_source_input(raw: str) -> str:
    """去掉粘贴路径时常带的首尾空白与引号。"""

    value = raw.strip()
    if value and value[0] in "'\"":
        value = value[1:]
    if value and value[-1] in "'\"":
        value = value[:-1]
    return value.strip()


def is_confirmed(answer: str) -> bool:
    """``y``、``yes`` 与空输入视为确认，其余一律取消。"""

    return answer.strip().lower() in CONFIRM_ANSWERS


def confirm_destination(destination: Path, ask: Callable[[str], str]) -> None:
    """目标目录已存在时询问是否继续，用户拒绝时抛出 ProcessingAborted。"""

    if not destination.exists():
        return
    answer = ask(f"目标目录 [{destination.name}] 已存在，继续操作可能会覆盖同名文件。是否继续? (y/n)")
    if not is_confirmed(answer):
        raise ProcessingAborted("已取消操作")


def _build_progress_callback(progress: Progress):
    documents_task: Optional[int] = None
    assets_task: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal documents_task, assets_task
        if update.total == 0:
            return
        if documents_task is None:
            documents_task = progress.add_task("处理文档", total=update.total)
            assets_task = progress.add_task("下载图片", total=0, visible=False)
        progress.update(documents_task, completed=update.completed)
        if update.assets_total:
            progress.update(
                assets_task,
                total=update.assets_total,
                completed=update.assets_completed,
                description=f"[part_{update.partition_index}] {update.current_document}",
                visible=True,
            )
        elif update.message:
            progress.update(assets_task, visible=False)
            progress.log(update.message)

    return callback


def _ask(prompt: str) -> str:
    return typer.prompt(prompt, default="", show_default=False)


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: Optional[str] = typer.Argument(None, help="Markdown 文件或目录；省略时交互式输入"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出目录，默认 <源路径>_localized"),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="目标目录已存在时不再询问"),
    permits: int = typer.Option(5, "--permits", help="并发许可总数"),
    large_threshold_mb: float = typer.Option(20.0, "--large-threshold-mb", help="超过该体积的图片独占全部许可"),
    max_size_mb: float = typer.Option(10.0, "--max-size-mb", help="单张图片的目标体积上限"),
    max_width: int = typer.Option(2560, "--max-width", help="超限图片缩放后的最大宽度"),
    normalize: bool = typer.Option(True, "--normalize/--no-normalize", help="体积未超限的位图是否也统一转为 WebP"),
    partition: bool = typer.Option(True, "--partition/--no-partition", help="是否按体积拆分 part_<n> 分区"),
    partition_mb: float = typer.Option(50.0, "--partition-mb", help="单个分区的体积阈值"),
    connect_timeout: float = typer.Option(10.0, "--connect-timeout", help="连接/读取超时（秒）"),
    total_timeout: float = typer.Option(60.0, "--timeout", help="单个下载的整体超时（秒）"),
    no_probe: bool = typer.Option(False, "--no-probe", help="不做体积探测，下载后再决定是否独占"),
    workers: int = typer.Option(1, "--workers", "-w", help="转码进程数量，1 表示在线程中执行"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量本地化。"""

    setup_logging(verbose=verbose)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    raw_source = source if source is not None else typer.prompt("请输入或粘贴需要处理的源文件夹路径")
    cleaned = clean_source_input(raw_source)
    if not cleaned:
        typer.secho("错误：路径不能为空！", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    source_path = Path(cleaned).expanduser().resolve()
    output_dir = output.expanduser().resolve() if output else default_output_dir(source_path)

    try:
        if not assume_yes:
            confirm_destination(output_dir, _ask)
    except ProcessingAborted:
        typer.secho("已取消操作，程序退出。", fg=typer.colors.RED)
        raise typer.Exit(code=0)

    job = JobConfig(
        source=source_path,
        output=OutputConfig(output_dir=output_dir),
        fetch=FetchConfig(
            connect_timeout=connect_timeout,
            total_timeout=total_timeout,
            probe_enabled=not no_probe,
        ),
        transcode=TranscodeConfig(
            max_bytes=int(max_size_mb * MB),
            normalize_format=normalize,
            max_width=max_width,
        ),
        concurrency=ConcurrencyConfig(
            permits=permits,
            large_asset_threshold=int(large_threshold_mb * MB),
            transcode_workers=workers,
        ),
        partition=PartitionConfig(enabled=partition, threshold=int(partition_mb * MB)),
    )

    typer.echo(f"▶ 原目录: {source_path}")
    typer.echo(f"▶ 目标目录: {output_dir}")

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
    )

    try:
        with progress:
            result = process_batch(job, progress_callback=_build_progress_callback(progress))
    except InvalidConfigurationError as exc:
        typer.secho(f"错误：{exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    _print_summary(result)


def _print_summary(result: BatchResult) -> None:
    assets = result.all_assets()
    succeeded = sum(1 for entry in assets if entry.succeeded)
    compressed = sum(1 for entry in assets if entry.compressed)
    typer.echo(
        f"处理完成：文档 {len(result.succeeded)} 个成功，{len(result.failed)} 个失败；"
        f"图片 {succeeded} 张成功，{len(assets) - succeeded} 张失败，{compressed} 张已压缩。"
    )
    typer.echo(f"共创建 {len(result.partitions)} 个分区")
    typer.echo(f"结果已保存至: {result.output_dir}")
    if result.log_path:
        typer.echo(f"日志文件：{result.log_path}")


if __name__ == "__main__":
    app()
