"""运行日志：按文档分组记录每个资源的处理结果。"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from md_localizer.core.models import AssetLogEntry, DocumentOutcome

SEPARATOR = "=" * 60
SUB_SEPARATOR = "-" * 40
UNKNOWN_DOCUMENT = "未知文件"


class RunLog:
    """只追加的资源记录集合，每次批处理构造一个。"""

    def __init__(self) -> None:
        self._entries: list[AssetLogEntry] = []

    def append(self, entry: AssetLogEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[AssetLogEntry, ...]:
        return tuple(self._entries)

    def grouped(self) -> dict[str, list[AssetLogEntry]]:
        """按来源文档分组，保持首次出现的顺序。"""

        groups: dict[str, list[AssetLogEntry]] = {}
        for entry in self._entries:
            groups.setdefault(entry.document_id or UNKNOWN_DOCUMENT, []).append(entry)
        return groups

    def totals(self) -> dict[str, int]:
        return {
            "processed": len(self._entries),
            "succeeded": sum(1 for e in self._entries if e.succeeded),
            "failed": sum(1 for e in self._entries if not e.succeeded),
            "compressed": sum(1 for e in self._entries if e.compressed),
        }


def format_size(size: int) -> str:
    """格式化文件大小为可读字符串。"""

    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def render_run_log(
    run_log: RunLog,
    document_errors: Iterable[DocumentOutcome] = (),
    *,
    generated_at: Optional[datetime] = None,
) -> str:
    generated_at = generated_at or datetime.now()
    lines = [SEPARATOR, "图片处理日志", f"生成时间: {generated_at:%Y-%m-%d %H:%M:%S}", SEPARATOR, ""]

    for document_id, entries in run_log.grouped().items():
        lines.append(f"📄 {document_id}")
        lines.append(SUB_SEPARATOR)
        for entry in entries:
            lines.extend(_render_entry(entry))
            lines.append("")

    errors = list(document_errors)
    if errors:
        lines.append("文档错误")
        lines.append(SUB_SEPARATOR)
        for outcome in errors:
            lines.append(f"  ❌ {outcome.document_id}")
            lines.append(f"     错误: {outcome.message}")
        lines.append("")

    totals = run_log.totals()
    lines.extend(
        [
            SEPARATOR,
            "统计信息",
            SEPARATOR,
            f"总计: {totals['processed']} 张图片",
            f"成功: {totals['succeeded']} 张",
            f"失败: {totals['failed']} 张",
            f"压缩: {totals['compressed']} 张",
        ]
    )
    if errors:
        lines.append(f"文档错误: {len(errors)} 个")
    return "\n".join(lines) + "\n"


def _render_entry(entry: AssetLogEntry) -> list[str]:
    if not entry.succeeded:
        return ["  ❌ 失败", f"     原始: {entry.url}", f"     错误: {entry.error}"]

    if entry.compressed:
        size_info = f"{format_size(entry.original_size)} → {format_size(entry.final_size)} (已压缩)"
    else:
        size_info = format_size(entry.final_size)
    if entry.reused:
        size_info += " (复用)"
    return [f"  ✅ {entry.local_path}", f"     原始: {entry.url}", f"     大小: {size_info}"]


def write_run_log(
    run_log: RunLog,
    output_dir: Path,
    prefix: str,
    document_errors: Iterable[DocumentOutcome] = (),
) -> Path:
    """将运行日志写入输出目录，返回日志路径。"""

    now = datetime.now()
    output_dir.mkdir(parents=True, exist_ok=True)
    log_path = output_dir / f"{prefix}-{now:%Y%m%d-%H%M%S}.txt"
    log_path.write_text(render_run_log(run_log, document_errors, generated_at=now), encoding="utf-8")
    return log_path
