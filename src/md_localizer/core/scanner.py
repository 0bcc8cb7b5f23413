"""文档扫描与筛选逻辑。"""

from __future__ import annotations

import re
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, Sequence

from md_localizer.core.config import JobConfig
from md_localizer.core.exceptions import InvalidConfigurationError
from md_localizer.core.models import SourceDocument

_DIGITS_RE = re.compile(r"(\d+)")


def natural_sort_key(name: str) -> tuple:
    """自然排序键：数字片段按数值比较，"2" 排在 "10" 之前。"""

    parts = _DIGITS_RE.split(name)
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part.casefold()) for part in parts if part)


def _iter_candidate_files(directory: Path) -> Iterator[Path]:
    """深度优先遍历目录，每一层的条目都按自然顺序排列。"""

    for child in sorted(directory.iterdir(), key=lambda p: natural_sort_key(p.name)):
        if child.is_dir():
            yield from _iter_candidate_files(child)
        elif child.is_file():
            yield child


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch(lowered, pattern.lower()) for pattern in patterns)


def collect_documents(config: JobConfig) -> list[SourceDocument]:
    """根据配置扫描源路径，返回按自然顺序排列的文档列表。"""

    include_patterns = config.include_patterns or ("*.md",)
    exclude_patterns = config.exclude_patterns or ()
    source = config.source.resolve()

    if source.is_file():
        if not _matches_any(source.name, include_patterns):
            raise InvalidConfigurationError(f"所选文件不是 Markdown 格式: {source}")
        return [SourceDocument(source_path=source, root=source.parent, relative_path=Path(source.name))]

    if not source.is_dir():
        raise InvalidConfigurationError(f"源路径不存在: {source}")

    collected: list[SourceDocument] = []
    for candidate in _iter_candidate_files(source):
        name = candidate.name
        if not _matches_any(name, include_patterns):
            continue
        if exclude_patterns and _matches_any(name, exclude_patterns):
            continue
        collected.append(
            SourceDocument(
                source_path=candidate,
                root=source,
                relative_path=candidate.relative_to(source),
            )
        )
    return collected
