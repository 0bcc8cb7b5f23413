"""Markdown 文档模型：定位图片引用并在改写后原样序列化。"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from md_localizer.core.models import AssetReference
from md_localizer.processing.fetcher import is_remote_url

# ![alt](url "title") 与 ![alt](<url with spaces>)
MARKDOWN_IMAGE_RE = re.compile(
    r"!\[(?:\\.|[^\]\\])*\]\(\s*(?:<(?P<angle>[^>\n]+)>|(?P<url>(?:[^\s()]|\([^\s()]*\))+))(?:\s+(?:\"[^\"]*\"|'[^']*'|\([^)]*\)))?\s*\)"
)
HTML_IMAGE_RE = re.compile(
    r"<img\b[^>]*?\bsrc\s*=\s*(?P<quote>[\"'])(?P<url>[^\"']*)(?P=quote)",
    re.IGNORECASE,
)
FENCED_CODE_RE = re.compile(
    r"^[ ]{0,3}(?P<fence>`{3,}|~{3,})[^\n]*\n(?:.*?^[ ]{0,3}(?P=fence)[ \t]*$|.*\Z)",
    re.MULTILINE | re.DOTALL,
)
INLINE_CODE_RE = re.compile(r"(?<!`)(?P<ticks>`+)(?!`).+?(?<!`)(?P=ticks)(?!`)")
INDENT_RE = re.compile(r"(?:[ ]{4}|[ ]{0,3}\t)")
LIST_ITEM_RE = re.compile(r"^[ ]{0,3}(?:[-*+]|\d{1,9}[.)])(?:[ \t]|$)")


@dataclass(slots=True)
class MarkdownDocument:
    """解析后的文档：原文与其中的全部图片引用。"""

    document_id: str
    text: str
    references: list[AssetReference] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str, document_id: str) -> "MarkdownDocument":
        masked = _code_spans(text)
        references: list[AssetReference] = []

        for match in MARKDOWN_IMAGE_RE.finditer(text):
            group = "angle" if match.group("angle") is not None else "url"
            start, end = match.span(group)
            if _is_masked(start, masked):
                continue
            references.append(AssetReference(document_id, match.group(group), start, end, kind="markdown"))

        for match in HTML_IMAGE_RE.finditer(text):
            start, end = match.span("url")
            if _is_masked(start, masked):
                continue
            references.append(AssetReference(document_id, match.group("url"), start, end, kind="html"))

        references.sort(key=lambda ref: ref.start)
        return cls(document_id=document_id, text=text, references=references)

    def remote_references(self) -> list[AssetReference]:
        """需要本地化的网络图片引用，按出现顺序排列。"""

        return [ref for ref in self.references if is_remote_url(ref.url)]

    def serialize(self) -> str:
        """输出改写后的文本：已解析的引用替换为本地路径，其余内容保持不变。"""

        parts: list[str] = []
        cursor = 0
        for ref in self.references:
            if ref.resolved_path is None:
                continue
            parts.append(self.text[cursor : ref.start])
            parts.append(ref.resolved_path)
            cursor = ref.end
        parts.append(self.text[cursor:])
        return "".join(parts)


def _code_spans(text: str) -> list[tuple[int, int]]:
    spans = [match.span() for match in FENCED_CODE_RE.finditer(text)]
    spans.extend(_indented_code_spans(text, spans))
    for match in INLINE_CODE_RE.finditer(text):
        if not _is_masked(match.start(), spans):
            spans.append(match.span())
    return spans


def _indented_code_spans(text: str, fenced: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """缩进代码块：空行之后缩进 4 个空格或制表符的连续行，列表项的续行除外。"""

    spans: list[tuple[int, int]] = []
    block_start: int | None = None
    previous_blank = True
    in_list = False
    offset = 0
    for line in text.splitlines(keepends=True):
        start, offset = offset, offset + len(line)
        blank = not line.strip()
        indented = INDENT_RE.match(line) is not None
        fenced_line = _is_masked(start, fenced)
        if block_start is not None and (fenced_line or not (blank or indented)):
            spans.append((block_start, start))
            block_start = None
        if block_start is None and not fenced_line and indented and not blank and previous_blank and not in_list:
            block_start = start
        if not blank and not indented:
            in_list = LIST_ITEM_RE.match(line) is not None
        previous_blank = blank
    if block_start is not None:
        spans.append((block_start, len(text)))
    return spans


def _is_masked(position: int, spans: list[tuple[int, int]]) -> bool:
    return any(start <= position < end for start, end in spans)
