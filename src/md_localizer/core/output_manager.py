"""输出写入：文档目标路径、内容寻址的资源文件名与落盘。"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from md_localizer.core.config import OutputConfig
from md_localizer.core.exceptions import AssetWriteError, DocumentReadError, DocumentWriteError
from md_localizer.core.models import SourceDocument

LOGGER = logging.getLogger(__name__)


def content_address(url: str) -> str:
    """由 URL 计算稳定的文件名主体（MD5 十六进制）。"""

    return hashlib.md5(url.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class DocumentTarget:
    """单个文档在输出目录中的位置。"""

    document_path: Path
    asset_dir: Path
    assets_dirname: str

    def relative_asset_path(self, filename: str) -> str:
        """文档中引用资源使用的相对路径。"""

        return f"./{self.assets_dirname}/{filename}"


class OutputManager:
    """负责输出目录、文档读写与资源文件写入。"""

    def __init__(self, config: OutputConfig) -> None:
        self.config = config
        self.output_dir = config.output_dir.resolve()

    def prepare_document(self, source: SourceDocument, partition_path: Path) -> DocumentTarget:
        """在当前分区下镜像源文档的相对路径，并创建资源目录。"""

        document_path = partition_path / source.relative_path
        asset_dir = document_path.parent / self.config.assets_dirname
        try:
            asset_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DocumentWriteError(f"无法创建目标目录: {asset_dir}", source.source_path) from exc
        return DocumentTarget(
            document_path=document_path,
            asset_dir=asset_dir,
            assets_dirname=self.config.assets_dirname,
        )

    def read_document(self, source: SourceDocument) -> str:
        try:
            return source.source_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(f"无法读取源文档: {source.source_path}", source.source_path) from exc

    def write_document(self, source: SourceDocument, target: DocumentTarget, text: str) -> None:
        try:
            target.document_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise DocumentWriteError(f"写入文档失败: {target.document_path}", source.source_path) from exc


def find_existing_asset(asset_dir: Path, digest: str) -> Optional[Path]:
    """查找同一 URL 已经写入过的资源文件（任意扩展名）。"""

    if not asset_dir.is_dir():
        return None
    for candidate in sorted(asset_dir.glob(f"{digest}.*")):
        if candidate.is_file():
            return candidate
    return None


def persist_asset(destination: Path, data: bytes) -> bool:
    """仅当同名文件不存在时写入，返回是否真正写入。

    同一 URL 的并发任务可能同时通过存在性检查，由于内容确定，后写入者覆盖不会造成不一致。
    """

    if destination.exists():
        LOGGER.debug("资源已存在，跳过写入: %s", destination.name)
        return False
    try:
        destination.write_bytes(data)
    except OSError as exc:
        raise AssetWriteError(f"写入文件失败: {destination}") from exc
    return True
