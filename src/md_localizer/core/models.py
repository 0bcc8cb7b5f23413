"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass(slots=True)
class SourceDocument:
    """扫描阶段得到的源文档信息。"""

    source_path: Path
    root: Path
    relative_path: Path

    @property
    def document_id(self) -> str:
        return self.relative_path.as_posix()


@dataclass(slots=True)
class AssetReference:
    """文档中的一处图片引用。

    ``start``/``end`` 是 URL 在原文中的位置；``resolved_path`` 只在文档的全部任务结束后
    由改写阶段写入一次，失败的引用保持为 None。
    """

    document_id: str
    url: str
    start: int
    end: int
    kind: str = "markdown"
    resolved_path: Optional[str] = None


@dataclass(slots=True)
class TransformStage:
    """一次转码阶段的记录。"""

    name: str
    quality: int
    size: int


@dataclass(slots=True)
class TransformOutcome:
    """转码结果。"""

    data: bytes
    extension: str
    stages: list[TransformStage] = field(default_factory=list)

    @property
    def final_size(self) -> int:
        return len(self.data)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]


@dataclass(slots=True, frozen=True)
class AssetLogEntry:
    """单个资源的处理记录，创建后不再修改。"""

    document_id: str
    url: str
    status: str
    local_path: Optional[str] = None
    original_size: int = 0
    final_size: int = 0
    error: Optional[str] = None
    stages: tuple[str, ...] = ()
    reused: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def compressed(self) -> bool:
        return self.succeeded and self.final_size < self.original_size


@dataclass(slots=True)
class DocumentOutcome:
    """记录单个文档的处理结果。"""

    source_path: Path
    document_id: str
    status: str
    output_path: Optional[Path] = None
    partition_index: Optional[int] = None
    message: Optional[str] = None
    assets: list[AssetLogEntry] = field(default_factory=list)

    @property
    def failed_assets(self) -> list[AssetLogEntry]:
        return [entry for entry in self.assets if not entry.succeeded]


@dataclass(slots=True)
class BatchResult:
    """批处理的最终产出。"""

    documents: list[DocumentOutcome]
    output_dir: Path
    partitions: list[Path] = field(default_factory=list)
    log_path: Optional[Path] = None

    @property
    def succeeded(self) -> list[DocumentOutcome]:
        return [doc for doc in self.documents if doc.status == "processed"]

    @property
    def failed(self) -> list[DocumentOutcome]:
        return [doc for doc in self.documents if doc.status != "processed"]

    def all_assets(self) -> list[AssetLogEntry]:
        """返回所有资源记录，方便汇总统计。"""

        return [entry for doc in self.documents for entry in doc.assets]
