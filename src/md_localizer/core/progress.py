"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。

    ``total``/``completed`` 以文档计数，``assets_*`` 描述当前文档内的资源进度。
    """

    total: int
    completed: int
    message: Optional[str] = None
    status: str = "running"
    current_document: Optional[str] = None
    assets_total: int = 0
    assets_completed: int = 0
    partition_index: int = 1
