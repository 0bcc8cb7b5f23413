"""输出分区：按实际落盘体积把文档分配到编号递增的 ``part_<n>`` 目录。"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from md_localizer.core.config import PartitionConfig

LOGGER = logging.getLogger(__name__)


def folder_size(path: Path) -> int:
    """递归统计目录下所有文件的字节数，目录不存在时返回 0。"""

    if not path.exists():
        return 0
    if path.is_file():
        return path.stat().st_size

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += (Path(dirpath) / name).stat().st_size
            except FileNotFoundError:
                continue
    return total


class PartitionAllocator:
    """跟踪当前分区并在文档之间判断是否切换到下一个分区。

    分区大小每次都重新扫描磁盘得到，不维护增量计数；一个文档永远不会被拆到两个分区。
    """

    def __init__(self, output_dir: Path, config: PartitionConfig) -> None:
        self.output_dir = output_dir
        self.config = config
        self.index = 1
        self.last_measured_size = 0
        self.partitions: list[Path] = [self.current_path()]

    def current_path(self) -> Path:
        if not self.config.enabled:
            return self.output_dir
        return self.output_dir / f"{self.config.prefix}{self.index}"

    def on_document_complete(self) -> bool:
        """文档处理完成后刷新分区大小，达到阈值时为下一个文档切换分区。

        返回是否发生了切换。
        """

        current = self.current_path()
        self.last_measured_size = folder_size(current)
        if not self.config.enabled or self.last_measured_size < self.config.threshold:
            return False

        LOGGER.info("分区 %s 已达到 %d 字节，后续文档写入新分区", current.name, self.last_measured_size)
        self.index += 1
        self.last_measured_size = 0
        self.partitions.append(self.current_path())
        return True
