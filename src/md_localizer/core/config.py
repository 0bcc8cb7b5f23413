"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from md_localizer.core.exceptions import InvalidConfigurationError

MB = 1024 * 1024


@dataclass(slots=True)
class FetchConfig:
    """网络请求相关配置。"""

    connect_timeout: float = 10.0
    total_timeout: float = 60.0
    probe_enabled: bool = True
    follow_redirects: bool = True
    user_agent: str = "md-localizer/0.1"


@dataclass(slots=True)
class TranscodeConfig:
    """转码策略：体积上限与各阶段的 WebP 质量参数。"""

    max_bytes: int = 10 * MB
    normalize_format: bool = True
    normal_quality: int = 90
    first_pass_quality: int = 80
    resize_quality: int = 75
    requantize_quality: int = 60
    max_width: int = 2560
    webp_method: int = 4


@dataclass(slots=True)
class ConcurrencyConfig:
    """并发许可配置。"""

    permits: int = 5
    large_asset_threshold: int = 20 * MB
    transcode_workers: int = 1


@dataclass(slots=True)
class PartitionConfig:
    """输出分区配置。"""

    enabled: bool = True
    threshold: int = 50 * MB
    prefix: str = "part_"


@dataclass(slots=True)
class OutputConfig:
    """输出目录配置。"""

    output_dir: Path
    assets_dirname: str = "assets"
    log_prefix: str = "image-log"


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    source: Path
    output: OutputConfig
    fetch: FetchConfig = field(default_factory=FetchConfig)
    transcode: TranscodeConfig = field(default_factory=TranscodeConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    partition: PartitionConfig = field(default_factory=PartitionConfig)
    include_patterns: Sequence[str] = field(default_factory=lambda: ("*.md",))
    exclude_patterns: Sequence[str] = field(default_factory=tuple)


def default_output_dir(source: Path) -> Path:
    """目录输入输出到同级的 ``<name>_localized``，单文件输入以文件名（去扩展名）命名。"""

    if source.is_file():
        return source.parent / f"{source.stem}_localized"
    return source.parent / f"{source.name}_localized"


def validate_config(config: JobConfig) -> None:
    """检查配置取值，发现问题时抛出 InvalidConfigurationError。"""

    if config.concurrency.permits < 1:
        raise InvalidConfigurationError("并发许可数必须大于 0")
    if config.concurrency.large_asset_threshold <= 0:
        raise InvalidConfigurationError("大图阈值必须大于 0")
    if config.partition.threshold <= 0:
        raise InvalidConfigurationError("分区阈值必须大于 0")
    if config.transcode.max_bytes <= 0:
        raise InvalidConfigurationError("体积上限必须大于 0")
    if config.transcode.max_width <= 0:
        raise InvalidConfigurationError("最大宽度必须大于 0")
    if config.fetch.connect_timeout <= 0 or config.fetch.total_timeout <= 0:
        raise InvalidConfigurationError("超时时间必须大于 0")

    transcode = config.transcode
    for name in ("normal_quality", "first_pass_quality", "resize_quality", "requantize_quality"):
        value = getattr(transcode, name)
        if not 1 <= value <= 100:
            raise InvalidConfigurationError(f"{name} 必须位于 1~100 之间: {value}")
    if not 0 <= transcode.webp_method <= 6:
        raise InvalidConfigurationError(f"webp_method 必须位于 0~6 之间: {transcode.webp_method}")
