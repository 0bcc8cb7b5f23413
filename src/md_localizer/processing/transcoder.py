"""资源转码：位图统一转为 WebP，超过体积上限时分阶段压缩。

阶段依次为：
1. ``webp-convert``：原图以较高质量编码；
2. ``resize``：对 *原始解码结果* 限制最大宽度后重新编码（不放大）；
3. ``requantize``：对第 2 阶段的输出再以更低质量编码，无论是否达标都接受结果。

动图在每个阶段都保留全部帧、帧时长与循环次数。
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, ImageSequence, UnidentifiedImageError

from md_localizer.core.config import TranscodeConfig
from md_localizer.core.exceptions import TranscodeError
from md_localizer.core.models import TransformOutcome, TransformStage

LOGGER = logging.getLogger(__name__)

TARGET_FORMAT = "WEBP"
TARGET_EXTENSION = ".webp"
VECTOR_EXTENSIONS = {".svg"}

FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "GIF": ".gif",
    "WEBP": ".webp",
    "BMP": ".bmp",
}

DEFAULT_FRAME_DURATION = 100


@dataclass(slots=True)
class _Frames:
    """解码后的帧序列。"""

    frames: list[Image.Image]
    durations: list[int]
    loop: int

    @property
    def width(self) -> int:
        return self.frames[0].width

    @property
    def animated(self) -> bool:
        return len(self.frames) > 1

    def close(self) -> None:
        for frame in self.frames:
            frame.close()


def transcode_asset(data: bytes, extension: str, policy: TranscodeConfig) -> TransformOutcome:
    """根据转码策略处理资源字节，返回最终字节、扩展名与实际执行的阶段。"""

    if extension.lower() in VECTOR_EXTENSIONS or looks_like_svg(data):
        return TransformOutcome(data=data, extension=".svg")

    if len(data) <= policy.max_bytes:
        if not policy.normalize_format:
            return TransformOutcome(data=data, extension=extension)
        source_format = _sniff_format(data)
        if source_format == TARGET_FORMAT:
            return TransformOutcome(data=data, extension=TARGET_EXTENSION)

        source = _decode(data)
        try:
            encoded = _encode_webp(source, policy.normal_quality, policy.webp_method)
        except TranscodeError as exc:
            # 未超限的图片转换失败时保留原始字节
            LOGGER.warning("WebP 转换失败，保留原图: %s", exc)
            return TransformOutcome(data=data, extension=extension)
        finally:
            source.close()
        return TransformOutcome(
            data=encoded,
            extension=TARGET_EXTENSION,
            stages=[TransformStage("webp-convert", policy.normal_quality, len(encoded))],
        )

    return _degrade(data, policy)


def _degrade(data: bytes, policy: TranscodeConfig) -> TransformOutcome:
    LOGGER.info("处理大图 (%.2fMB)", len(data) / (1024 * 1024))
    stages: list[TransformStage] = []
    source = _decode(data)
    try:
        current = _encode_webp(source, policy.first_pass_quality, policy.webp_method)
        stages.append(TransformStage("webp-convert", policy.first_pass_quality, len(current)))

        if len(current) > policy.max_bytes:
            LOGGER.info("WebP 转换后仍超标，开始缩小分辨率")
            resized = _resize(source, policy.max_width)
            try:
                current = _encode_webp(resized, policy.resize_quality, policy.webp_method)
            finally:
                if resized is not source:
                    resized.close()
            stages.append(TransformStage("resize", policy.resize_quality, len(current)))
    finally:
        source.close()

    if len(current) > policy.max_bytes:
        LOGGER.info("极端大图，进行强力质量压缩")
        resized_output = _decode(current)
        try:
            current = _encode_webp(resized_output, policy.requantize_quality, policy.webp_method)
        finally:
            resized_output.close()
        stages.append(TransformStage("requantize", policy.requantize_quality, len(current)))

    if len(current) > policy.max_bytes:
        LOGGER.warning("压缩后仍超过上限: %.2fMB", len(current) / (1024 * 1024))
    else:
        LOGGER.info("压缩完成: %.2fMB", len(current) / (1024 * 1024))
    return TransformOutcome(data=current, extension=TARGET_EXTENSION, stages=stages)


def looks_like_svg(data: bytes) -> bool:
    head = data[:1024].lstrip().lower()
    if head.startswith(b"<svg"):
        return True
    return head.startswith(b"<?xml") and b"<svg" in head


def _sniff_format(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.format or ""
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise TranscodeError(f"无法识别图像数据: {exc}") from exc


def _decode(data: bytes) -> _Frames:
    try:
        with Image.open(io.BytesIO(data)) as img:
            loop = int(img.info.get("loop", 0))
            if getattr(img, "n_frames", 1) <= 1:
                # EXIF Orientation 校正
                frame = ImageOps.exif_transpose(img)
                return _Frames(frames=[_normalize_mode(frame)], durations=[0], loop=loop)

            frames: list[Image.Image] = []
            durations: list[int] = []
            for frame in ImageSequence.Iterator(img):
                durations.append(int(frame.info.get("duration") or DEFAULT_FRAME_DURATION))
                frames.append(_normalize_mode(frame))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise TranscodeError(f"无法解码图像: {exc}") from exc

    if any(frame.mode == "RGBA" for frame in frames):
        frames = [frame if frame.mode == "RGBA" else frame.convert("RGBA") for frame in frames]
    return _Frames(frames=frames, durations=durations, loop=loop)


def _normalize_mode(img: Image.Image) -> Image.Image:
    """转换到 WebP 支持的 RGB/RGBA，保留透明通道。"""

    has_alpha = img.mode in {"RGBA", "LA", "PA"} or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def _resize(source: _Frames, max_width: int) -> _Frames:
    if source.width <= max_width:
        return source

    ratio = max_width / source.width
    height = max(1, round(source.frames[0].height * ratio))
    frames = [frame.resize((max_width, height), Image.LANCZOS) for frame in source.frames]
    return _Frames(frames=frames, durations=list(source.durations), loop=source.loop)


def _encode_webp(source: _Frames, quality: int, method: int) -> bytes:
    buffer = io.BytesIO()
    first, *rest = source.frames
    try:
        if rest:
            first.save(
                buffer,
                format=TARGET_FORMAT,
                save_all=True,
                append_images=rest,
                duration=source.durations,
                loop=source.loop,
                quality=quality,
                method=method,
            )
        else:
            first.save(buffer, format=TARGET_FORMAT, quality=quality, method=method)
    except (OSError, ValueError) as exc:
        raise TranscodeError(f"WebP 编码失败: {exc}") from exc
    return buffer.getvalue()
