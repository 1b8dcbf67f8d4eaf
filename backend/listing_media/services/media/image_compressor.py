"""图片压缩模块

使用 Pillow 解码、按需 cover 裁剪缩放并重新编码图片。
输出格式由原始 MIME 决定：JPEG/WebP 使用质量参数，PNG 使用最高压缩级别。
编码在内存中完成后再一次性写盘，编码失败不会留下半成品文件。
"""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Optional, Tuple

from loguru import logger
from PIL import Image, ImageOps

from ...core.errors import ErrorKind, ProcessingError, StorageError
from ...core.models import (
    IMAGE_EXTENSIONS,
    BatchPolicy,
    MediaDescriptor,
    MediaKind,
    RawUpload,
    ResizeFit,
    ResizeOptions,
)
from .store import CleanupScope, MediaStore, StoreArea

PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

PNG_COMPRESS_LEVEL = 9


def cover_box(
    source: Tuple[int, int],
    target: Tuple[int, int],
    allow_enlarge: bool = False,
) -> Tuple[int, int]:
    """计算 cover 裁剪后的输出尺寸

    不允许放大时，若原图小于目标框，则按目标框的宽高比在原图范围内取最大尺寸。
    """
    sw, sh = source
    tw, th = target
    if allow_enlarge or (sw >= tw and sh >= th):
        return tw, th
    scale = min(sw / tw, sh / th)
    return max(1, round(tw * scale)), max(1, round(th * scale))


def cover_fit(image: Image.Image, width: int, height: int, allow_enlarge: bool = False) -> Image.Image:
    """缩放以填满目标框并居中裁剪溢出部分"""
    box = cover_box(image.size, (width, height), allow_enlarge)
    if box == image.size:
        return image
    return ImageOps.fit(image, box, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def prepare_mode(image: Image.Image, pil_format: str) -> Image.Image:
    """转换为目标格式支持的色彩模式"""
    if pil_format == "JPEG":
        return image if image.mode in ("RGB", "L") else image.convert("RGB")
    if image.mode not in ("RGB", "RGBA", "L", "LA"):
        return image.convert("RGBA")
    return image


def encode_image(
    image: Image.Image,
    pil_format: str,
    quality: int,
    progressive: bool = False,
) -> bytes:
    buffer = io.BytesIO()
    if pil_format == "JPEG":
        image.save(buffer, "JPEG", quality=quality, optimize=True, progressive=progressive)
    elif pil_format == "PNG":
        image.save(buffer, "PNG", compress_level=PNG_COMPRESS_LEVEL)
    elif pil_format == "WEBP":
        image.save(buffer, "WEBP", quality=quality)
    else:
        raise ValueError(f"不支持的输出格式: {pil_format}")
    return buffer.getvalue()


def render_image(
    content: bytes,
    pil_format: str,
    quality: int,
    target: Optional[ResizeOptions] = None,
) -> bytes:
    """解码 -> 纠正方向 -> (cover 缩放) -> 编码，在线程池中执行"""
    with Image.open(io.BytesIO(content)) as source:
        source.load()
        image = ImageOps.exif_transpose(source)
        image = prepare_mode(image, pil_format)
        if target is not None:
            if target.fit != ResizeFit.COVER:
                raise ValueError(f"不支持的缩放方式: {target.fit}")
            image = cover_fit(image, target.width, target.height)
        return encode_image(image, pil_format, quality)


class ImageCompressor:
    """图片子流水线"""

    def __init__(self, store: MediaStore, policy: BatchPolicy) -> None:
        self.store = store
        self.policy = policy

    async def compress(
        self,
        upload: RawUpload,
        target: Optional[ResizeOptions] = None,
        *,
        order: int = 1,
        destination: Optional[Path] = None,
        scope: Optional[CleanupScope] = None,
    ) -> MediaDescriptor:
        """压缩一张图片并写入存储

        Args:
            upload: 原始上传
            target: 目标尺寸与质量；None 表示保持原尺寸
            order: 描述符中的位置（从 1 开始）
            destination: 指定输出路径（头像使用）；默认在图片区分配新文件名
            scope: 批次清理清单，输出文件在写入前登记

        Raises:
            ProcessingError: 解码或编码失败 (IMAGE_CODEC)
            StorageError: 写盘失败
        """
        pil_format = PIL_FORMATS.get(upload.mime_type)
        if pil_format is None:
            raise ProcessingError(
                ErrorKind.IMAGE_CODEC,
                f"无法确定输出格式: {upload.mime_type}",
                filename=upload.filename,
            )

        if destination is None:
            destination = self.store.allocate_path(StoreArea.IMAGES, IMAGE_EXTENSIONS[upload.mime_type])
        if scope is not None:
            scope.track(destination)

        quality = target.quality if target is not None and target.quality else self.policy.image_quality
        ctx_logger = logger.bind(file=upload.filename)
        ctx_logger.debug(f"开始压缩图片 -> {destination.name}, 格式={pil_format}, 质量={quality}")

        try:
            encoded = await asyncio.to_thread(render_image, upload.content, pil_format, quality, target)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            ctx_logger.error(f"图片处理失败: {e}")
            raise ProcessingError(
                ErrorKind.IMAGE_CODEC,
                f"图片处理失败: {upload.filename}: {e}",
                filename=upload.filename,
            )

        try:
            await asyncio.to_thread(self.store.write_bytes, destination, encoded)
        except StorageError:
            self.store.delete_quietly(destination)
            raise

        size = self.store.size_of(destination)
        ctx_logger.info(f"图片已保存: {destination.name} ({upload.size} -> {size} 字节)")
        return MediaDescriptor(
            id=destination.stem,
            kind=MediaKind.IMAGE,
            url=self.store.public_url(destination),
            order=order,
            size=size,
            mime_type=upload.mime_type,
        )
