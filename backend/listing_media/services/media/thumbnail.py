"""视频缩略图模块

先用 ffmpeg 在第 1 秒按 720p 高度截取一帧，再用 Pillow 居中 cover 裁剪到
精确的 1280x720 并保存为渐进式 JPEG。无论原视频宽高比如何，缩略图尺寸一致。
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger
from PIL import Image

from ...core.errors import ErrorKind, MediaError, ProcessingError
from ...core.ffmpeg import MediaTool, MediaToolError
from ...core.models import BatchPolicy, ScreenshotOptions
from .image_compressor import cover_fit, encode_image, prepare_mode
from .store import CleanupScope, MediaStore, StoreArea


def capture_offset(offset: float, duration: Optional[float]) -> float:
    """视频短于截帧偏移时改为取中间帧"""
    if duration is not None and 0 < duration <= offset:
        return duration / 2
    return offset


def render_thumbnail(raw_path: Path, width: int, height: int, quality: int) -> bytes:
    with Image.open(raw_path) as frame:
        frame.load()
        image = prepare_mode(frame, "JPEG")
        image = cover_fit(image, width, height, allow_enlarge=True)
        return encode_image(image, "JPEG", quality, progressive=True)


class ThumbnailExtractor:
    """从规范化后的视频生成缩略图"""

    def __init__(self, store: MediaStore, tool: MediaTool, policy: BatchPolicy) -> None:
        self.store = store
        self.tool = tool
        self.policy = policy

    async def extract(
        self,
        video_path: Path,
        *,
        duration: Optional[float] = None,
        scope: Optional[CleanupScope] = None,
    ) -> Path:
        """生成缩略图，返回缩略图路径

        Raises:
            ProcessingError: 截帧或裁剪失败 (THUMBNAIL_GENERATION)
        """
        raw_path = self.store.allocate_path(StoreArea.TEMP, ".jpg")
        thumbnail_path = self.store.allocate_path(StoreArea.THUMBNAILS, ".jpg")
        if scope is not None:
            scope.track_temp(raw_path)
            scope.track(thumbnail_path)

        options = ScreenshotOptions(
            offset=capture_offset(self.policy.thumbnail_offset, duration),
            height=self.policy.thumbnail_height,
        )

        try:
            try:
                await self.tool.screenshot(video_path, raw_path, options)
            except MediaToolError as e:
                logger.error(f"截取视频帧失败: {video_path.name}: {e}")
                raise ProcessingError(
                    ErrorKind.THUMBNAIL_GENERATION,
                    f"生成缩略图失败: {e}",
                    filename=video_path.name,
                )

            try:
                encoded = await asyncio.to_thread(
                    render_thumbnail,
                    raw_path,
                    self.policy.thumbnail_width,
                    self.policy.thumbnail_height,
                    self.policy.thumbnail_quality,
                )
            except (OSError, ValueError) as e:
                logger.error(f"处理缩略图失败: {video_path.name}: {e}")
                raise ProcessingError(
                    ErrorKind.THUMBNAIL_GENERATION,
                    f"处理缩略图失败: {e}",
                    filename=video_path.name,
                )

            await asyncio.to_thread(self.store.write_bytes, thumbnail_path, encoded)
        except (MediaError, asyncio.CancelledError):
            self.store.delete_quietly(thumbnail_path)
            raise
        finally:
            self.store.delete_quietly(raw_path)

        logger.info(
            f"缩略图已生成 (居中裁剪 {self.policy.thumbnail_width}x{self.policy.thumbnail_height}): "
            f"{thumbnail_path.name}"
        )
        return thumbnail_path
