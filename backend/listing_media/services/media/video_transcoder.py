"""视频转码模块

流程：原始数据落盘为私有临时文件 -> ffprobe 探测 -> 时长校验 -> ffmpeg 转码为
H.264/AAC 的 faststart MP4 -> 删除临时文件。
任何一步失败都会删除临时输入和写了一半的输出，然后向上抛出。
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import NamedTuple, Optional

from loguru import logger

from ...core.errors import ErrorKind, MediaError, ProcessingError, ValidationError
from ...core.ffmpeg import MediaTool, MediaToolError
from ...core.models import (
    STORED_VIDEO_EXTENSION,
    VIDEO_EXTENSIONS,
    BatchPolicy,
    RawUpload,
    TranscodeOptions,
    VideoMetadata,
)
from .store import CleanupScope, MediaStore, StoreArea


class TranscodeResult(NamedTuple):
    """转码结果：规范化后的文件路径及其元数据（size 为最终文件大小）"""
    path: Path
    metadata: VideoMetadata


def output_dimensions(metadata: VideoMetadata, options: TranscodeOptions) -> tuple[int, int]:
    """转码后的画面尺寸：超限时为目标框（补边），否则截为偶数"""
    if metadata.exceeds(options.max_width, options.max_height):
        return options.max_width, options.max_height
    return metadata.width - metadata.width % 2, metadata.height - metadata.height % 2


class VideoTranscoder:
    """视频子流水线（不含缩略图）"""

    def __init__(
        self,
        store: MediaStore,
        tool: MediaTool,
        policy: BatchPolicy,
        options: Optional[TranscodeOptions] = None,
    ) -> None:
        self.store = store
        self.tool = tool
        self.policy = policy
        self.options = options or TranscodeOptions(
            max_width=policy.max_video_width,
            max_height=policy.max_video_height,
        )

    async def transcode(
        self,
        upload: RawUpload,
        *,
        scope: Optional[CleanupScope] = None,
    ) -> TranscodeResult:
        """转码一个视频

        Raises:
            ValidationError: 探测到的时长超过上限 (VIDEO_TOO_LONG)
            ProcessingError: 探测失败 (METADATA_PROBE_FAILURE) 或编码失败 (VIDEO_CODEC)
            StorageError: 临时文件写入失败
        """
        ctx_logger = logger.bind(file=upload.filename)
        source_suffix = VIDEO_EXTENSIONS.get(upload.mime_type, STORED_VIDEO_EXTENSION)
        temp_path = self.store.allocate_path(StoreArea.TEMP, source_suffix)
        output_path: Optional[Path] = None
        if scope is not None:
            scope.track_temp(temp_path)

        try:
            await asyncio.to_thread(self.store.write_bytes, temp_path, upload.content)
            ctx_logger.debug(f"原始视频已写入临时文件: {temp_path.name}")

            metadata = await self._probe(upload, temp_path)
            ctx_logger.info(
                f"原始视频: {metadata.width}x{metadata.height}, {metadata.duration:.1f}s, "
                f"{metadata.size / 1024 / 1024:.2f}MB"
            )

            if metadata.duration > self.policy.max_video_duration:
                raise ValidationError(
                    ErrorKind.VIDEO_TOO_LONG,
                    f"视频过长: 最长 {self.policy.max_video_duration:g} 秒，"
                    f"该视频 {round(metadata.duration)} 秒",
                    filename=upload.filename,
                    actual=metadata.duration,
                )

            output_path = self.store.allocate_path(StoreArea.VIDEOS, STORED_VIDEO_EXTENSION)
            if scope is not None:
                scope.track(output_path)

            try:
                await self.tool.transcode(temp_path, output_path, self.options, metadata)
            except MediaToolError as e:
                ctx_logger.error(f"视频编码失败: {e}")
                raise ProcessingError(
                    ErrorKind.VIDEO_CODEC,
                    f"视频处理失败: {upload.filename}: {e}",
                    filename=upload.filename,
                )

            final_size = self.store.size_of(output_path)
            width, height = output_dimensions(metadata, self.options)
            ctx_logger.info(f"视频转码完成: {output_path.name} ({final_size / 1024 / 1024:.2f}MB)")
            return TranscodeResult(
                path=output_path,
                metadata=metadata._replace(width=width, height=height, size=final_size, format="mp4"),
            )
        except (MediaError, asyncio.CancelledError):
            if output_path is not None:
                self.store.delete_quietly(output_path)
            raise
        finally:
            self.store.delete_quietly(temp_path)

    async def _probe(self, upload: RawUpload, path: Path) -> VideoMetadata:
        try:
            return await self.tool.probe(path)
        except MediaToolError as e:
            logger.error(f"获取视频元数据失败: {upload.filename}: {e}")
            raise ProcessingError(
                ErrorKind.METADATA_PROBE_FAILURE,
                f"无法读取视频信息: {upload.filename}: {e}",
                filename=upload.filename,
            )
