"""批量媒体处理编排模块

处理流程：批次校验 -> 按类型分派（图片压缩 / 视频转码 + 缩略图）-> 汇总 -> 失败回滚。

每个文件作为独立的 asyncio 任务调度，视频与图片分别受信号量限制并发数。
任何一个文件失败时取消其余任务，并通过批次清理清单删除本批次写入的全部文件，
调用方要么拿到与输入一一对应、顺序一致的描述符列表，要么拿到 BatchError 且存储中不留任何文件。
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from ...config import Settings
from ...core.errors import BatchError, MediaError, ValidationError
from ...core.ffmpeg import FFmpegTool, MediaTool
from ...core.models import (
    STORED_VIDEO_MIME,
    BatchPolicy,
    MediaDescriptor,
    MediaKind,
    RawUpload,
    TranscodeOptions,
)
from . import validator
from .image_compressor import ImageCompressor
from .store import CleanupScope, MediaStore
from .thumbnail import ThumbnailExtractor
from .types import Failure, ProcessingOutcome, Success
from .video_transcoder import VideoTranscoder


class BatchOrchestrator:
    """批量媒体处理的入口"""

    def __init__(
        self,
        settings: Settings,
        store: Optional[MediaStore] = None,
        tool: Optional[MediaTool] = None,
        log=logger,
    ) -> None:
        self.settings = settings
        self.policy = settings.to_policy()
        self.store = store or MediaStore.from_settings(settings)
        self.tool = tool or FFmpegTool.from_settings(settings)
        self.log = log
        # 跨批次共享，限制整个进程内同时运行的转码数
        self._video_slots = asyncio.Semaphore(settings.VIDEO_WORKERS)
        self._image_slots = asyncio.Semaphore(settings.IMAGE_WORKERS)

    def transcode_options(self, policy: BatchPolicy) -> TranscodeOptions:
        return TranscodeOptions(
            crf=self.settings.VIDEO_CRF,
            preset=self.settings.VIDEO_PRESET,
            audio_bitrate=self.settings.AUDIO_BITRATE,
            max_width=policy.max_video_width,
            max_height=policy.max_video_height,
        )

    async def process(
        self,
        uploads: Sequence[RawUpload],
        policy: Optional[BatchPolicy] = None,
    ) -> List[MediaDescriptor]:
        """处理一个批次

        Args:
            uploads: 按输入顺序排列的上传文件
            policy: 批量策略，默认使用配置生成的策略

        Returns:
            与输入顺序一致的描述符列表，order 从 1 开始

        Raises:
            BatchError: 任一文件失败；failing_index 为失败文件在输入中的下标（从 0 开始），
                批次级检查（文件数、视频数）失败时为 None
        """
        policy = policy or self.policy
        batch_logger = self.log.bind(batch_id=uuid.uuid4().hex[:8])
        batch_logger.info(f"开始处理批次，共 {len(uploads)} 个文件")

        try:
            validator.validate(uploads, policy)
        except ValidationError as e:
            batch_logger.warning(f"批次校验失败: {e.detail}")
            raise BatchError.from_error(e)

        images = ImageCompressor(self.store, policy)
        videos = VideoTranscoder(self.store, self.tool, policy, self.transcode_options(policy))
        thumbnails = ThumbnailExtractor(self.store, self.tool, policy)

        with CleanupScope(self.store, batch_logger) as scope:
            tasks = [
                asyncio.create_task(
                    self._process_one(index, upload, policy, images, videos, thumbnails, scope, batch_logger),
                    name=f"media-{index}",
                )
                for index, upload in enumerate(uploads)
            ]
            outcomes, failure = await self._collect(tasks)

            if failure is not None:
                batch_logger.error(
                    f"第 {failure.index} 个文件处理失败 ({failure.kind.value}): {failure.detail}，回滚整个批次"
                )
                raise BatchError.from_error(failure.error, failure.index)

            scope.commit()

        descriptors = [outcome.descriptor for outcome in sorted(outcomes, key=lambda o: o.index)]
        batch_logger.info(f"批次处理完成，共 {len(descriptors)} 个文件")
        return descriptors

    def discard(self, descriptors: Iterable[MediaDescriptor]) -> int:
        """删除已返回描述符对应的文件（调用方持久化失败时回滚用），返回删除数量"""
        urls = []
        for descriptor in descriptors:
            urls.append(descriptor.url)
            if descriptor.thumbnail_url:
                urls.append(descriptor.thumbnail_url)
        removed = self.store.delete_urls(urls)
        self.log.info(f"已丢弃 {removed} 个媒体文件")
        return removed

    async def _collect(
        self,
        tasks: List[asyncio.Task],
    ) -> Tuple[List[Success], Optional[Failure]]:
        """按完成顺序收集结果；遇到第一个失败即停止并取消其余任务"""
        successes: List[Success] = []
        failure: Optional[Failure] = None
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                if isinstance(outcome, Failure):
                    failure = outcome
                    break
                successes.append(outcome)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # 等待被取消的任务退出，它们的半成品才会被删除
            await asyncio.gather(*tasks, return_exceptions=True)
        return successes, failure

    async def _process_one(
        self,
        index: int,
        upload: RawUpload,
        policy: BatchPolicy,
        images: ImageCompressor,
        videos: VideoTranscoder,
        thumbnails: ThumbnailExtractor,
        scope: CleanupScope,
        batch_logger,
    ) -> ProcessingOutcome:
        file_logger = batch_logger.bind(index=index, file=upload.filename)
        kind = policy.kind_for(upload.mime_type)
        try:
            if kind == MediaKind.VIDEO:
                async with self._video_slots:
                    file_logger.debug("开始处理视频")
                    descriptor = await self._process_video(index, upload, videos, thumbnails, scope)
            else:
                async with self._image_slots:
                    file_logger.debug("开始处理图片")
                    descriptor = await images.compress(upload, order=index + 1, scope=scope)
        except MediaError as e:
            e.index = index
            e.filename = upload.filename
            return Failure(index=index, kind=e.kind, detail=e.detail, error=e)

        file_logger.debug(f"处理完成: {descriptor.url}")
        return Success(index=index, descriptor=descriptor)

    async def _process_video(
        self,
        index: int,
        upload: RawUpload,
        videos: VideoTranscoder,
        thumbnails: ThumbnailExtractor,
        scope: CleanupScope,
    ) -> MediaDescriptor:
        result = await videos.transcode(upload, scope=scope)
        thumbnail_path = await thumbnails.extract(
            result.path,
            duration=result.metadata.duration,
            scope=scope,
        )
        return MediaDescriptor(
            id=result.path.stem,
            kind=MediaKind.VIDEO,
            url=self.store.public_url(result.path),
            thumbnail_url=self.store.public_url(thumbnail_path),
            order=index + 1,
            duration=round(result.metadata.duration),
            size=result.metadata.size,
            mime_type=STORED_VIDEO_MIME,
        )
