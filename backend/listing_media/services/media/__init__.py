"""媒体处理服务模块

按职责拆分为多个子模块：
- types: 单文件处理结果类型
- validator: 批次与头像校验
- store: 存储布局、命名与批次清理清单
- image_compressor: 图片压缩
- video_transcoder: 视频转码
- thumbnail: 视频缩略图
- orchestrator: 批次编排入口
- avatar: 用户头像
"""

from .orchestrator import BatchOrchestrator
from .avatar import AvatarService
from .store import MediaStore, CleanupScope, StoreArea
from .image_compressor import ImageCompressor
from .video_transcoder import VideoTranscoder, TranscodeResult
from .thumbnail import ThumbnailExtractor
from .types import ProcessingOutcome, Success, Failure
from . import validator

__all__ = [
    "BatchOrchestrator",
    "AvatarService",
    "MediaStore",
    "CleanupScope",
    "StoreArea",
    "ImageCompressor",
    "VideoTranscoder",
    "TranscodeResult",
    "ThumbnailExtractor",
    "ProcessingOutcome",
    "Success",
    "Failure",
    "validator",
]
