"""
媒体流水线数据模型模块

定义上传输入、批量策略、各操作的参数类型以及返回给调用方的媒体描述符。
上传与描述符均为不可变对象；参数类型使用封闭的 NamedTuple，避免松散的 dict 参数。
"""

from __future__ import annotations

import datetime
from enum import StrEnum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}

# 存储后缀，按规范化后的 MIME 类型映射
IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

VIDEO_EXTENSIONS = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "video/webm": ".webm",
}

# 所有视频统一转码为 MP4 存储
STORED_VIDEO_MIME = "video/mp4"
STORED_VIDEO_EXTENSION = ".mp4"


def normalize_mime(mime_type: str) -> str:
    """小写化并解析别名，去掉参数部分（如 `; charset=`）"""
    mime = mime_type.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(mime, mime)


class MediaKind(StrEnum):
    """媒体类型，决定由哪条子流水线处理"""

    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class ResizeFit(StrEnum):
    """缩放策略；目前只支持 cover（填满目标框并居中裁剪）"""

    COVER = "cover"


class RawUpload(BaseModel):
    """调用方提交的原始上传文件（仅在本次调用内有效，不持久化）"""

    model_config = ConfigDict(frozen=True)

    filename: str
    mime_type: str
    size: int = Field(ge=0, description="调用方声明的字节数")
    content: bytes = Field(repr=False)

    @field_validator("mime_type")
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        return normalize_mime(v)

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")


class BatchPolicy(BaseModel):
    """批量上传策略。默认值即对外约定的限制值"""

    model_config = ConfigDict(frozen=True)

    max_files: int = 10
    max_videos: int = 3
    max_image_size: int = 5 * 1024 * 1024
    max_video_size: int = 100 * 1024 * 1024
    max_avatar_size: int = 2 * 1024 * 1024
    max_video_duration: float = 120
    max_video_width: int = 1920
    max_video_height: int = 1080
    allowed_image_mimes: frozenset[str] = frozenset(IMAGE_EXTENSIONS)
    allowed_video_mimes: frozenset[str] = frozenset(VIDEO_EXTENSIONS)
    image_quality: int = 85
    thumbnail_width: int = 1280
    thumbnail_height: int = 720
    thumbnail_quality: int = 90
    thumbnail_offset: float = 1.0
    avatar_width: int = 200
    avatar_height: int = 200
    avatar_quality: int = 80

    def kind_for(self, mime_type: str) -> Optional[MediaKind]:
        """根据允许列表推导媒体类型；不在任何列表中返回 None"""
        mime = normalize_mime(mime_type)
        if mime in self.allowed_image_mimes:
            return MediaKind.IMAGE
        if mime in self.allowed_video_mimes:
            return MediaKind.VIDEO
        return None

    def max_size_for(self, kind: MediaKind) -> int:
        if kind == MediaKind.VIDEO:
            return self.max_video_size
        return self.max_image_size


class ResizeOptions(NamedTuple):
    """图片缩放参数"""

    width: int
    height: int
    fit: ResizeFit = ResizeFit.COVER
    quality: Optional[int] = None


class TranscodeOptions(NamedTuple):
    """视频转码参数"""

    video_codec: str = "libx264"
    crf: int = 28
    preset: str = "medium"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    pixel_format: str = "yuv420p"
    faststart: bool = True
    max_width: int = 1920
    max_height: int = 1080


class ScreenshotOptions(NamedTuple):
    """截帧参数：在 offset 秒处按指定高度截取一帧（宽度按比例）"""

    offset: float = 1.0
    height: int = 720


class VideoMetadata(NamedTuple):
    """ffprobe 探测得到的视频信息"""

    duration: float
    width: int
    height: int
    size: int
    format: str = "unknown"

    def exceeds(self, max_width: int, max_height: int) -> bool:
        return self.width > max_width or self.height > max_height


class MediaDescriptor(BaseModel):
    """处理成功后返回给调用方的媒体描述符，由调用方负责持久化"""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: MediaKind
    url: str
    thumbnail_url: Optional[str] = None
    order: int = Field(ge=1, description="在输入批次中的位置，从 1 开始")
    duration: Optional[int] = Field(default=None, description="视频时长（整秒）")
    size: int = Field(ge=0, description="存储后文件的字节数")
    mime_type: str
    created_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
