"""媒体流水线异常体系

所有异常都携带 ErrorKind，调用方据此决定面向用户的提示。
- ValidationError: 廉价检查即可发现，不会留下任何文件
- ProcessingError: 编解码阶段发现，触发整个批次的清理
- StorageError: 文件读写失败，对整个批次是致命的
- BatchError: 编排器对外抛出的唯一异常，标明失败的文件位置
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ErrorKind(StrEnum):
    """错误类型枚举"""

    # 校验类
    NO_FILES = "no_files"
    TOO_MANY_FILES = "too_many_files"
    TOO_MANY_VIDEOS = "too_many_videos"
    UNSUPPORTED_TYPE = "unsupported_type"
    FILE_TOO_LARGE = "file_too_large"
    VIDEO_TOO_LONG = "video_too_long"
    INVALID_OWNER = "invalid_owner"

    # 处理类
    IMAGE_CODEC = "image_codec"
    VIDEO_CODEC = "video_codec"
    THUMBNAIL_GENERATION = "thumbnail_generation"
    METADATA_PROBE_FAILURE = "metadata_probe_failure"

    # 存储类
    STORAGE_IO = "storage_io"


class MediaError(Exception):
    """媒体流水线异常基类"""

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        *,
        filename: Optional[str] = None,
        index: Optional[int] = None,
    ) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.filename = filename
        self.index = index

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, detail={self.detail!r})"


class ValidationError(MediaError):
    """上传内容不满足策略"""

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        *,
        filename: Optional[str] = None,
        index: Optional[int] = None,
        actual: Optional[float] = None,
    ) -> None:
        super().__init__(kind, detail, filename=filename, index=index)
        # 超限时的实测值：文件字节数或视频秒数
        self.actual = actual


class ProcessingError(MediaError):
    """图片/视频编解码或缩略图生成失败"""


class StorageError(MediaError):
    """文件系统读写失败"""

    def __init__(self, detail: str, *, filename: Optional[str] = None) -> None:
        super().__init__(ErrorKind.STORAGE_IO, detail, filename=filename)


class BatchError(MediaError):
    """批次处理失败，批次内已写入的文件均已清理"""

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        *,
        failing_index: Optional[int] = None,
        filename: Optional[str] = None,
        cause: Optional[MediaError] = None,
    ) -> None:
        super().__init__(kind, detail, filename=filename, index=failing_index)
        self.failing_index = failing_index
        self.cause = cause

    @classmethod
    def from_error(cls, error: MediaError, failing_index: Optional[int] = None) -> "BatchError":
        index = failing_index if failing_index is not None else error.index
        return cls(
            error.kind,
            error.detail,
            failing_index=index,
            filename=error.filename,
            cause=error,
        )


__all__ = [
    "ErrorKind",
    "MediaError",
    "ValidationError",
    "ProcessingError",
    "StorageError",
    "BatchError",
]
