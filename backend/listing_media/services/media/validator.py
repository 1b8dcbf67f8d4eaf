"""上传批次校验模块

只根据调用方声明的 MIME 类型与大小做检查，不读取文件内容；
真实时长与分辨率需要解码，由视频转码阶段检查。
检查顺序固定，任何一项失败立即抛出，保证在转码开始前失败。
"""

from __future__ import annotations

import re
from typing import Sequence

from ...core.errors import ErrorKind, ValidationError
from ...core.models import BatchPolicy, MediaKind, RawUpload

OWNER_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def _format_mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


def validate(uploads: Sequence[RawUpload], policy: BatchPolicy) -> None:
    """校验整个批次

    Args:
        uploads: 按输入顺序排列的上传文件
        policy: 批量策略

    Raises:
        ValidationError: 依次检查 NO_FILES、TOO_MANY_FILES、TOO_MANY_VIDEOS、
            UNSUPPORTED_TYPE、FILE_TOO_LARGE
    """
    if not uploads:
        raise ValidationError(ErrorKind.NO_FILES, "未提供任何文件")

    if len(uploads) > policy.max_files:
        raise ValidationError(
            ErrorKind.TOO_MANY_FILES,
            f"最多允许 {policy.max_files} 个文件，收到 {len(uploads)} 个",
            actual=len(uploads),
        )

    video_count = sum(1 for upload in uploads if upload.is_video)
    if video_count > policy.max_videos:
        raise ValidationError(
            ErrorKind.TOO_MANY_VIDEOS,
            f"最多允许 {policy.max_videos} 个视频，收到 {video_count} 个",
            actual=video_count,
        )

    kinds = []
    for index, upload in enumerate(uploads):
        kind = policy.kind_for(upload.mime_type)
        if kind is None:
            raise ValidationError(
                ErrorKind.UNSUPPORTED_TYPE,
                f"不支持的文件类型: {upload.mime_type}",
                filename=upload.filename,
                index=index,
            )
        kinds.append(kind)

    for index, (upload, kind) in enumerate(zip(uploads, kinds)):
        _check_size(upload, policy.max_size_for(kind), index)


def validate_avatar(upload: RawUpload, policy: BatchPolicy) -> None:
    """头像只接受图片，且大小上限更低"""
    if policy.kind_for(upload.mime_type) != MediaKind.IMAGE:
        raise ValidationError(
            ErrorKind.UNSUPPORTED_TYPE,
            f"头像只支持 JPEG、PNG、WebP，收到 {upload.mime_type}",
            filename=upload.filename,
            index=0,
        )
    _check_size(upload, policy.max_avatar_size, 0)


def validate_owner_id(owner_id: str) -> None:
    """所有者 ID 会出现在文件名中，只允许字母、数字和连字符"""
    if not OWNER_ID_PATTERN.match(owner_id or ""):
        raise ValidationError(ErrorKind.INVALID_OWNER, f"无效的所有者 ID: {owner_id!r}")


def _check_size(upload: RawUpload, limit: int, index: int) -> None:
    if upload.size > limit:
        raise ValidationError(
            ErrorKind.FILE_TOO_LARGE,
            f"文件过大: {upload.filename}，最大 {_format_mb(limit)}，收到 {_format_mb(upload.size)}",
            filename=upload.filename,
            index=index,
            actual=upload.size,
        )
