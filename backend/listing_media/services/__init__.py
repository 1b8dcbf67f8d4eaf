"""服务层包

按领域组织的服务层模块：
- media: 媒体上传校验、压缩、转码与存储
"""

from .media import BatchOrchestrator, AvatarService, MediaStore

__all__ = [
    "BatchOrchestrator",
    "AvatarService",
    "MediaStore",
]
