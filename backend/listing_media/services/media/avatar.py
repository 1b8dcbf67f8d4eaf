"""用户头像模块

单图片版本的流水线：校验 -> 压缩为 200x200（cover，质量 80）-> 删除该用户的旧头像。
每个所有者在头像目录中始终最多保留一个文件；新头像写入失败时旧头像保持不变。
同一所有者的上传按到达顺序串行执行，最后完成的上传保留下来。
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from loguru import logger

from ...config import Settings
from ...core.models import IMAGE_EXTENSIONS, BatchPolicy, MediaDescriptor, RawUpload, ResizeOptions
from . import validator
from .image_compressor import ImageCompressor
from .store import CleanupScope, MediaStore


class AvatarService:
    """保存用户头像"""

    def __init__(
        self,
        settings: Settings,
        store: Optional[MediaStore] = None,
        policy: Optional[BatchPolicy] = None,
    ) -> None:
        self.policy = policy or settings.to_policy()
        self.store = store or MediaStore.from_settings(settings)
        self.images = ImageCompressor(self.store, self.policy)
        # 每个所有者一把锁，最后一个使用者释放后移除
        self._owner_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _owner_lock(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._owner_locks.setdefault(owner_id, asyncio.Lock())
        self._lock_users[owner_id] = self._lock_users.get(owner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[owner_id] -= 1
            if not self._lock_users[owner_id]:
                del self._lock_users[owner_id]
                del self._owner_locks[owner_id]

    async def save_avatar(self, owner_id: str, upload: RawUpload) -> MediaDescriptor:
        """保存新头像并清理旧头像

        Raises:
            ValidationError: 所有者 ID 非法、类型不支持或文件过大
            ProcessingError: 图片处理失败
            StorageError: 读写失败
        """
        ctx_logger = logger.bind(owner_id=owner_id)
        validator.validate_owner_id(owner_id)
        validator.validate_avatar(upload, self.policy)
        ctx_logger.info(f"开始保存头像: {upload.filename}, {upload.size} 字节")

        destination = self.store.avatar_path(owner_id, IMAGE_EXTENSIONS[upload.mime_type])
        target = ResizeOptions(
            width=self.policy.avatar_width,
            height=self.policy.avatar_height,
            quality=self.policy.avatar_quality,
        )

        # 写入与清理旧头像之间不能穿插同一所有者的其他上传
        async with self._owner_lock(owner_id):
            with CleanupScope(self.store, ctx_logger) as scope:
                descriptor = await self.images.compress(upload, target, destination=destination, scope=scope)
                scope.commit()

            removed = self.store.purge_avatars(owner_id, keep=destination)
        if removed:
            ctx_logger.info(f"已清理 {len(removed)} 个旧头像")
        ctx_logger.info(f"头像保存成功: {descriptor.url}")
        return descriptor
