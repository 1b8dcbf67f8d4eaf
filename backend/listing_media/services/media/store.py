"""媒体存储布局模块

MediaStore 只负责目录布局、唯一文件名生成、删除以及存储路径与公开 URL 的映射，
不包含任何校验或转码逻辑。文件名使用 uuid4 生成，从不复用、从不取自用户文件名，
这是并发批次之间互不干扰的唯一机制，无需加锁。

CleanupScope 是批次级的清理清单：临时文件在作用域退出时总是删除，
输出文件只有在 commit() 之后才会保留。
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional

from loguru import logger

from ...core.errors import StorageError


class StoreArea(StrEnum):
    """存储区域，值为相对媒体根目录的子路径"""

    IMAGES = "properties/images"
    VIDEOS = "properties/videos"
    THUMBNAILS = "properties/thumbnails"
    AVATARS = "avatars"
    TEMP = ".tmp"


# 对外可访问的区域；临时目录不暴露
PUBLIC_AREAS = ("properties", "avatars")


class FileInfo(NamedTuple):
    exists: bool
    size: int


def _validate_suffix(suffix: str) -> str:
    if not suffix.startswith(".") or not suffix[1:].isalnum():
        raise ValueError(f"无效的文件后缀: {suffix!r}")
    return suffix.lower()


class MediaStore:
    """媒体根目录下的命名与布局权威"""

    def __init__(self, root: Path, public_prefix: str = "/uploads") -> None:
        self.root = Path(root).resolve()
        self.public_prefix = public_prefix.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> "MediaStore":
        return cls(settings.MEDIA_ROOT, settings.PUBLIC_URL_PREFIX)

    def ensure_layout(self) -> None:
        """创建所有存储子目录"""
        for area in StoreArea:
            self.directory(area)
        logger.debug(f"媒体目录已就绪: {self.root}")

    def directory(self, area: StoreArea) -> Path:
        path = self.root / area.value
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"创建目录失败: {path}: {e}")
        return path

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    def allocate_path(self, area: StoreArea, suffix: str) -> Path:
        """分配一个全新的文件路径（文件本身不创建）"""
        return self.directory(area) / f"{self.new_token()}{_validate_suffix(suffix)}"

    def avatar_path(self, owner_id: str, suffix: str) -> Path:
        """头像文件名带所有者前缀，便于清理同一所有者的旧头像"""
        return self.directory(StoreArea.AVATARS) / f"{owner_id}_{self.new_token()}{_validate_suffix(suffix)}"

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def delete(self, path: Path) -> bool:
        """删除文件；文件不存在时返回 False

        Raises:
            StorageError: 删除失败（权限等）
        """
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"删除文件失败: {path}: {e}", filename=path.name)
        logger.debug(f"已删除文件: {path}")
        return True

    def delete_quietly(self, path: Path) -> bool:
        """删除文件，失败时只记录错误

        用于异常路径和 finally 中的清理，不覆盖正在传播的异常；临时目录的残留在下次启动时清理。
        """
        try:
            return self.delete(path)
        except StorageError as e:
            logger.error(f"文件清理失败: {e}")
            return False

    def size_of(self, path: Path) -> int:
        try:
            return Path(path).stat().st_size
        except OSError as e:
            raise StorageError(f"读取文件信息失败: {path}: {e}", filename=Path(path).name)

    def write_bytes(self, path: Path, content: bytes) -> Path:
        try:
            Path(path).write_bytes(content)
        except OSError as e:
            raise StorageError(f"写入文件失败: {path}: {e}", filename=Path(path).name)
        return path

    def public_url(self, path: Path) -> str:
        """存储路径 -> 公开 URL"""
        relative = self._relative(Path(path))
        return f"{self.public_prefix}/{relative.as_posix()}"

    def path_from_url(self, url: str) -> Path:
        """公开 URL -> 存储路径；拒绝根目录之外或临时目录中的路径"""
        prefix = f"{self.public_prefix}/"
        if not url.startswith(prefix):
            raise StorageError(f"URL 不属于媒体目录: {url}")
        path = (self.root / url[len(prefix):]).resolve()
        relative = self._relative(path)
        if not relative.parts or relative.parts[0] not in PUBLIC_AREAS:
            raise StorageError(f"URL 指向非公开区域: {url}")
        return path

    def file_info(self, url: str) -> FileInfo:
        """查询公开 URL 对应文件是否存在及其大小"""
        try:
            path = self.path_from_url(url)
        except StorageError:
            return FileInfo(exists=False, size=0)
        if not path.is_file():
            return FileInfo(exists=False, size=0)
        return FileInfo(exists=True, size=path.stat().st_size)

    def delete_urls(self, urls: Iterable[str]) -> int:
        """按公开 URL 批量删除，返回实际删除的文件数"""
        return sum(1 for url in urls if self.delete(self.path_from_url(url)))

    def purge_avatars(self, owner_id: str, keep: Optional[Path] = None) -> List[Path]:
        """删除某个所有者除 keep 之外的全部头像"""
        keep_resolved = Path(keep).resolve() if keep is not None else None
        removed = []
        for candidate in sorted(self.directory(StoreArea.AVATARS).glob(f"{owner_id}_*")):
            if keep_resolved is not None and candidate.resolve() == keep_resolved:
                continue
            if self.delete(candidate):
                removed.append(candidate)
                logger.info(f"已删除旧头像: {candidate.name}")
        return removed

    def purge_temp(self) -> int:
        """删除临时目录中的残留文件（进程异常退出时遗留），返回删除数量"""
        removed = 0
        for leftover in self.directory(StoreArea.TEMP).iterdir():
            if leftover.is_file() and self.delete(leftover):
                removed += 1
        return removed

    def _relative(self, path: Path) -> Path:
        try:
            return path.resolve().relative_to(self.root)
        except ValueError:
            raise StorageError(f"路径不在媒体根目录下: {path}")


class CleanupScope:
    """批次级清理清单

    Example:
        >>> with CleanupScope(store) as scope:
        ...     out = scope.track(store.allocate_path(StoreArea.IMAGES, ".jpg"))
        ...     ...
        ...     scope.commit()
    """

    def __init__(self, store: MediaStore, log=logger) -> None:
        self.store = store
        self.log = log
        self._outputs: List[Path] = []
        self._temps: List[Path] = []
        self._committed = False

    @property
    def outputs(self) -> List[Path]:
        return list(self._outputs)

    @property
    def committed(self) -> bool:
        return self._committed

    def track(self, path: Path) -> Path:
        """登记一个输出文件（写入前登记，半成品也会被清理）"""
        self._outputs.append(Path(path))
        return path

    def track_temp(self, path: Path) -> Path:
        """登记一个临时文件"""
        self._temps.append(Path(path))
        return path

    def commit(self) -> None:
        self._committed = True

    def close(self, raise_errors: bool = True) -> None:
        """删除临时文件；未提交时同时删除所有输出文件"""
        doomed = list(reversed(self._temps))
        if not self._committed:
            doomed.extend(reversed(self._outputs))
            if self._outputs:
                self.log.warning(f"批次未提交，清理 {len(self._outputs)} 个输出文件")
        self._temps.clear()

        failures: List[StorageError] = []
        for path in doomed:
            try:
                self.store.delete(path)
            except StorageError as e:
                self.log.error(f"清理文件失败: {e}")
                failures.append(e)

        if failures and raise_errors:
            raise StorageError(f"{len(failures)} 个文件清理失败: {failures[0].detail}")

    def __enter__(self) -> "CleanupScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # 已有异常在传播时只记录清理失败，不覆盖原异常
        self.close(raise_errors=exc_type is None)
