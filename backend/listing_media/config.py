from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.models import BatchPolicy

MB = 1024 * 1024


class LogLevel(str, Enum):
    """日志级别枚举"""
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppEnv(str, Enum):
    """应用运行环境枚举"""
    DEV = "development"
    PROD = "production"


def _default_video_workers() -> int:
    return max(1, (os.cpu_count() or 1) // 2)


def _default_image_workers() -> int:
    return (os.cpu_count() or 1) * 2


class Settings(BaseSettings):
    """媒体流水线全局配置。

    所有字段均可通过环境变量或 `.env` 文件注入。
    服务对象在构造时显式接收 Settings 实例，不读取进程级全局状态。
    """

    # —— 存储 ——
    MEDIA_ROOT: Path = Field(
        default=Path("uploads"),
        description="媒体文件根目录，包含 properties/、avatars/ 与 .tmp/ 子目录"
    )
    PUBLIC_URL_PREFIX: str = Field(
        default="/uploads",
        description="媒体根目录对外暴露的 URL 前缀"
    )

    # —— 批量策略 ——
    MAX_FILES_PER_BATCH: int = Field(10, ge=1, description="单批次最大文件数")
    MAX_VIDEOS_PER_BATCH: int = Field(3, ge=0, description="单批次最大视频数")
    MAX_IMAGE_SIZE_MB: int = Field(5, ge=1, description="单张图片最大体积（MB）")
    MAX_VIDEO_SIZE_MB: int = Field(100, ge=1, description="单个视频最大体积（MB）")
    MAX_AVATAR_SIZE_MB: int = Field(2, ge=1, description="头像最大体积（MB）")
    MAX_VIDEO_DURATION_SECONDS: int = Field(120, ge=1, description="视频最长时长（秒）")
    MAX_VIDEO_WIDTH: int = Field(1920, ge=2, description="视频最大宽度，超出则缩放")
    MAX_VIDEO_HEIGHT: int = Field(1080, ge=2, description="视频最大高度，超出则缩放")

    # —— 编码参数 ——
    IMAGE_QUALITY: int = Field(85, ge=1, le=100, description="JPEG/WebP 默认压缩质量")
    AVATAR_QUALITY: int = Field(80, ge=1, le=100, description="头像压缩质量")
    THUMBNAIL_QUALITY: int = Field(90, ge=1, le=100, description="缩略图 JPEG 质量")
    VIDEO_CRF: int = Field(28, ge=0, le=51, description="H.264 恒定质量因子，数值越小画质越高")
    VIDEO_PRESET: str = Field("medium", description="x264 编码预设")
    AUDIO_BITRATE: str = Field("128k", description="AAC 音频码率")

    # —— 外部工具 ——
    FFMPEG_PATH: str = Field("ffmpeg", description="ffmpeg 可执行文件路径")
    FFPROBE_PATH: str = Field("ffprobe", description="ffprobe 可执行文件路径")
    FFMPEG_TIMEOUT_SECONDS: float = Field(
        600.0,
        gt=0,
        description="单次 ffmpeg/ffprobe 调用的超时时间（秒）"
    )

    # —— 并发 ——
    VIDEO_WORKERS: int = Field(
        default_factory=_default_video_workers,
        ge=1,
        le=64,
        description="同时进行的视频转码数量"
    )
    IMAGE_WORKERS: int = Field(
        default_factory=_default_image_workers,
        ge=1,
        le=256,
        description="同时进行的图片压缩数量"
    )

    # —— 运行环境 & 日志 ——
    LOG_LEVEL: LogLevel = Field(LogLevel.INFO, description="日志级别")
    APP_ENV: AppEnv = Field(AppEnv.DEV, description="运行环境: development/production")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=True,
        validate_default=True,
        extra="ignore",
    )

    # —— 验证器 ——
    @field_validator("MEDIA_ROOT")
    @classmethod
    def validate_media_root(cls, v: Path) -> Path:
        """验证媒体根目录存在且可读写，不存在则创建"""
        if not v.exists():
            try:
                v.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(f"无法创建目录 {v}: {e}")
        if not os.access(v, os.R_OK | os.W_OK):
            raise ValueError(f"目录 {v} 缺少读写权限")
        return v.resolve()

    @field_validator("PUBLIC_URL_PREFIX")
    @classmethod
    def validate_public_url_prefix(cls, v: str) -> str:
        """URL 前缀必须以 / 开头，去掉末尾的 /"""
        if not v.startswith("/"):
            raise ValueError(f"URL 前缀必须以'/'开头: {v}")
        stripped = v.rstrip("/")
        if not stripped:
            raise ValueError("URL 前缀不能为根路径 '/'")
        return stripped

    @field_validator("VIDEO_PRESET")
    @classmethod
    def validate_video_preset(cls, v: str) -> str:
        valid_presets = [
            "ultrafast",
            "superfast",
            "veryfast",
            "faster",
            "fast",
            "medium",
            "slow",
            "slower",
            "veryslow",
        ]
        if v not in valid_presets:
            raise ValueError(f"VIDEO_PRESET 必须是 {valid_presets} 之一，当前为 {v}")
        return v

    @field_validator("AUDIO_BITRATE")
    @classmethod
    def validate_audio_bitrate(cls, v: str) -> str:
        """码率格式形如 128k"""
        if not (v[:-1].isdigit() and v[-1] in ("k", "K")):
            raise ValueError(f"音频码率格式错误: {v}，应形如 '128k'")
        return v.lower()

    def to_policy(self) -> BatchPolicy:
        """根据配置构造批量策略对象"""
        return BatchPolicy(
            max_files=self.MAX_FILES_PER_BATCH,
            max_videos=self.MAX_VIDEOS_PER_BATCH,
            max_image_size=self.MAX_IMAGE_SIZE_MB * MB,
            max_video_size=self.MAX_VIDEO_SIZE_MB * MB,
            max_avatar_size=self.MAX_AVATAR_SIZE_MB * MB,
            max_video_duration=self.MAX_VIDEO_DURATION_SECONDS,
            max_video_width=self.MAX_VIDEO_WIDTH,
            max_video_height=self.MAX_VIDEO_HEIGHT,
            image_quality=self.IMAGE_QUALITY,
            avatar_quality=self.AVATAR_QUALITY,
            thumbnail_quality=self.THUMBNAIL_QUALITY,
        )


# 全局单例
_settings: Settings | None = None


def get_settings(force_reload: bool = False) -> Settings:
    """返回全局配置单例，如果不存在则创建。

    Args:
        force_reload: 是否强制重新加载配置

    Returns:
        Settings实例
    """
    global _settings
    if _settings is None or force_reload:
        _settings = Settings()
    return _settings


__all__ = [
    "Settings",
    "LogLevel",
    "AppEnv",
    "MB",
    "get_settings",
]
