"""配置模块测试用例"""

import pytest
from pydantic import ValidationError

from listing_media import config as cfg
from listing_media.config import MB, AppEnv, LogLevel, Settings


def test_defaults(media_root):
    """
    Given: 只指定媒体根目录
    When: Settings 被实例化
    Then: 其余字段使用默认的策略与编码参数
    """
    settings = Settings(_env_file=None, MEDIA_ROOT=media_root)

    assert settings.MEDIA_ROOT == media_root.resolve()
    assert settings.PUBLIC_URL_PREFIX == "/uploads"
    assert settings.MAX_FILES_PER_BATCH == 10
    assert settings.MAX_VIDEOS_PER_BATCH == 3
    assert settings.MAX_IMAGE_SIZE_MB == 5
    assert settings.MAX_VIDEO_SIZE_MB == 100
    assert settings.MAX_VIDEO_DURATION_SECONDS == 120
    assert settings.VIDEO_CRF == 28
    assert settings.VIDEO_PRESET == "medium"
    assert settings.AUDIO_BITRATE == "128k"
    assert settings.VIDEO_WORKERS >= 1
    assert settings.IMAGE_WORKERS >= 1
    assert settings.LOG_LEVEL == LogLevel.INFO
    assert settings.APP_ENV == AppEnv.DEV


def test_settings_from_env(monkeypatch, tmp_path):
    """
    Given: 一组环境变量
    When: Settings 被实例化
    Then: 配置字段与环境变量保持一致
    """
    monkeypatch.setenv("MEDIA_ROOT", str(tmp_path / "env-media"))
    monkeypatch.setenv("MAX_FILES_PER_BATCH", "5")
    monkeypatch.setenv("VIDEO_PRESET", "fast")
    monkeypatch.setenv("VIDEO_WORKERS", "3")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("APP_ENV", "production")

    settings = Settings(_env_file=None)

    assert settings.MEDIA_ROOT == (tmp_path / "env-media").resolve()
    assert settings.MEDIA_ROOT.is_dir()
    assert settings.MAX_FILES_PER_BATCH == 5
    assert settings.VIDEO_PRESET == "fast"
    assert settings.VIDEO_WORKERS == 3
    assert settings.LOG_LEVEL == LogLevel.DEBUG
    assert settings.APP_ENV == AppEnv.PROD


def test_to_policy(media_root):
    settings = Settings(
        _env_file=None,
        MEDIA_ROOT=media_root,
        MAX_IMAGE_SIZE_MB=8,
        MAX_VIDEO_DURATION_SECONDS=60,
        AVATAR_QUALITY=70,
    )

    policy = settings.to_policy()

    assert policy.max_files == 10
    assert policy.max_videos == 3
    assert policy.max_image_size == 8 * MB
    assert policy.max_video_size == 100 * MB
    assert policy.max_avatar_size == 2 * MB
    assert policy.max_video_duration == 60
    assert policy.avatar_quality == 70
    assert (policy.thumbnail_width, policy.thumbnail_height) == (1280, 720)


@pytest.mark.parametrize(
    "field,value",
    [
        ("VIDEO_PRESET", "turbo"),
        ("AUDIO_BITRATE", "loud"),
        ("VIDEO_CRF", 60),
        ("IMAGE_QUALITY", 0),
        ("PUBLIC_URL_PREFIX", "uploads"),
        ("PUBLIC_URL_PREFIX", "/"),
        ("VIDEO_WORKERS", 0),
    ],
)
def test_invalid_values_rejected(media_root, field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, MEDIA_ROOT=media_root, **{field: value})


def test_normalized_values(media_root):
    settings = Settings(
        _env_file=None,
        MEDIA_ROOT=media_root,
        PUBLIC_URL_PREFIX="/media/",
        AUDIO_BITRATE="96K",
    )

    assert settings.PUBLIC_URL_PREFIX == "/media"
    assert settings.AUDIO_BITRATE == "96k"


def test_get_settings_reads_env_file_and_caches(monkeypatch, tmp_path):
    """
    Given: 当前目录下有 .env 文件
    When: 调用 get_settings
    Then: 读取 .env 中的配置并缓存为单例，force_reload 时重新读取
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cfg, "_settings", None)
    (tmp_path / ".env").write_text("MAX_VIDEOS_PER_BATCH=2\nMEDIA_ROOT=media\n", encoding="utf-8")

    first = cfg.get_settings()
    assert first.MAX_VIDEOS_PER_BATCH == 2
    assert first.MEDIA_ROOT == (tmp_path / "media").resolve()
    assert cfg.get_settings() is first

    (tmp_path / ".env").write_text("MAX_VIDEOS_PER_BATCH=1\nMEDIA_ROOT=media\n", encoding="utf-8")
    reloaded = cfg.get_settings(force_reload=True)
    assert reloaded is not first
    assert reloaded.MAX_VIDEOS_PER_BATCH == 1
