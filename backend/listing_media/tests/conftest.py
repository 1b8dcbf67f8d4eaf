"""测试配置和共享fixture"""

from pathlib import Path

import pytest

from listing_media.config import Settings
from listing_media.services.media.store import MediaStore

from factories import FakeMediaTool


@pytest.fixture
def media_root(tmp_path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest.fixture
def test_settings(media_root) -> Settings:
    """测试用配置，不读取 .env 文件"""
    return Settings(
        _env_file=None,
        MEDIA_ROOT=media_root,
        VIDEO_WORKERS=2,
        IMAGE_WORKERS=4,
    )


@pytest.fixture
def policy(test_settings):
    return test_settings.to_policy()


@pytest.fixture
def store(test_settings) -> MediaStore:
    media_store = MediaStore.from_settings(test_settings)
    media_store.ensure_layout()
    return media_store


@pytest.fixture
def fake_tool() -> FakeMediaTool:
    return FakeMediaTool()
