"""视频缩略图 (thumbnail.py) 的单元测试"""

import pytest
from PIL import Image

from listing_media.core.errors import ErrorKind, ProcessingError, StorageError
from listing_media.services.media.store import StoreArea
from listing_media.services.media.thumbnail import ThumbnailExtractor, capture_offset

from factories import make_video_bytes, stored_files


@pytest.fixture
def extractor(store, fake_tool, policy):
    return ThumbnailExtractor(store, fake_tool, policy)


def write_normalized_video(store, **video):
    """模拟转码后的视频文件"""
    path = store.allocate_path(StoreArea.VIDEOS, ".mp4")
    path.write_bytes(make_video_bytes(**video).replace(b"video;", b"mp4;", 1))
    return path


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "width,height",
    [(1920, 1080), (1080, 1920), (640, 480), (1920, 800), (720, 720), (320, 180)],
)
async def test_thumbnail_is_always_1280x720(extractor, store, width, height):
    """
    Given: 任意宽高比的视频
    When: 生成缩略图
    Then: 缩略图恰好是 1280x720 的渐进式 JPEG，截帧临时文件已删除
    """
    video_path = write_normalized_video(store, width=width, height=height, duration=30)

    thumbnail_path = await extractor.extract(video_path, duration=30)

    assert thumbnail_path.parent == store.root / StoreArea.THUMBNAILS.value
    with Image.open(thumbnail_path) as thumbnail:
        assert thumbnail.format == "JPEG"
        assert thumbnail.size == (1280, 720)
        assert thumbnail.info.get("progressive") or thumbnail.info.get("progression")
    assert sorted(stored_files(store.root)) == sorted([video_path, thumbnail_path])


@pytest.mark.asyncio
async def test_screenshot_taken_at_one_second_with_720_height(extractor, store, fake_tool):
    video_path = write_normalized_video(store)

    await extractor.extract(video_path, duration=90)

    options = fake_tool.calls[-1][3]
    assert options.offset == 1.0
    assert options.height == 720


@pytest.mark.asyncio
async def test_short_video_uses_middle_frame(extractor, store, fake_tool):
    video_path = write_normalized_video(store, duration=0.8)

    await extractor.extract(video_path, duration=0.8)

    assert fake_tool.calls[-1][3].offset == pytest.approx(0.4)


@pytest.mark.asyncio
async def test_screenshot_failure(extractor, store):
    """
    Given: ffmpeg 截帧失败
    When: 生成缩略图
    Then: 抛出 THUMBNAIL_GENERATION，缩略图区和临时区没有残留
    """
    video_path = write_normalized_video(store, fail="screenshot")

    with pytest.raises(ProcessingError) as exc_info:
        await extractor.extract(video_path)

    assert exc_info.value.kind == ErrorKind.THUMBNAIL_GENERATION
    assert stored_files(store.root) == [video_path]


@pytest.mark.asyncio
async def test_screenshot_failure_survives_cleanup_failure(extractor, store, monkeypatch):
    """
    Given: 截帧失败，且删除截帧临时文件也失败
    When: 生成缩略图
    Then: 仍然抛出 THUMBNAIL_GENERATION
    """

    def failing_delete(path):
        raise StorageError(f"删除文件失败: {path}")

    video_path = write_normalized_video(store, fail="screenshot")
    monkeypatch.setattr(store, "delete", failing_delete)

    with pytest.raises(ProcessingError) as exc_info:
        await extractor.extract(video_path)

    assert exc_info.value.kind == ErrorKind.THUMBNAIL_GENERATION


@pytest.mark.asyncio
async def test_corrupt_frame_is_thumbnail_failure(extractor, store, fake_tool, monkeypatch):
    async def broken_screenshot(source, destination, options):
        destination.write_bytes(b"not a jpeg")
        return destination

    monkeypatch.setattr(fake_tool, "screenshot", broken_screenshot)
    video_path = write_normalized_video(store)

    with pytest.raises(ProcessingError) as exc_info:
        await extractor.extract(video_path)

    assert exc_info.value.kind == ErrorKind.THUMBNAIL_GENERATION
    assert stored_files(store.root) == [video_path]


@pytest.mark.parametrize(
    "offset,duration,expected",
    [(1.0, None, 1.0), (1.0, 90, 1.0), (1.0, 1.0, 0.5), (1.0, 0.5, 0.25), (1.0, 0, 1.0)],
)
def test_capture_offset(offset, duration, expected):
    assert capture_offset(offset, duration) == expected
