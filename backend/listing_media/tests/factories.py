"""测试用的数据工厂与假媒体工具"""

import asyncio
import io
from pathlib import Path
from typing import Dict, List

from PIL import Image

from listing_media.core.ffmpeg import MediaToolError
from listing_media.core.models import RawUpload, ScreenshotOptions, TranscodeOptions, VideoMetadata


def make_image_bytes(fmt: str = "JPEG", size=(640, 480), color=(200, 80, 40)) -> bytes:
    """用 Pillow 生成一张纯色图片"""
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = color + (255,) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, fmt)
    return buffer.getvalue()


def make_video_bytes(
    duration: float = 90,
    width: int = 1920,
    height: int = 1080,
    delay: float = 0,
    fail: str = "",
) -> bytes:
    """生成 FakeMediaTool 能识别的“视频”内容"""
    return f"video;duration={duration};size={width}x{height};delay={delay};fail={fail}".encode()


def parse_fake_video(content: bytes) -> Dict[str, str]:
    text = content.decode()
    if not text.startswith(("video;", "mp4;")):
        raise MediaToolError("Invalid data found when processing input")
    return dict(part.split("=", 1) for part in text.split(";")[1:])


def image_upload(filename="photo.jpg", mime="image/jpeg", size=None, fmt="JPEG", dims=(640, 480)) -> RawUpload:
    content = make_image_bytes(fmt, dims)
    return RawUpload(
        filename=filename,
        mime_type=mime,
        size=len(content) if size is None else size,
        content=content,
    )


def video_upload(filename="tour.mp4", mime="video/mp4", size=None, **video) -> RawUpload:
    content = make_video_bytes(**video)
    return RawUpload(
        filename=filename,
        mime_type=mime,
        size=len(content) if size is None else size,
        content=content,
    )


def stored_files(root: Path) -> List[Path]:
    """媒体根目录下的所有文件（含临时目录）"""
    return sorted(p for p in Path(root).rglob("*") if p.is_file())


class FakeMediaTool:
    """不依赖 ffmpeg 的 MediaTool 实现

    probe 从文件内容中读取时长与分辨率；transcode 写出同样格式的“mp4”；
    screenshot 按视频宽高比生成一张真实的 JPEG。
    内容中的 fail=probe/transcode/screenshot 触发对应阶段失败，delay 模拟耗时。
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.cancelled: List[str] = []

    async def _maybe_wait(self, spec: Dict[str, str], stage: str) -> None:
        delay = float(spec.get("delay") or 0)
        if delay:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled.append(stage)
                raise

    async def probe(self, path: Path) -> VideoMetadata:
        self.calls.append(("probe", path))
        spec = parse_fake_video(path.read_bytes())
        if spec.get("fail") == "probe":
            raise MediaToolError("ffprobe 退出码 1: moov atom not found", returncode=1)
        width, height = (int(v) for v in spec["size"].split("x"))
        return VideoMetadata(
            duration=float(spec["duration"]),
            width=width,
            height=height,
            size=path.stat().st_size,
            format="mov,mp4,m4a,3gp,3g2,mj2",
        )

    async def transcode(
        self,
        source: Path,
        destination: Path,
        options: TranscodeOptions,
        metadata: VideoMetadata,
    ) -> Path:
        self.calls.append(("transcode", source, destination, options))
        spec = parse_fake_video(source.read_bytes())
        # 先写出一部分，模拟编码中途失败留下的半成品
        destination.write_bytes(b"partial")
        await self._maybe_wait(spec, "transcode")
        if spec.get("fail") == "transcode":
            raise MediaToolError("ffmpeg 退出码 1: Error while decoding stream", returncode=1)
        width, height = metadata.width, metadata.height
        if metadata.exceeds(options.max_width, options.max_height):
            width, height = options.max_width, options.max_height
        destination.write_bytes(
            f"mp4;duration={metadata.duration};size={width}x{height};delay=0;fail={spec.get('fail', '')}".encode()
            + b"\0" * 2048
        )
        return destination

    async def screenshot(self, source: Path, destination: Path, options: ScreenshotOptions) -> Path:
        self.calls.append(("screenshot", source, destination, options))
        spec = parse_fake_video(source.read_bytes().split(b"\0", 1)[0])
        if spec.get("fail") == "screenshot":
            raise MediaToolError("ffmpeg 未输出截图", returncode=0)
        width, height = (int(v) for v in spec["size"].split("x"))
        frame_width = max(2, round(options.height * width / height))
        Image.new("RGB", (frame_width, options.height), (10, 120, 200)).save(destination, "JPEG")
        return destination
