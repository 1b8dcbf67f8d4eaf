"""ffmpeg / ffprobe 封装模块

把外部媒体工具抽象为 MediaTool 协议（probe / transcode / screenshot），
具体实现 FFmpegTool 通过 asyncio 子进程调用 ffprobe 与 ffmpeg。
测试中可以替换为任意实现了同样协议的对象。

Example:
    >>> tool = FFmpegTool.from_settings(settings)
    >>> metadata = await tool.probe(Path("/tmp/input.mov"))
    >>> await tool.transcode(Path("/tmp/input.mov"), Path("/media/out.mp4"), TranscodeOptions(), metadata)
"""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from typing import List, Optional, Protocol

from loguru import logger

from .models import ScreenshotOptions, TranscodeOptions, VideoMetadata

# stderr 只保留末尾若干字符写入异常信息
STDERR_TAIL_CHARS = 2000


class MediaToolError(RuntimeError):
    """外部媒体工具调用失败"""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class MediaTool(Protocol):
    """外部转码/探测工具接口"""

    async def probe(self, path: Path) -> VideoMetadata:
        ...

    async def transcode(
        self,
        source: Path,
        destination: Path,
        options: TranscodeOptions,
        metadata: VideoMetadata,
    ) -> Path:
        ...

    async def screenshot(self, source: Path, destination: Path, options: ScreenshotOptions) -> Path:
        ...


def parse_probe_output(raw: str | bytes) -> VideoMetadata:
    """解析 `ffprobe -print_format json -show_format -show_streams` 的输出

    Raises:
        MediaToolError: 输出不是合法 JSON 或不包含视频流
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MediaToolError(f"ffprobe 输出无法解析: {e}")

    streams = data.get("streams") or []
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video_stream is None:
        raise MediaToolError("未找到视频流")

    fmt = data.get("format") or {}
    try:
        duration = float(fmt.get("duration") or video_stream.get("duration") or 0)
        width = int(video_stream.get("width") or 0)
        height = int(video_stream.get("height") or 0)
        size = int(fmt.get("size") or 0)
    except (TypeError, ValueError) as e:
        raise MediaToolError(f"ffprobe 元数据格式错误: {e}")

    return VideoMetadata(
        duration=duration,
        width=width,
        height=height,
        size=size,
        format=fmt.get("format_name") or "unknown",
    )


def build_probe_args(path: Path) -> List[str]:
    return [
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]


def build_transcode_args(
    source: Path,
    destination: Path,
    options: TranscodeOptions,
    downscale: bool,
) -> List[str]:
    """构造 ffmpeg 转码参数

    超出最大分辨率时按比例缩小到目标框内并居中补边；
    否则只把宽高截为偶数（yuv420p 要求）。
    """
    args = ["-hide_banner", "-loglevel", "error", "-i", str(source)]

    if downscale:
        w, h = options.max_width, options.max_height
        video_filter = (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
        )
    else:
        video_filter = "scale=trunc(iw/2)*2:trunc(ih/2)*2"
    args.extend(["-vf", video_filter])

    args.extend([
        "-c:v", options.video_codec,
        "-crf", str(options.crf),
        "-preset", options.preset,
        "-pix_fmt", options.pixel_format,
    ])
    args.extend([
        "-c:a", options.audio_codec,
        "-b:a", options.audio_bitrate,
    ])
    if options.faststart:
        # moov 放在文件头，边下边播
        args.extend(["-movflags", "+faststart"])

    args.extend(["-y", str(destination)])
    return args


def build_screenshot_args(source: Path, destination: Path, options: ScreenshotOptions) -> List[str]:
    return [
        "-hide_banner", "-loglevel", "error",
        "-ss", f"{options.offset:g}",
        "-i", str(source),
        "-frames:v", "1",
        "-vf", f"scale=-2:{options.height}",
        "-q:v", "2",
        "-y", str(destination),
    ]


class FFmpegTool:
    """基于 ffmpeg/ffprobe 子进程的 MediaTool 实现"""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: float = 600.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "FFmpegTool":
        return cls(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            timeout=settings.FFMPEG_TIMEOUT_SECONDS,
        )

    def available(self) -> bool:
        """ffmpeg 与 ffprobe 是否都能在 PATH 或给定路径中找到"""
        return all(
            shutil.which(executable) is not None
            for executable in (self.ffmpeg_path, self.ffprobe_path)
        )

    async def probe(self, path: Path) -> VideoMetadata:
        stdout, _ = await self._run([self.ffprobe_path, *build_probe_args(path)])
        metadata = parse_probe_output(stdout)
        logger.debug(
            f"探测完成: {path.name} {metadata.width}x{metadata.height}, "
            f"{metadata.duration:.2f}s, format={metadata.format}"
        )
        return metadata

    async def transcode(
        self,
        source: Path,
        destination: Path,
        options: TranscodeOptions,
        metadata: VideoMetadata,
    ) -> Path:
        downscale = metadata.exceeds(options.max_width, options.max_height)
        if downscale:
            logger.info(
                f"视频 {metadata.width}x{metadata.height} 超过 "
                f"{options.max_width}x{options.max_height}，将缩放"
            )
        args = build_transcode_args(source, destination, options, downscale)
        await self._run([self.ffmpeg_path, *args])
        return destination

    async def screenshot(self, source: Path, destination: Path, options: ScreenshotOptions) -> Path:
        await self._run([self.ffmpeg_path, *build_screenshot_args(source, destination, options)])
        if not destination.exists():
            # 偏移超出视频长度时 ffmpeg 可能正常退出但不输出任何帧
            raise MediaToolError(f"ffmpeg 未输出截图: {destination.name}")
        return destination

    async def _run(self, cmd: List[str]) -> tuple[bytes, bytes]:
        """运行子进程并等待结束；超时或被取消时终止子进程"""
        logger.debug(f"执行命令: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MediaToolError(f"无法启动 {cmd[0]}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise MediaToolError(f"{Path(cmd[0]).name} 执行超时（{self.timeout}s）")
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
            raise MediaToolError(
                f"{Path(cmd[0]).name} 退出码 {process.returncode}: {stderr_text.strip()}",
                returncode=process.returncode,
                stderr=stderr_text,
            )
        return stdout, stderr

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


__all__ = [
    "MediaTool",
    "MediaToolError",
    "FFmpegTool",
    "parse_probe_output",
    "build_probe_args",
    "build_transcode_args",
    "build_screenshot_args",
]
