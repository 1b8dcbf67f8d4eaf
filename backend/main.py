from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from loguru import logger

from listing_media.config import Settings, get_settings
from listing_media.services.media import AvatarService, BatchOrchestrator, MediaStore
from listing_media.services.media.store import PUBLIC_AREAS


def configure_logging(level: str) -> None:
    """替换 loguru 默认输出，附带 bind 的上下文字段"""
    logger.remove()
    logger.add(
        sink=lambda msg: print(msg, end=""),
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level}</level> | "
                "{extra} {message}"
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """创建应用：构造媒体服务并把媒体目录以静态文件方式挂载到公开 URL 前缀下"""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL.value)

    store = MediaStore.from_settings(settings)
    store.ensure_layout()
    orchestrator = BatchOrchestrator(settings, store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"应用启动，媒体目录: {store.root}")

        if not orchestrator.tool.available():
            logger.warning("未找到 ffmpeg/ffprobe，视频上传将会失败")

        # 上次异常退出可能遗留临时文件
        removed = store.purge_temp()
        if removed:
            logger.warning(f"启动清理: 已删除 {removed} 个残留临时文件")
        else:
            logger.info("启动清理: 未发现残留临时文件")

        yield

        # Shutdown
        logger.info("应用已关闭")

    app = FastAPI(title="ListingMedia", lifespan=lifespan)
    app.state.settings = settings
    app.state.media_store = store
    app.state.orchestrator = orchestrator
    app.state.avatar_service = AvatarService(settings, store=store)

    # 只挂载公开区域，临时目录不对外暴露
    for area in PUBLIC_AREAS:
        app.mount(
            f"{settings.PUBLIC_URL_PREFIX}/{area}",
            StaticFiles(directory=store.root / area),
            name=f"media-{area}",
        )

    @app.get("/")
    def read_root():
        return {"message": "Welcome to ListingMedia"}

    return app


app = create_app()
