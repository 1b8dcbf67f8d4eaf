"""ListingMedia API 依赖包

本项目不提供上传路由；此包只向外部路由层暴露获取媒体服务的依赖函数。
"""

from .deps import get_avatar_service, get_media_store, get_orchestrator

__all__ = ["get_orchestrator", "get_avatar_service", "get_media_store"]
