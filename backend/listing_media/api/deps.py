"""
FastAPI 依赖注入模块

外部路由层通过这些依赖获取在应用启动时创建的媒体服务实例。
上传请求到 RawUpload 的转换由路由层自行完成。
"""

from fastapi import HTTPException, Request

from ..services.media import AvatarService, BatchOrchestrator, MediaStore


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"媒体服务未初始化: {name}")
    return service


def get_orchestrator(request: Request) -> BatchOrchestrator:
    """获取批量媒体处理编排器"""
    return _from_state(request, "orchestrator")


def get_avatar_service(request: Request) -> AvatarService:
    """获取头像服务"""
    return _from_state(request, "avatar_service")


def get_media_store(request: Request) -> MediaStore:
    """获取媒体存储"""
    return _from_state(request, "media_store")
