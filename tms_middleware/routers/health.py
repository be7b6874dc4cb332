"""
健康检查路由(无需认证)
"""

from fastapi import APIRouter, Depends

from tms_middleware.core.container import AppContainer
from tms_middleware.dependencies.auth import get_container

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health(container: AppContainer = Depends(get_container)):
    """基础健康检查"""
    return await container.health.check()


@router.get("/detailed")
async def health_detailed(container: AppContainer = Depends(get_container)):
    """详细健康检查: 数据库, 缓存, TMS 后端"""
    return await container.health.detailed()
