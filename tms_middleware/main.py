"""
应用入口

HTTP 服务和 TCP RPC 服务运行在同一个事件循环中:
    python -m tms_middleware.main
    uvicorn tms_middleware.main:create_app --factory --port 3020
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from redis.asyncio import Redis

from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings, get_settings
from tms_middleware.core.container import AppContainer
from tms_middleware.core.db import create_engine, create_session_factory, init_models
from tms_middleware.core.exceptions import AppError, InternalError, UnauthenticatedError
from tms_middleware.core.logging import register_module_logger, setup_logging
from tms_middleware.core.redis import close_redis_client, create_redis_client
from tms_middleware.middleware.access_log import AccessLogMiddleware
from tms_middleware.routers import auth, health, orders, roles, users
from tms_middleware.rpc.server import RpcServer
from tms_middleware.services.tms_client import TmsClient


def _error_response(exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            {"detail": exc.message, "code": exc.code, "details": exc.details}
        ),
        headers=headers,
    )


def create_app(
    settings: Optional[Settings] = None,
    redis_client: Optional[Redis] = None,
    tms_client: Optional[TmsClient] = None,
) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        settings: 应用配置, 为空时从环境变量读取
        redis_client: 外部提供的 Redis 客户端(测试使用), 为空时按配置创建
        tms_client: 外部提供的 TMS 后端客户端, 为空时按配置创建
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 初始化日志系统 (必须在其他组件创建之前)
        setup_logging(
            log_dir=settings.LOG_DIR,
            log_level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
            enable_access_log=settings.ENABLE_ACCESS_LOG,
        )
        register_module_logger("tms_middleware.rpc", "rpc.log", settings.LOG_LEVEL)

        engine = create_engine(settings)
        if settings.DB_AUTO_CREATE:
            await init_models(engine)
        redis = redis_client if redis_client is not None else create_redis_client(settings)
        container = AppContainer(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            redis=redis,
            cache=CacheService(redis, settings.REDIS_TTL, settings.REDIS_RETRY_DELAY),
            tms_client=tms_client
            or TmsClient(settings.TMS_BACKEND_URL, timeout=settings.RPC_TIMEOUT_SECONDS),
        )
        app.state.container = container
        app.state.session_factory = container.session_factory

        if not await container.cache.health_check():
            logger.warning("缓存不可用, 服务将以无缓存模式启动")

        rpc_server = None
        if settings.RPC_ENABLED:
            rpc_server = RpcServer.from_container(container)
            await rpc_server.start()
        app.state.rpc_server = rpc_server

        logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} 已启动, 环境: {settings.ENVIRONMENT}")
        try:
            yield
        finally:
            if rpc_server is not None:
                await rpc_server.stop()
            await container.tms_client.close()
            if redis_client is None:
                await close_redis_client(redis)
            await engine.dispose()
            logger.info("服务已停止")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # 根据环境变量配置CORS
    if settings.DEBUG:
        # 开发环境：允许所有（但不使用Cookie）
        allow_origins = ["*"]
        allow_credentials = False
    else:
        # 生产环境：指定具体域名（使用Cookie）
        allow_origins = settings.CORS_ORIGINS
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 配置访问日志中间件(记录所有 HTTP 请求)
    if settings.ENABLE_ACCESS_LOG:
        app.add_middleware(AccessLogMiddleware)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error_response(exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(
            f"未处理的异常: {request.method} {request.url.path}"
        )
        return _error_response(InternalError("服务内部错误"))

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
        }

    # 注册路由
    for module in (auth, users, roles, orders, health):
        app.include_router(module.router, prefix=settings.API_PREFIX)

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(create_app(_settings), host="0.0.0.0", port=_settings.PORT)
