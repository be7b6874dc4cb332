from loguru import logger
from redis.asyncio import Redis, ConnectionPool
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError

from tms_middleware.core.config import Settings


def create_redis_client(settings: Settings) -> Redis:
    """
    创建 Redis 客户端（使用连接池）

    重连策略: 指数退避, 单次等待最长 5 秒, 最多重试 REDIS_MAX_RETRIES 次,
    之后命令直接失败, 由 CacheService 降级为不使用缓存.

    Args:
        settings: 应用配置

    Returns:
        Redis: Redis 异步客户端
    """
    retry = Retry(
        ExponentialBackoff(cap=5, base=0.5),
        retries=settings.REDIS_MAX_RETRIES,
    )
    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=50,  # 最大连接数
        decode_responses=True,  # 自动解码响应为字符串
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_keepalive=True,
        retry=retry,
        retry_on_error=[ConnectionError, TimeoutError],
    )
    logger.info(
        f"Redis 客户端已创建: {settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
    )
    return Redis(connection_pool=pool)


async def close_redis_client(client: Redis):
    """
    关闭 Redis 客户端和连接池
    通常在应用关闭时调用
    """
    await client.aclose()
    await client.connection_pool.disconnect()
    logger.info("Redis 客户端已关闭")
