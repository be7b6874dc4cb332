"""
缓存服务

对 Redis 的一层薄封装, 只提供业务需要的最小接口:
get / set / set_if_absent / delete / delete_by_prefix / health_check

缓存只是优化手段:
- 读失败按未命中处理, 写失败只记录日志, 任何 Redis 异常都不会抛给调用方
- Redis 连接失败后, 在 REDIS_RETRY_DELAY 秒内跳过缓存读取和回写, 直接走数据库
- 删除(失效)和黑名单写入不受冷却期限制, 每次都会尝试, 保证恢复后不会读到旧数据
"""

import json
import time
import uuid
from typing import Any, Dict, List, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from tms_middleware.core.constants import CACHE_DELETE_BATCH_SIZE, CacheKeys, CacheTTL

_GLOB_SPECIAL_CHARS = ("\\", "*", "?", "[", "]")


def escape_pattern(prefix: str) -> str:
    """转义 Redis glob 特殊字符, 保证前缀按字面匹配"""
    for char in _GLOB_SPECIAL_CHARS:
        prefix = prefix.replace(char, f"\\{char}")
    return prefix


class CacheService:
    """缓存服务类"""

    def __init__(
        self,
        redis: Redis,
        default_ttl: Optional[int] = None,
        retry_delay: float = 1.0,
        batch_size: int = CACHE_DELETE_BATCH_SIZE,
    ):
        self.redis = redis
        self.default_ttl = default_ttl
        self.retry_delay = retry_delay
        self.batch_size = batch_size
        self._down_until = 0.0

    @property
    def available(self) -> bool:
        """缓存当前是否可用(不在故障冷却期内)"""
        return time.monotonic() >= self._down_until

    def _handle_error(self, action: str, key: str, error: RedisError):
        if isinstance(error, (ConnectionError, TimeoutError)):
            # 连接级故障: 进入冷却期, 期间跳过缓存读取和回写
            self._down_until = time.monotonic() + self.retry_delay
            logger.warning(
                f"缓存不可用, {self.retry_delay}s 内跳过缓存: {action} key={key}, error={error}"
            )
        else:
            logger.warning(f"缓存操作失败: {action} key={key}, error={error}")

    async def get(self, key: str) -> Optional[Any]:
        """
        读取缓存

        Args:
            key: 缓存 Key

        Returns:
            反序列化后的值, 不存在或缓存不可用时返回 None
        """
        if not self.available:
            return None
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            self._handle_error("get", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"缓存值无法解析, 按未命中处理: key={key}, error={e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """
        写入缓存(尽力而为, 失败只记录日志)

        Args:
            key: 缓存 Key
            value: 可 JSON 序列化的值
            ttl: 过期时间(秒), 为空时使用默认过期时间
        """
        if not self.available:
            return
        ttl = ttl if ttl is not None else self.default_ttl
        try:
            payload = json.dumps(value)
            if ttl:
                await self.redis.set(key, payload, ex=ttl)
            else:
                await self.redis.set(key, payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"缓存值无法序列化: key={key}, error={e}")
        except RedisError as e:
            self._handle_error("set", key, e)

    async def set_if_absent(self, key: str, value: Any, ttl: int) -> Optional[bool]:
        """
        仅当 Key 不存在时写入(SET NX), 不受冷却期限制

        Returns:
            True 表示写入成功, False 表示 Key 已存在, None 表示缓存不可用
        """
        try:
            return bool(await self.redis.set(key, json.dumps(value), ex=ttl, nx=True))
        except RedisError as e:
            self._handle_error("set_if_absent", key, e)
            return None

    async def delete(self, key: str):
        """删除单个缓存 Key(不受冷却期限制)"""
        try:
            await self.redis.delete(key)
        except RedisError as e:
            self._handle_error("delete", key, e)

    async def delete_by_prefix(self, prefix: str) -> int:
        """
        按前缀批量删除缓存

        使用 SCAN 遍历 Key, 每 batch_size 个删除一次, 避免一次性删除大量 Key.
        失效操作不受冷却期限制, 冷却期内同样会尝试删除.

        Args:
            prefix: Key 前缀, 如 "users:"

        Returns:
            int: 删除的 Key 数量
        """
        deleted = 0
        batch: List[str] = []
        try:
            async for key in self.redis.scan_iter(
                match=f"{escape_pattern(prefix)}*", count=self.batch_size
            ):
                batch.append(key)
                if len(batch) >= self.batch_size:
                    deleted += await self.redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.redis.delete(*batch)
        except RedisError as e:
            self._handle_error("delete_by_prefix", prefix, e)
            return deleted

        if deleted:
            logger.debug(f"已按前缀清除缓存: prefix={prefix}, 数量={deleted}")
        return deleted

    async def health_check(self) -> bool:
        """
        检查缓存是否可读写

        写入一个随机值(5秒过期)再读回, 读到的值一致才认为缓存正常.
        健康检查不受冷却期限制, 用于探测缓存是否已经恢复.
        """
        key = f"{CacheKeys.HEALTH_CHECK}{uuid.uuid4().hex}"
        value = uuid.uuid4().hex
        try:
            await self.redis.set(key, json.dumps(value), ex=CacheTTL.HEALTH_CHECK)
            raw = await self.redis.get(key)
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning(f"缓存健康检查失败: {e}")
            return False
        healthy = raw is not None and json.loads(raw) == value
        if healthy:
            self._down_until = 0.0
        return healthy

    async def stats(self) -> Dict[str, Any]:
        """获取 Redis 内存统计信息"""
        try:
            info = await self.redis.info("memory")
            keys = await self.redis.dbsize()
        except RedisError as e:
            logger.warning(f"获取缓存统计信息失败: {e}")
            return {"error": str(e)}
        return {
            "used_memory": info.get("used_memory"),
            "used_memory_human": info.get("used_memory_human"),
            "keys": keys,
        }

    async def flush_all(self):
        """清空当前数据库的全部缓存"""
        try:
            await self.redis.flushdb()
            logger.info("缓存已清空")
        except RedisError as e:
            logger.warning(f"清空缓存失败: {e}")
