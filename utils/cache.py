# -*- coding: utf-8 -*-
"""token 缓存与进程内请求合并"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis

from utils.logger import logger


class TokenCache(Protocol):
    """token 缓存接口，可替换为分布式实现"""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryTokenCache:
    """进程内缓存"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if self._clock() >= deadline:
            self._entries.pop(key, None)
            return None
        return value

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (value, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class RedisInstanceManager:
    _instances: Dict[int, aioredis.Redis] = {}

    @classmethod
    def get_redis_instance(cls) -> aioredis.Redis:
        from config.settings import settings

        db = settings.redis.db

        if db not in cls._instances:
            pool = aioredis.ConnectionPool(
                username=settings.redis.user,
                host=settings.redis.host,
                port=settings.redis.port,
                password=settings.redis.password,
                db=db,
                decode_responses=False,
                max_connections=settings.redis.max_connections,
            )
            redis_client = aioredis.Redis(connection_pool=pool)
            cls._instances[db] = redis_client
            logger.info(f"Created Redis connection for db={db}")

        return cls._instances[db]

    @classmethod
    async def close_all(cls):
        for redis_instance in cls._instances.values():
            await redis_instance.aclose()
        cls._instances.clear()
        logger.info("All Redis connections closed")


def get_redis() -> aioredis.Redis:
    """获取默认 Redis 实例"""
    return RedisInstanceManager.get_redis_instance()


class RedisTokenCache:
    """Redis 缓存，多进程/多实例共享 token，避免各自消耗获取配额"""

    def __init__(self, redis_client: Optional[aioredis.Redis] = None, prefix: str = ""):
        self._redis = redis_client
        self.prefix = prefix

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        value = await self.redis.get(self.prefix + key)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        await self.redis.set(self.prefix + key, value.encode("utf-8"), ex=max(int(ttl), 1))

    async def delete(self, key: str) -> None:
        await self.redis.delete(self.prefix + key)


class SingleFlight:
    """同一个 key 同时只有一个在途请求，其余调用方等待同一个结果

    在途任务用 shield 包裹，单个调用方被取消不会影响其他等待者。
    """

    def __init__(self):
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task

            def _cleanup(done: "asyncio.Future[Any]", key: str = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]
                # 所有等待者都被取消时避免 "exception was never retrieved"
                if not done.cancelled():
                    done.exception()

            task.add_done_callback(_cleanup)
        else:
            logger.debug(f"合并在途请求: {key}")
        return await asyncio.shield(task)
