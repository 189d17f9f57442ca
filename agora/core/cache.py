"""
Redis access and the small key-value backends built on it.

Redis is optional: without REDIS_URL rate limiting is skipped and per-client
state lives in process memory.
"""

import threading
from typing import Any, Dict, Optional, Union

import redis

from agora.core.config import settings
from agora.services.logger import logger


class DummyRedis:
    """Stands in for an unreachable server: reads miss, writes are dropped."""

    def get(self, *args: Any, **kwargs: Any) -> Optional[str]:
        return None

    def set(self, *args: Any, **kwargs: Any) -> None:
        return None

    def setex(self, *args: Any, **kwargs: Any) -> None:
        return None

    def incr(self, *args: Any, **kwargs: Any) -> int:
        return 1

    def delete(self, *args: Any, **kwargs: Any) -> None:
        return None

    def ping(self, *args: Any, **kwargs: Any) -> bool:
        return False


_redis_client: Optional[Union[redis.Redis, DummyRedis]] = None


def get_redis_client() -> Optional[Union[redis.Redis, DummyRedis]]:
    """
    Shared Redis client, created on first use.

    None when REDIS_URL is unset; a DummyRedis when the server does not answer
    the first ping.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = settings.redis_connection_url
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        _redis_client = client
    except redis.RedisError as exc:
        logger.warning(f"Redis connection failed ({exc}). Falling back to no-op client.")
        _redis_client = DummyRedis()

    return _redis_client


def is_real_redis(client: Any) -> bool:
    return client is not None and not isinstance(client, DummyRedis)


class MemoryStateBackend:
    """Thread-safe dict; state lives as long as the process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class RedisStateBackend:
    """String values under plain keys; shared by every API process."""

    def __init__(self, client) -> None:
        self._client = client

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)


def get_state_backend() -> Union[RedisStateBackend, MemoryStateBackend]:
    """Redis when it answers, otherwise process memory."""
    client = get_redis_client()
    if is_real_redis(client):
        return RedisStateBackend(client)

    logger.info("Client state stored in process memory (Redis not available)")
    return MemoryStateBackend()
