"""
Redis client construction.

The chat core keeps no in-process shared state; the only Redis usage is the
per-conversation turn lease (see services/turn_lock.py).
"""

from __future__ import annotations

import asyncio
from weakref import WeakKeyDictionary

from redis.asyncio import Redis

from .settings import settings

_redis_clients_by_loop: WeakKeyDictionary[asyncio.AbstractEventLoop, Redis] = (
    WeakKeyDictionary()
)


def _ensure_event_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError as exc:  # pragma: no cover - easier debugging for sync misuse
        raise RuntimeError(
            "get_redis_client() 必须在运行中的事件循环内调用，请在 async 环境或 "
            "asyncio.run(...) 内部获取 Redis 客户端"
        ) from exc


def _create_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


def get_redis_client() -> Redis:
    """
    Return a Redis client bound to the current event loop.
    """

    loop = _ensure_event_loop()
    client = _redis_clients_by_loop.get(loop)
    if client is None:
        client = _create_client()
        _redis_clients_by_loop[loop] = client
    return client


__all__ = ["get_redis_client"]
