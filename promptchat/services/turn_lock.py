"""
Per-conversation turn lease.

Two tabs of the same visitor may submit to one conversation at the same time.
The lease is a Redis key set with NX/EX; while it is held a second turn is
rejected with TurnInProgress instead of interleaving user/assistant rows.
"""

from __future__ import annotations

import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from redis.asyncio import Redis

from promptchat.errors import TurnInProgress
from promptchat.logging_config import logger
from promptchat.settings import settings

TURN_LOCK_KEY_TEMPLATE = "promptchat:turn-lock:{conversation_id}"


def turn_lock_key(conversation_id: UUID) -> str:
    return TURN_LOCK_KEY_TEMPLATE.format(conversation_id=conversation_id)


@asynccontextmanager
async def conversation_turn_lock(
    redis: Redis,
    conversation_id: UUID,
) -> AsyncIterator[None]:
    if not settings.turn_lock_enabled:
        yield
        return

    key = turn_lock_key(conversation_id)
    token = secrets.token_hex(16)
    acquired = await redis.set(key, token, nx=True, ex=settings.turn_lock_ttl_seconds)
    if not acquired:
        logger.info("turn lock busy for conversation_id=%s", conversation_id)
        raise TurnInProgress(details={"conversation_id": str(conversation_id)})

    try:
        yield
    finally:
        # 仅释放自己持有的租约；租约过期后可能已被其他请求重新获取。
        current = await redis.get(key)
        if current == token:
            await redis.delete(key)
        else:
            logger.warning(
                "turn lock for conversation_id=%s expired before release", conversation_id
            )


__all__ = ["TURN_LOCK_KEY_TEMPLATE", "conversation_turn_lock", "turn_lock_key"]
