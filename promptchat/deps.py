from collections.abc import AsyncIterator, Iterator

import httpx
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from .db import get_db_session
from .redis_client import get_redis_client
from .settings import settings


async def get_redis() -> Redis:
    """
    FastAPI dependency that provides a shared Redis client.

    Tests override this dependency with an in-memory fake.
    """
    return get_redis_client()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """
    Short-lived AsyncClient for upstream provider calls.
    """
    async with httpx.AsyncClient(timeout=settings.relay_timeout_seconds) as client:
        yield client


def get_db() -> Iterator[Session]:
    """
    Provide a synchronous SQLAlchemy session.
    """
    yield from get_db_session()
