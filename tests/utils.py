from __future__ import annotations

import json
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from promptchat.db import get_db_session
from promptchat.deps import get_db, get_http_client, get_redis
from promptchat.models import ApiSettings, Base, Prompt
from promptchat.models.base import utcnow

PROVIDER_URL = "https://llm.example.test/v1"
PROVIDER_SECRET = "sk-test-provider-secret-0123456789"
PROVIDER_MODEL = "gpt-test"


def make_inmemory_sessionmaker() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


def install_inmemory_db(app) -> sessionmaker[Session]:
    """
    Attach an in-memory SQLite database and an in-memory Redis to the app.
    """

    SessionLocal = make_inmemory_sessionmaker()

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_db_session] = override_get_db

    redis = InMemoryRedis()
    app.state._test_redis = redis

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_redis] = override_get_redis
    return SessionLocal


class FakeProvider:
    """
    Records every upstream call and answers with a configurable handler.

    The default reply is an OpenAI-style completion with `reply` as content.
    """

    def __init__(self, reply: str = "hi there") -> None:
        self.calls: list[dict[str, Any]] = []
        self.reply = reply
        self.handler: Callable[[httpx.Request], httpx.Response] | None = None

    def _default(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=completion_body(self.reply))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(
            {
                "url": str(request.url),
                "headers": dict(request.headers),
                "json": json.loads(request.content or b"{}"),
            }
        )
        handler = self.handler or self._default
        return handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def completion_body(content: str) -> dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": PROVIDER_MODEL,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def install_fake_provider(app, provider: FakeProvider) -> None:
    async def override_get_http_client():
        async with provider.client() as client:
            yield client

    app.dependency_overrides[get_http_client] = override_get_http_client


def seed_prompt(
    session: Session,
    *,
    title: str = "英语口语陪练",
    system_prompt: str = "You are a friendly English tutor.",
    is_active: bool = True,
    age_minutes: int = 0,
) -> Prompt:
    prompt = Prompt(
        title=title,
        description=f"{title} 模板",
        system_prompt=system_prompt,
        is_active=is_active,
        created_at=utcnow() - timedelta(minutes=age_minutes),
    )
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return prompt


def seed_api_settings(
    session: Session,
    *,
    api_url: str = PROVIDER_URL,
    api_key: str = PROVIDER_SECRET,
    default_model: str = PROVIDER_MODEL,
) -> ApiSettings:
    row = ApiSettings(api_url=api_url, api_key=api_key, default_model=default_model)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


class InMemoryRedis:
    """Minimal async Redis stand-in covering the commands the turn lease uses."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self.expiries: dict[str, int] = {}

    async def get(self, key: str):
        return self._data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and key in self._data:
            return None
        self._data[key] = value
        if ex is not None:
            self.expiries[key] = int(ex)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self._data:
                removed += 1
                self._data.pop(key, None)
                self.expiries.pop(key, None)
        return removed


__all__ = [
    "FakeProvider",
    "InMemoryRedis",
    "PROVIDER_MODEL",
    "PROVIDER_SECRET",
    "PROVIDER_URL",
    "completion_body",
    "install_fake_provider",
    "install_inmemory_db",
    "make_inmemory_sessionmaker",
    "seed_api_settings",
    "seed_prompt",
]
