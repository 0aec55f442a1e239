"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import promptchat`
works consistently in all tests.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fastapi.testclient import TestClient  # noqa: E402

from promptchat.settings import settings  # noqa: E402
from tests.utils import (  # noqa: E402
    FakeProvider,
    install_fake_provider,
    install_inmemory_db,
    make_inmemory_sessionmaker,
)


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    # 测试环境不连接 Postgres，也不读取本机的 PROVIDER_* 环境变量。
    monkeypatch.setattr(settings, "auto_apply_db_migrations", False)
    monkeypatch.setattr(settings, "provider_api_url", None)
    monkeypatch.setattr(settings, "provider_api_key", None)
    monkeypatch.setattr(settings, "provider_default_model", None)
    monkeypatch.setattr(settings, "relay_access_token", None)
    monkeypatch.setattr(settings, "turn_lock_enabled", True)
    monkeypatch.setattr(settings, "visitor_cookie_secure", False)


@pytest.fixture()
def db_session():
    SessionLocal = make_inmemory_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        SessionLocal.kw["bind"].dispose()


@pytest.fixture()
def app_with_inmemory_db(monkeypatch):
    from promptchat import routes
    from promptchat.routes import create_app

    app = create_app()
    SessionLocal = install_inmemory_db(app)
    # lifespan 中的 provider 配置初始化同样走内存库
    monkeypatch.setattr(routes, "SessionLocal", SessionLocal)
    return app, SessionLocal


@pytest.fixture()
def provider(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    fake = FakeProvider()
    install_fake_provider(app, fake)
    return fake


@pytest.fixture()
def client(app_with_inmemory_db, provider):
    app, _ = app_with_inmemory_db
    with TestClient(app) as test_client:
        yield test_client
