from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from promptchat.logging_config import logger
from promptchat.models import ApiSettings
from promptchat.settings import settings


@dataclass(frozen=True)
class ProviderConfig:
    """Snapshot of the upstream provider settings used for one relay call."""

    api_url: str
    api_key: str = field(repr=False)
    model: str

    @property
    def chat_completions_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/chat/completions"


def load_provider_config(db: Session) -> ProviderConfig | None:
    """
    Read the active provider settings; None when nothing usable is configured.
    """
    row = db.execute(
        select(ApiSettings).order_by(ApiSettings.updated_at.desc()).limit(1)
    ).scalars().first()
    if row is None:
        return None

    api_url = (row.api_url or "").strip()
    api_key = (row.api_key or "").strip()
    model = (row.default_model or "").strip()
    if not (api_url and api_key and model):
        logger.warning("api_settings row %s is incomplete; treating provider as unconfigured", row.id)
        return None
    return ProviderConfig(api_url=api_url, api_key=api_key, model=model)


def has_provider_settings(session: Session) -> bool:
    return session.execute(select(ApiSettings.id).limit(1)).first() is not None


def ensure_provider_settings(session: Session) -> ApiSettings | None:
    """
    Seed api_settings from PROVIDER_* environment variables on first start.

    Environment values are only initial defaults: once a row exists it is owned
    by the admin panel and never overwritten here.
    """
    if has_provider_settings(session):
        return None

    api_url = (settings.provider_api_url or "").strip()
    api_key = (settings.provider_api_key or "").strip()
    model = (settings.provider_default_model or "").strip()
    if not (api_url and api_key and model):
        logger.warning(
            "AI 服务尚未配置：api_settings 为空，且未提供完整的 PROVIDER_API_URL / "
            "PROVIDER_API_KEY / PROVIDER_DEFAULT_MODEL"
        )
        return None

    row = ApiSettings(api_url=api_url, api_key=api_key, default_model=model)
    session.add(row)
    session.commit()
    logger.info("已根据环境变量初始化 api_settings | api_url=%s model=%s", api_url, model)
    return row


__all__ = [
    "ProviderConfig",
    "ensure_provider_settings",
    "has_provider_settings",
    "load_provider_config",
]
