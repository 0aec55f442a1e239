from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ApiSettings(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    Upstream LLM provider configuration.

    The table is expected to hold a single row maintained by the admin
    panel. `api_key` must only ever be read by the relay service.
    """

    __tablename__ = "api_settings"

    api_url: Mapped[str] = mapped_column(String(512), nullable=False)
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    default_model: Mapped[str] = mapped_column(String(128), nullable=False)

    def __repr__(self) -> str:
        return f"ApiSettings(id={self.id!s}, api_url={self.api_url!r}, default_model={self.default_model!r})"


__all__ = ["ApiSettings"]
