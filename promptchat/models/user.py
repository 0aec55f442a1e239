from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """
    Anonymous visitor recognised by a long-lived browser cookie.

    The cookie value is a pseudonym only; it never grants access to anything
    beyond the visitor's own conversations.
    """

    __tablename__ = "users"

    cookie_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)


__all__ = ["User"]
