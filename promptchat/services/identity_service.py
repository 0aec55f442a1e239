"""
Anonymous visitor identity.

A browser is recognised by an opaque random token kept in a long-lived
cookie. The token is a pseudonym: it scopes a visitor to their own
conversations and is never consulted for administrative decisions.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from promptchat.errors import IdentityCreationFailed
from promptchat.logging_config import logger
from promptchat.models import User

# 32 bytes -> 256 bits of entropy, 43 url-safe characters.
CLIENT_TOKEN_BYTES = 32
MAX_CLIENT_TOKEN_LENGTH = 64


@dataclass(frozen=True)
class ResolvedIdentity:
    user_id: UUID
    client_token: str
    is_new: bool


def generate_client_token() -> str:
    return secrets.token_urlsafe(CLIENT_TOKEN_BYTES)


def find_user_by_token(db: Session, client_token: str | None) -> User | None:
    token = (client_token or "").strip()
    if not token or len(token) > MAX_CLIENT_TOKEN_LENGTH:
        return None
    return db.execute(select(User).where(User.cookie_id == token)).scalars().first()


def resolve_identity(db: Session, client_token: str | None) -> ResolvedIdentity:
    """
    Map a client token to a durable user, minting both when needed.

    A collision on the freshly generated token is treated as an integrity
    failure and is not retried.
    """
    existing = find_user_by_token(db, client_token)
    if existing is not None:
        return ResolvedIdentity(user_id=existing.id, client_token=existing.cookie_id, is_new=False)

    new_token = generate_client_token()
    user = User(cookie_id=new_token)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.error("identity: generated visitor token collided with an existing user")
        raise IdentityCreationFailed() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("identity: failed to persist new visitor")
        raise IdentityCreationFailed() from exc

    logger.info("identity: minted anonymous visitor user_id=%s", user.id)
    return ResolvedIdentity(user_id=user.id, client_token=new_token, is_new=True)


__all__ = [
    "CLIENT_TOKEN_BYTES",
    "ResolvedIdentity",
    "find_user_by_token",
    "generate_client_token",
    "resolve_identity",
]
