"""
FastAPI dependencies that map the visitor cookie to a user.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from promptchat.deps import get_db
from promptchat.errors import not_found
from promptchat.services.identity_service import find_user_by_token, resolve_identity
from promptchat.settings import settings


@dataclass(frozen=True)
class Visitor:
    user_id: UUID
    is_new: bool = False


def set_visitor_cookie(response: Response, client_token: str) -> None:
    response.set_cookie(
        key=settings.visitor_cookie_name,
        value=client_token,
        max_age=settings.visitor_cookie_max_age_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.visitor_cookie_secure,
    )


def require_visitor(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> Visitor:
    """
    Resolve (or mint) the visitor. A newly minted token is written back as a
    cookie on the outgoing response.
    """
    token = request.cookies.get(settings.visitor_cookie_name)
    identity = resolve_identity(db, token)
    if identity.is_new:
        set_visitor_cookie(response, identity.client_token)
    return Visitor(user_id=identity.user_id, is_new=identity.is_new)


def require_existing_visitor(
    request: Request,
    db: Session = Depends(get_db),
) -> Visitor:
    """
    Lookup only: conversation-scoped endpoints never mint identities, so an
    unknown cookie simply has no conversations.
    """
    user = find_user_by_token(db, request.cookies.get(settings.visitor_cookie_name))
    if user is None:
        raise not_found("会话不存在")
    return Visitor(user_id=user.id)


__all__ = ["Visitor", "require_existing_visitor", "require_visitor", "set_visitor_cookie"]
