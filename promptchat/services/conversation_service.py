from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from promptchat.errors import not_found
from promptchat.logging_config import logger
from promptchat.models import Conversation, Message, Prompt


def _find_latest_conversation(
    db: Session,
    *,
    user_id: UUID,
    prompt_id: UUID,
) -> Conversation | None:
    stmt = (
        select(Conversation)
        .where(
            Conversation.user_id == user_id,
            Conversation.prompt_id == prompt_id,
        )
        .order_by(Conversation.updated_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def get_or_create_conversation(
    db: Session,
    *,
    user_id: UUID,
    prompt: Prompt,
) -> tuple[Conversation, bool]:
    """
    Return the single conversation for (user, prompt) and whether it was created.

    Two concurrent first visits may both see no row; the unique constraint
    uq_conversations_user_prompt lets exactly one insert win and the loser
    re-reads and adopts the winner's row.
    """
    existing = _find_latest_conversation(db, user_id=user_id, prompt_id=prompt.id)
    if existing is not None:
        return existing, False

    conv = Conversation(user_id=user_id, prompt_id=prompt.id, title=prompt.title)
    db.add(conv)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = _find_latest_conversation(db, user_id=user_id, prompt_id=prompt.id)
        if winner is None:
            # Not the (user, prompt) constraint, e.g. a dangling foreign key.
            raise
        logger.info(
            "conversation: concurrent create resolved to existing row conversation_id=%s user_id=%s prompt_id=%s",
            winner.id,
            user_id,
            prompt.id,
        )
        return winner, False

    logger.info(
        "conversation: created conversation_id=%s user_id=%s prompt_id=%s",
        conv.id,
        user_id,
        prompt.id,
    )
    return conv, True


def get_visitor_conversation(
    db: Session,
    *,
    conversation_id: UUID,
    user_id: UUID,
) -> Conversation:
    conv = db.execute(
        select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
        )
    ).scalars().first()
    if conv is None:
        raise not_found("会话不存在", details={"conversation_id": str(conversation_id)})
    return conv


def load_history(db: Session, *, conversation_id: UUID) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.sequence.asc())
    )
    return list(db.execute(stmt).scalars().all())


__all__ = ["get_or_create_conversation", "get_visitor_conversation", "load_history"]
