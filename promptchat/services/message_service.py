from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from promptchat.errors import PersistenceFailed
from promptchat.logging_config import logger
from promptchat.models import MESSAGE_ROLES, Conversation, Message
from promptchat.models.base import utcnow

# Bounded retries for uq_messages_conversation_sequence conflicts.
_MAX_APPEND_ATTEMPTS = 3


def _next_message_sequence(db: Session, *, conversation_id: UUID) -> int:
    seq = db.execute(
        select(func.max(Message.sequence)).where(Message.conversation_id == conversation_id)
    ).scalar_one()
    if seq is None:
        return 1
    return int(seq) + 1


def append_message(
    db: Session,
    *,
    conversation_id: UUID,
    role: str,
    content: str,
) -> Message:
    """
    Append one message to the conversation and bump its updated_at.

    Callers validate content and sequence turns; this only guarantees a
    gap-free, strictly increasing `sequence` per conversation.
    """
    if role not in MESSAGE_ROLES:
        raise ValueError(f"unsupported message role: {role!r}")

    last_error: Exception | None = None
    for attempt in range(1, _MAX_APPEND_ATTEMPTS + 1):
        try:
            conv = db.get(Conversation, conversation_id)
            if conv is None:
                raise PersistenceFailed(
                    "会话不存在，消息未保存",
                    details={"conversation_id": str(conversation_id)},
                )
            now = utcnow()
            msg = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                sequence=_next_message_sequence(db, conversation_id=conversation_id),
                created_at=now,
            )
            conv.updated_at = now
            db.add_all([msg, conv])
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            last_error = exc
            logger.warning(
                "message: sequence conflict on conversation_id=%s (attempt %d/%d)",
                conversation_id,
                attempt,
                _MAX_APPEND_ATTEMPTS,
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("message: failed to append %s message to conversation_id=%s", role, conversation_id)
            raise PersistenceFailed() from exc
        return msg

    raise PersistenceFailed() from last_error


__all__ = ["append_message"]
