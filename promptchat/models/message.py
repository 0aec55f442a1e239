from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin

MESSAGE_ROLES = ("user", "assistant")


class Message(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """
    One turn half inside a conversation. Rows are append-only.

    `sequence` is the 1-based position within the conversation; together with
    the unique constraint it keeps history gap-free and strictly ordered even
    when two appends race.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence", name="uq_messages_conversation_sequence"),
        CheckConstraint("role IN ('user', 'assistant')", name="ck_messages_role"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)


__all__ = ["MESSAGE_ROLES", "Message"]
