from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .prompt import Prompt


class Conversation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """一个访客在某个模板下的唯一会话。"""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id", name="uq_conversations_user_prompt"),
        Index("ix_conversations_user_updated", "user_id", "updated_at"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prompt_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("prompts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="模板被删除后置空，会话与历史消息保留。",
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    prompt: Mapped[Prompt | None] = relationship(Prompt, lazy="joined")


__all__ = ["Conversation"]
