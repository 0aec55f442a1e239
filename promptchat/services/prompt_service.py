from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from promptchat.errors import not_found
from promptchat.models import Prompt


def list_active_prompts(db: Session) -> list[Prompt]:
    stmt = (
        select(Prompt)
        .where(Prompt.is_active.is_(True))
        .order_by(Prompt.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def get_active_prompt(db: Session, *, prompt_id: UUID) -> Prompt:
    prompt = db.execute(
        select(Prompt).where(Prompt.id == prompt_id, Prompt.is_active.is_(True))
    ).scalars().first()
    if prompt is None:
        raise not_found("模板不存在或已下线", details={"prompt_id": str(prompt_id)})
    return prompt


__all__ = ["get_active_prompt", "list_active_prompts"]
