from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PromptItem(BaseModel):
    """模板列表项；system_prompt 不对外暴露。"""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    created_at: datetime


class PromptListResponse(BaseModel):
    items: list[PromptItem]


__all__ = ["PromptItem", "PromptListResponse"]
