from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    role: Literal["user", "assistant"]
    content: str
    sequence: int
    created_at: datetime


class ConversationOpenResponse(BaseModel):
    conversation_id: UUID
    prompt_id: UUID | None
    title: str
    is_new: bool = Field(..., description="本次请求是否新建了会话")
    messages: list[MessageItem] = Field(default_factory=list)


class MessageListResponse(BaseModel):
    conversation_id: UUID
    messages: list[MessageItem]


class MessageCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # 空白内容由服务层统一返回 bad_request，这里只限制长度。
    content: str = Field(..., max_length=20000)


class TurnResponse(BaseModel):
    conversation_id: UUID
    user_message: MessageItem
    assistant_message: MessageItem


__all__ = [
    "ConversationOpenResponse",
    "MessageCreateRequest",
    "MessageItem",
    "MessageListResponse",
    "TurnResponse",
]
