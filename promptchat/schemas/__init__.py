from .conversation import (
    ConversationOpenResponse,
    MessageCreateRequest,
    MessageItem,
    MessageListResponse,
    TurnResponse,
)
from .prompt import PromptItem, PromptListResponse
from .relay import RelayMessage, RelayRequest

__all__ = [
    "ConversationOpenResponse",
    "MessageCreateRequest",
    "MessageItem",
    "MessageListResponse",
    "PromptItem",
    "PromptListResponse",
    "RelayMessage",
    "RelayRequest",
    "TurnResponse",
]
