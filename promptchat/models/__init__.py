from .api_settings import ApiSettings
from .base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKeyMixin
from .conversation import Conversation
from .message import MESSAGE_ROLES, Message
from .prompt import Prompt
from .user import User

__all__ = [
    "ApiSettings",
    "Base",
    "Conversation",
    "CreatedAtMixin",
    "MESSAGE_ROLES",
    "Message",
    "Prompt",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "User",
]
