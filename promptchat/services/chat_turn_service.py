from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session

from promptchat.errors import (
    RELAY_ERRORS,
    ChatError,
    NothingToRetry,
    PersistenceFailed,
    bad_request,
)
from promptchat.logging_config import logger
from promptchat.models import Conversation, Message
from promptchat.services.conversation_service import load_history
from promptchat.services.message_service import append_message
from promptchat.services.relay_service import build_relay_messages, relay_chat


@dataclass(frozen=True)
class TurnResult:
    user_message: Message
    assistant_message: Message


def _system_prompt_for(conversation: Conversation) -> str | None:
    prompt = conversation.prompt
    if prompt is None:
        return None
    return prompt.system_prompt


async def _relay_and_record(
    db: Session,
    client: httpx.AsyncClient,
    *,
    conversation: Conversation,
    user_message: Message,
) -> TurnResult:
    history = load_history(db, conversation_id=conversation.id)
    messages = build_relay_messages(_system_prompt_for(conversation), history)

    try:
        result = await relay_chat(db, client, messages)
    except RELAY_ERRORS as exc:
        _attach_turn_details(exc, conversation=conversation, user_message=user_message)
        raise

    try:
        assistant_message = append_message(
            db,
            conversation_id=conversation.id,
            role="assistant",
            content=result.content,
        )
    except PersistenceFailed as exc:
        _attach_turn_details(exc, conversation=conversation, user_message=user_message)
        raise
    return TurnResult(user_message=user_message, assistant_message=assistant_message)


def _attach_turn_details(
    exc: ChatError, *, conversation: Conversation, user_message: Message
) -> None:
    # 用户消息已落库，前端凭这两个字段恢复输入框并提供重试。
    exc.details.setdefault("user_message_id", str(user_message.id))
    exc.details.setdefault("content", user_message.content)
    logger.info(
        "turn failed conversation_id=%s user_message_id=%s kind=%s",
        conversation.id,
        user_message.id,
        exc.kind,
    )


async def send_turn(
    db: Session,
    client: httpx.AsyncClient,
    *,
    conversation: Conversation,
    content: str,
) -> TurnResult:
    """
    One chat turn: persist the user message, relay the whole history, then
    persist the assistant reply.

    If the relay fails the user message stays in the log and no assistant row
    is written; `retry_turn` picks it up later.
    """
    text = (content or "").strip()
    if not text:
        raise bad_request("消息内容不能为空")

    user_message = append_message(
        db,
        conversation_id=conversation.id,
        role="user",
        content=text,
    )
    return await _relay_and_record(
        db, client, conversation=conversation, user_message=user_message
    )


async def retry_turn(
    db: Session,
    client: httpx.AsyncClient,
    *,
    conversation: Conversation,
) -> TurnResult:
    """
    Re-relay the trailing unanswered user message without appending a new one.
    """
    history = load_history(db, conversation_id=conversation.id)
    if not history or history[-1].role != "user":
        raise NothingToRetry(details={"conversation_id": str(conversation.id)})

    user_message = history[-1]
    logger.info(
        "retrying turn conversation_id=%s user_message_id=%s",
        conversation.id,
        user_message.id,
    )
    return await _relay_and_record(
        db, client, conversation=conversation, user_message=user_message
    )


__all__ = ["TurnResult", "retry_turn", "send_turn"]
