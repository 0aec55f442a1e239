from __future__ import annotations

from uuid import UUID

import httpx
from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from promptchat.deps import get_db, get_http_client, get_redis
from promptchat.schemas import MessageCreateRequest, MessageItem, MessageListResponse, TurnResponse
from promptchat.services.chat_turn_service import TurnResult, retry_turn, send_turn
from promptchat.services.conversation_service import get_visitor_conversation, load_history
from promptchat.services.turn_lock import conversation_turn_lock
from promptchat.visitor import Visitor, require_existing_visitor

router = APIRouter(tags=["conversations"])


def _turn_response(conversation_id: UUID, result: TurnResult) -> TurnResponse:
    return TurnResponse(
        conversation_id=conversation_id,
        user_message=MessageItem.model_validate(result.user_message),
        assistant_message=MessageItem.model_validate(result.assistant_message),
    )


@router.get("/v1/conversations/{conversation_id}/messages", response_model=MessageListResponse)
def list_messages_endpoint(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    visitor: Visitor = Depends(require_existing_visitor),
) -> MessageListResponse:
    conv = get_visitor_conversation(db, conversation_id=conversation_id, user_id=visitor.user_id)
    history = load_history(db, conversation_id=conv.id)
    return MessageListResponse(
        conversation_id=conv.id,
        messages=[MessageItem.model_validate(m) for m in history],
    )


@router.post("/v1/conversations/{conversation_id}/messages", response_model=TurnResponse)
async def send_message_endpoint(
    conversation_id: UUID,
    payload: MessageCreateRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
    redis: Redis = Depends(get_redis),
    visitor: Visitor = Depends(require_existing_visitor),
) -> TurnResponse:
    """发送一条消息并同步等待 AI 回复。"""
    conv = get_visitor_conversation(db, conversation_id=conversation_id, user_id=visitor.user_id)
    async with conversation_turn_lock(redis, conv.id):
        result = await send_turn(db, client, conversation=conv, content=payload.content)
    return _turn_response(conv.id, result)


@router.post("/v1/conversations/{conversation_id}/retry", response_model=TurnResponse)
async def retry_turn_endpoint(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
    redis: Redis = Depends(get_redis),
    visitor: Visitor = Depends(require_existing_visitor),
) -> TurnResponse:
    """对最后一条未得到回复的用户消息重新请求 AI，不会重复写入用户消息。"""
    conv = get_visitor_conversation(db, conversation_id=conversation_id, user_id=visitor.user_id)
    async with conversation_turn_lock(redis, conv.id):
        result = await retry_turn(db, client, conversation=conv)
    return _turn_response(conv.id, result)
