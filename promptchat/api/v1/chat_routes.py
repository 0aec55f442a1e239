from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from promptchat.auth import require_relay_token
from promptchat.deps import get_db, get_http_client
from promptchat.schemas import RelayRequest
from promptchat.services.relay_service import relay_chat

router = APIRouter(
    tags=["chat"],
    dependencies=[Depends(require_relay_token)],
)


@router.post("/v1/chat")
async def relay_chat_endpoint(
    payload: RelayRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict[str, Any]:
    """
    Relay gateway: forwards the caller's message list and returns the raw
    provider completion JSON. Failures are rendered by the ChatError handler.
    """
    messages = [m.model_dump() for m in payload.messages]
    result = await relay_chat(db, client, messages)
    return result.raw
