from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from promptchat.deps import get_db
from promptchat.schemas import ConversationOpenResponse, MessageItem, PromptItem, PromptListResponse
from promptchat.services.conversation_service import get_or_create_conversation, load_history
from promptchat.services.prompt_service import get_active_prompt, list_active_prompts
from promptchat.visitor import Visitor, require_visitor

router = APIRouter(tags=["prompts"])


@router.get("/v1/prompts", response_model=PromptListResponse)
def list_prompts_endpoint(db: Session = Depends(get_db)) -> PromptListResponse:
    """首页模板列表，仅返回已上线模板。"""
    prompts = list_active_prompts(db)
    return PromptListResponse(items=[PromptItem.model_validate(p) for p in prompts])


@router.post("/v1/prompts/{prompt_id}/conversation", response_model=ConversationOpenResponse)
def open_conversation_endpoint(
    prompt_id: UUID,
    db: Session = Depends(get_db),
    visitor: Visitor = Depends(require_visitor),
) -> ConversationOpenResponse:
    """
    进入模板对话页：识别访客（必要时下发 Cookie），获取或创建唯一会话并回放历史。
    """
    prompt = get_active_prompt(db, prompt_id=prompt_id)
    conv, is_new = get_or_create_conversation(db, user_id=visitor.user_id, prompt=prompt)
    history = [] if is_new else load_history(db, conversation_id=conv.id)
    return ConversationOpenResponse(
        conversation_id=conv.id,
        prompt_id=conv.prompt_id,
        title=conv.title,
        is_new=is_new,
        messages=[MessageItem.model_validate(m) for m in history],
    )
