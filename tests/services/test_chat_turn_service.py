import httpx
import pytest
from fastapi import HTTPException

from promptchat.errors import (
    ConfigurationMissing,
    NothingToRetry,
    PersistenceFailed,
    ProviderRequestFailed,
)
from promptchat.models import Conversation
from promptchat.services import chat_turn_service
from promptchat.services.chat_turn_service import retry_turn, send_turn
from promptchat.services.conversation_service import get_or_create_conversation, load_history
from promptchat.services.identity_service import resolve_identity
from tests.utils import FakeProvider, seed_api_settings, seed_prompt


@pytest.fixture()
def conversation(db_session) -> Conversation:
    user = resolve_identity(db_session, None)
    prompt = seed_prompt(db_session, system_prompt="You are a friendly English tutor.")
    conv, _ = get_or_create_conversation(db_session, user_id=user.user_id, prompt=prompt)
    return conv


def _unauthorized(request):
    return httpx.Response(401, json={"error": {"type": "invalid_request_error"}})


@pytest.mark.asyncio
async def test_send_turn_persists_both_halves(db_session, conversation):
    seed_api_settings(db_session)
    provider = FakeProvider(reply="hi there")

    async with provider.client() as client:
        result = await send_turn(db_session, client, conversation=conversation, content="  hello  ")

    assert result.user_message.content == "hello"
    assert result.assistant_message.content == "hi there"
    assert provider.calls[0]["json"]["messages"] == [
        {"role": "system", "content": "You are a friendly English tutor."},
        {"role": "user", "content": "hello"},
    ]
    history = load_history(db_session, conversation_id=conversation.id)
    assert [(m.role, m.content, m.sequence) for m in history] == [
        ("user", "hello", 1),
        ("assistant", "hi there", 2),
    ]


@pytest.mark.asyncio
async def test_send_turn_includes_prior_history(db_session, conversation):
    seed_api_settings(db_session)
    provider = FakeProvider(reply="first answer")

    async with provider.client() as client:
        await send_turn(db_session, client, conversation=conversation, content="one")
        provider.reply = "second answer"
        await send_turn(db_session, client, conversation=conversation, content="two")

    sent = provider.calls[-1]["json"]["messages"]
    assert [m["content"] for m in sent[1:]] == ["one", "first answer", "two"]


@pytest.mark.asyncio
async def test_blank_content_is_rejected_before_persisting(db_session, conversation):
    provider = FakeProvider()

    async with provider.client() as client:
        with pytest.raises(HTTPException) as exc_info:
            await send_turn(db_session, client, conversation=conversation, content=" \n\t ")

    assert exc_info.value.status_code == 400
    assert load_history(db_session, conversation_id=conversation.id) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_failed_relay_keeps_user_message_only(db_session, conversation):
    seed_api_settings(db_session)
    provider = FakeProvider()
    provider.handler = _unauthorized

    async with provider.client() as client:
        with pytest.raises(ProviderRequestFailed) as exc_info:
            await send_turn(db_session, client, conversation=conversation, content="hello")

    history = load_history(db_session, conversation_id=conversation.id)
    assert [(m.role, m.content) for m in history] == [("user", "hello")]
    assert exc_info.value.details["user_message_id"] == str(history[0].id)
    assert exc_info.value.details["content"] == "hello"


@pytest.mark.asyncio
async def test_failed_assistant_insert_reports_pending_user_message(
    db_session, conversation, monkeypatch
):
    seed_api_settings(db_session)
    provider = FakeProvider(reply="hi there")
    real_append = chat_turn_service.append_message

    def failing_assistant_append(db, *, conversation_id, role, content):
        if role == "assistant":
            raise PersistenceFailed()
        return real_append(db, conversation_id=conversation_id, role=role, content=content)

    monkeypatch.setattr(chat_turn_service, "append_message", failing_assistant_append)

    async with provider.client() as client:
        with pytest.raises(PersistenceFailed) as exc_info:
            await send_turn(db_session, client, conversation=conversation, content="hello")

    history = load_history(db_session, conversation_id=conversation.id)
    assert [(m.role, m.content) for m in history] == [("user", "hello")]
    assert exc_info.value.details["user_message_id"] == str(history[0].id)
    assert exc_info.value.details["content"] == "hello"
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_missing_configuration_keeps_user_message(db_session, conversation):
    provider = FakeProvider()

    async with provider.client() as client:
        with pytest.raises(ConfigurationMissing):
            await send_turn(db_session, client, conversation=conversation, content="hello")

    assert provider.calls == []
    assert [m.role for m in load_history(db_session, conversation_id=conversation.id)] == ["user"]


@pytest.mark.asyncio
async def test_retry_after_failure_does_not_duplicate_user_message(db_session, conversation):
    seed_api_settings(db_session)
    provider = FakeProvider(reply="hi there")
    provider.handler = _unauthorized

    async with provider.client() as client:
        with pytest.raises(ProviderRequestFailed):
            await send_turn(db_session, client, conversation=conversation, content="hello")

        provider.handler = None
        result = await retry_turn(db_session, client, conversation=conversation)

    history = load_history(db_session, conversation_id=conversation.id)
    assert [(m.role, m.content) for m in history] == [("user", "hello"), ("assistant", "hi there")]
    assert result.user_message.id == history[0].id
    assert provider.calls[-1]["json"]["messages"][-1] == {"role": "user", "content": "hello"}


@pytest.mark.asyncio
async def test_retry_without_pending_user_message(db_session, conversation):
    seed_api_settings(db_session)
    provider = FakeProvider()

    async with provider.client() as client:
        with pytest.raises(NothingToRetry):
            await retry_turn(db_session, client, conversation=conversation)

        await send_turn(db_session, client, conversation=conversation, content="hello")
        with pytest.raises(NothingToRetry):
            await retry_turn(db_session, client, conversation=conversation)

    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_conversation_without_template_sends_no_system_entry(db_session):
    user = resolve_identity(db_session, None)
    conv = Conversation(user_id=user.user_id, prompt_id=None, title="已删除的模板")
    db_session.add(conv)
    db_session.commit()
    seed_api_settings(db_session)
    provider = FakeProvider()

    async with provider.client() as client:
        await send_turn(db_session, client, conversation=conv, content="hello")

    assert provider.calls[0]["json"]["messages"] == [{"role": "user", "content": "hello"}]
