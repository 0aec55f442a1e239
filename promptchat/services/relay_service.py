"""
Chat relay gateway.

Forwards an assembled message history to the configured OpenAI-compatible
`/chat/completions` endpoint and returns the first completion.

Credential handling:
- the provider key is read from api_settings only inside `relay_chat` and is
  only ever placed in the outbound Authorization header;
- logs go through `sanitize_headers_for_log` / `redact_secrets`;
- errors returned to callers are built from fixed strings plus an
  allow-listed, identifier-shaped upstream error label. Upstream error text
  is never echoed.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from promptchat.errors import (
    ConfigurationMissing,
    ProviderRequestFailed,
    ProviderResponseInvalid,
    ProviderTimeout,
)
from promptchat.log_sanitizer import redact_secrets, sanitize_headers_for_log, truncate_for_log
from promptchat.logging_config import logger
from promptchat.models import Message
from promptchat.services.api_settings_service import ProviderConfig, load_provider_config
from promptchat.settings import settings

_UPSTREAM_ERROR_LABEL_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")


@dataclass(frozen=True)
class RelayResult:
    content: str
    raw: dict[str, Any]


def build_relay_messages(
    system_prompt: str | None,
    history: Sequence[Message],
) -> list[dict[str, str]]:
    """
    Leading system entry (never persisted) followed by the stored history.
    """
    messages: list[dict[str, str]] = []
    if system_prompt and system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt})
    messages.extend({"role": m.role, "content": m.content} for m in history)
    return messages


def build_completion_payload(
    model: str,
    messages: Sequence[Mapping[str, str]],
) -> dict[str, Any]:
    # Generation parameters are fixed by configuration, never by the caller.
    return {
        "model": model,
        "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        "temperature": settings.relay_temperature,
        "max_tokens": settings.relay_max_tokens,
    }


def extract_completion_content(data: Any) -> str:
    """
    Pull choices[0].message.content out of an OpenAI-style completion.
    """
    if not isinstance(data, dict):
        raise ProviderResponseInvalid(details={"reason": "body_not_object"})
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderResponseInvalid(details={"reason": "missing_choices"})
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise ProviderResponseInvalid(details={"reason": "missing_message"})
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ProviderResponseInvalid(details={"reason": "missing_content"})
    return content


def _upstream_error_label(response: httpx.Response, *, secret: str) -> str | None:
    """
    Return `error.type` or `error.code` from an upstream error body when it is
    a short identifier; anything free-form is dropped.
    """
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return None
    error = body["error"]
    for key in ("type", "code"):
        value = error.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if (
            isinstance(value, str)
            and _UPSTREAM_ERROR_LABEL_RE.match(value)
            and secret not in value
        ):
            return value
    return None


def _bounded(message: str) -> str:
    limit = settings.relay_error_message_max_length
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def _request_failed(response: httpx.Response, config: ProviderConfig) -> ProviderRequestFailed:
    label = _upstream_error_label(response, secret=config.api_key)
    suffix = f"，{label}" if label else ""
    message = _bounded(f"AI 服务请求失败（HTTP {response.status_code}{suffix}）")
    details = {"upstream_error": label} if label else None
    return ProviderRequestFailed(response.status_code, message, details=details)


async def relay_chat(
    db: Session,
    client: httpx.AsyncClient,
    messages: Sequence[Mapping[str, str]],
) -> RelayResult:
    """
    Send one chat/completions request upstream. No retries happen here.
    """
    config = load_provider_config(db)
    if config is None:
        logger.warning("relay: provider settings missing, upstream not called")
        raise ConfigurationMissing()

    url = config.chat_completions_url
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Bearer {config.api_key}",
    }
    payload = build_completion_payload(config.model, messages)

    logger.info(
        "relay: POST %s model=%s messages=%d headers=%s",
        url,
        config.model,
        len(payload["messages"]),
        sanitize_headers_for_log(headers),
    )
    started = time.perf_counter()
    try:
        response = await client.post(
            url,
            headers=headers,
            json=payload,
            timeout=settings.relay_timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        logger.warning(
            "relay: upstream timed out after %.2fs (%s)",
            time.perf_counter() - started,
            type(exc).__name__,
        )
        raise ProviderTimeout() from exc
    except httpx.HTTPError as exc:
        logger.warning(
            "relay: transport error calling %s: %s",
            url,
            redact_secrets(str(exc), [config.api_key]),
        )
        raise ProviderRequestFailed(None, "无法连接 AI 服务，请稍后重试") from exc

    elapsed_ms = (time.perf_counter() - started) * 1000
    if not response.is_success:
        logger.warning(
            "relay: upstream HTTP %s in %.0fms; body=%s",
            response.status_code,
            elapsed_ms,
            truncate_for_log(redact_secrets(response.text, [config.api_key])),
        )
        raise _request_failed(response, config)

    try:
        data = response.json()
    except ValueError as exc:
        logger.warning("relay: upstream returned non-JSON body with HTTP %s", response.status_code)
        raise ProviderResponseInvalid(details={"reason": "invalid_json"}) from exc

    try:
        content = extract_completion_content(data)
    except ProviderResponseInvalid as exc:
        logger.warning("relay: unexpected completion shape (%s)", exc.details.get("reason"))
        raise

    logger.info("relay: completion received in %.0fms (%d chars)", elapsed_ms, len(content))
    return RelayResult(content=content, raw=data)


__all__ = [
    "RelayResult",
    "build_completion_payload",
    "build_relay_messages",
    "extract_completion_content",
    "relay_chat",
]
