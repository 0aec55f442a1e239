import hmac

from fastapi import Header, status

from promptchat.errors import http_error, service_unavailable
from promptchat.settings import settings


def _unauthorized(message: str):
    return http_error(status.HTTP_401_UNAUTHORIZED, error="unauthorized", message=message)


def _check_token(token: str) -> str:
    expected = settings.relay_access_token
    if not expected:
        raise service_unavailable("聊天中继接口未启用")

    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise _unauthorized("Invalid relay access token")
    return token


async def require_relay_token(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str:
    """
    Guard for /v1/chat.

    Preferred：Authorization: Bearer <RELAY_ACCESS_TOKEN>；兼容 X-API-Key: <token>。
    该凭证只授权前端调用中继接口，与上游 Provider 密钥无关。
    """
    if not settings.relay_access_token:
        raise service_unavailable("聊天中继接口未启用")

    token_value: str | None = None
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise _unauthorized("Invalid Authorization header, expected 'Bearer <token>'")
        token_value = token.strip()
    elif x_api_key:
        token_value = x_api_key.strip() or None

    if not token_value:
        raise _unauthorized("Missing Authorization or X-API-Key header")

    return _check_token(token_value)


__all__ = ["require_relay_token"]
