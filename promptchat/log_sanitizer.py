from __future__ import annotations

from collections.abc import Iterable, Mapping

REDACTED = "***REDACTED***"


_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "api-key",
    "cookie",
    "set-cookie",
}


def sanitize_headers_for_log(
    headers: Mapping[str, str], *, mask_token: str = REDACTED
) -> dict[str, str]:
    """
    将请求头做安全脱敏后用于日志输出。

    - 明确敏感的 header 名（authorization / x-api-key / cookie 等）直接打码；
    - 包含敏感关键词（key/token/secret/auth/cookie/session）的 header 名也打码；
    - 其它 header 原样保留，便于排障。
    """
    sanitized: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES:
            sanitized[name] = mask_token
            continue

        if any(
            token in lower_name
            for token in ("key", "token", "secret", "auth", "cookie", "session")
        ):
            sanitized[name] = mask_token
            continue

        sanitized[name] = value
    return sanitized


def redact_secrets(
    text: str, secrets: Iterable[str | None], *, mask_token: str = REDACTED
) -> str:
    """Replace every occurrence of the given secret values in text."""
    result = text
    for secret in secrets:
        if secret:
            result = result.replace(secret, mask_token)
    return result


def truncate_for_log(text: str, limit: int = 500) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...(truncated {len(text) - limit} chars)"


__all__ = ["REDACTED", "redact_secrets", "sanitize_headers_for_log", "truncate_for_log"]
