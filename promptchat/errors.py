from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error payload returned by every endpoint:
    {
        "error": "provider_request_failed",
        "message": "AI 服务请求失败（HTTP 401）",
        "code": 502,
        "details": {...}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """
    Helper to create an HTTPException with a standardised error body.
    """
    payload = ErrorResponse(
        error=error,
        message=message,
        code=status_code,
        details=details,
    )
    return HTTPException(status_code=status_code, detail=payload.model_dump())


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_400_BAD_REQUEST, error="bad_request", message=message, details=details
    )


def not_found(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_404_NOT_FOUND, error="not_found", message=message, details=details
    )


def service_unavailable(
    message: str, *, details: Optional[Dict[str, Any]] = None
) -> HTTPException:
    return http_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        error="service_unavailable",
        message=message,
        details=details,
    )


class ChatError(Exception):
    """
    Base class for failures of the chat core.

    Each subclass carries a stable machine-readable `kind` and the HTTP status
    it maps to at the request boundary. `message` must never contain upstream
    text or credentials; callers build it from fixed strings and allow-listed
    fields only.
    """

    kind = "chat_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "服务暂时不可用，请稍后再试"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details: Dict[str, Any] = dict(details or {})
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.kind,
            message=self.message,
            code=self.status_code,
            details=self.details or None,
        )


class IdentityCreationFailed(ChatError):
    kind = "identity_creation_failed"
    default_message = "无法创建访客身份，请稍后再试"


class PersistenceFailed(ChatError):
    kind = "persistence_failed"
    default_message = "消息保存失败，请重试"


class ConfigurationMissing(ChatError):
    kind = "configuration_missing"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI 服务尚未配置，请联系管理员"


class ProviderRequestFailed(ChatError):
    kind = "provider_request_failed"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "AI 服务请求失败，请重试"

    def __init__(
        self,
        upstream_status: int | None,
        message: str | None = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.upstream_status = upstream_status
        merged = {"status": upstream_status, **(details or {})}
        super().__init__(message, details=merged)


class ProviderTimeout(ChatError):
    kind = "provider_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "AI 服务响应超时，请重试"


class ProviderResponseInvalid(ChatError):
    kind = "provider_response_invalid"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "AI 服务返回了无法解析的响应，请重试"


class TurnInProgress(ChatError):
    kind = "turn_in_progress"
    status_code = status.HTTP_409_CONFLICT
    default_message = "上一条消息仍在处理中，请稍候"


class NothingToRetry(ChatError):
    kind = "nothing_to_retry"
    status_code = status.HTTP_409_CONFLICT
    default_message = "当前会话没有等待回复的消息"


RELAY_ERRORS = (
    ConfigurationMissing,
    ProviderRequestFailed,
    ProviderTimeout,
    ProviderResponseInvalid,
)


__all__ = [
    "ChatError",
    "ConfigurationMissing",
    "ErrorResponse",
    "IdentityCreationFailed",
    "NothingToRetry",
    "PersistenceFailed",
    "ProviderRequestFailed",
    "ProviderResponseInvalid",
    "ProviderTimeout",
    "RELAY_ERRORS",
    "TurnInProgress",
    "bad_request",
    "http_error",
    "not_found",
    "service_unavailable",
]
