import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .api.v1.chat_routes import router as chat_router
from .api.v1.conversation_routes import router as conversation_router
from .api.v1.prompt_routes import router as prompt_router
from .db import SessionLocal
from .errors import ChatError
from .log_sanitizer import sanitize_headers_for_log
from .logging_config import logger
from .services.api_settings_service import ensure_provider_settings


class HealthResponse(BaseModel):
    status: str = "ok"


async def handle_chat_error(request: Request, exc: ChatError):
    """
    领域异常统一渲染为 {error, message, code, details}。
    """
    logger.warning(
        "Chat error %s %s -> %s (%s)",
        request.method,
        request.url.path,
        exc.status_code,
        exc.kind,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    全局异常处理器，统一返回结构化错误响应并打印日志。
    """

    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "服务器内部错误，请稍后再试",
            "error_id": error_id,
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理：
    - startup: 执行数据库迁移、根据环境变量初始化 AI 服务配置
    - shutdown: 目前无额外清理逻辑
    """
    from promptchat.db.migration_runner import auto_upgrade_database

    session = SessionLocal()
    try:
        auto_upgrade_database()
        ensure_provider_settings(session)
    finally:
        session.close()

    yield


def create_app() -> FastAPI:
    from fastapi.middleware.cors import CORSMiddleware

    from .settings import settings

    # 解析 CORS 配置
    cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",")] if settings.cors_allow_origins else []
    cors_methods = [method.strip() for method in settings.cors_allow_methods.split(",")] if settings.cors_allow_methods != "*" else ["*"]
    cors_headers = [header.strip() for header in settings.cors_allow_headers.split(",")] if settings.cors_allow_headers != "*" else ["*"]

    docs_url = "/docs" if settings.enable_api_docs else None
    redoc_url = "/redoc" if settings.enable_api_docs else None
    openapi_url = "/openapi.json" if settings.enable_api_docs else None

    app = FastAPI(
        title="Prompt Chat",
        version="0.1.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )
    app.add_exception_handler(ChatError, handle_chat_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    if not settings.enable_api_docs:
        logger.info(
            "API docs routes are disabled (environment=%s); set ENABLE_API_DOCS=true to enable.",
            settings.environment,
        )

    # CORS：访客 Cookie 需要 allow_credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=cors_methods,
        allow_headers=cors_headers,
    )

    # 模板与访客会话
    app.include_router(prompt_router)
    app.include_router(conversation_router)
    # 聊天中继（Bearer 保护）
    app.include_router(chat_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        基础请求日志中间件，记录请求和响应状态。
        会对 Authorization / x-api-key / cookie 等敏感头做脱敏处理。
        """

        client_host = request.client.host if request.client else "-"
        headers_for_log = sanitize_headers_for_log(request.headers)

        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            headers_for_log,
        )
        try:
            response = await call_next(request)
        except Exception as exc:  # pragma: no cover - exercised via tests
            response = await handle_unexpected_error(request, exc)
        logger.info(
            "HTTP %s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response

    return app


__all__ = ["create_app", "handle_chat_error", "handle_unexpected_error", "lifespan"]
