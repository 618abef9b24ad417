from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.application.services.collection_store import CollectionStores, SqlKeyValueBackend
from src.application.services.content_generation.errors import ConfigError
from src.application.services.content_generation.providers import ChatProvider, LangChainChatProvider
from src.shared.config import Settings, get_settings
from src.shared.db import init_db, make_engine, make_session_factory
from src.shared.errors import (
    AppError,
    ERROR_INTERNAL,
    ERROR_VALIDATION,
    error_response,
)
from src.shared.logging import configure_logging, get_logger, log_extra
from src.shared.request_id import get_request_id, new_request_id, set_request_id

log = get_logger(__name__)


def _build_proxy_provider(settings: Settings) -> ChatProvider | None:
    """代理端点的上游适配器；缺少密钥时服务照常启动，代理端点返回 500。"""
    try:
        return LangChainChatProvider(
            name="OpenAI",
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url or None,
            timeout_seconds=settings.request_timeout_seconds,
        )
    except ConfigError as exc:
        log.error("proxy_provider_unavailable", extra=log_extra(reason=exc.message))
        return None


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="AI Article Writer API", version="0.1.0")

    # 配置 CORS
    # 注意：`allow_credentials=True` 时，浏览器不接受 `Access-Control-Allow-Origin: *`。
    allow_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    engine = make_engine(settings.sqlite_path)
    init_db(engine)
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.collection_stores = CollectionStores(SqlKeyValueBackend(app.state.session_factory))
    app.state.proxy_provider = _build_proxy_provider(settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or new_request_id()
        set_request_id(rid)
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                code=exc.code,
                message=exc.message,
                request_id=get_request_id(),
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                code=ERROR_VALIDATION,
                message="request validation failed",
                request_id=get_request_id(),
                details={"errors": exc.errors()},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                code=f"http_{exc.status_code}",
                message=exc.detail if isinstance(exc.detail, str) else "http error",
                request_id=get_request_id(),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("unhandled_error")
        return JSONResponse(
            status_code=500,
            content=error_response(
                code=ERROR_INTERNAL,
                message="internal server error",
                request_id=get_request_id(),
                details={"type": exc.__class__.__name__},
            ),
        )

    from src.interfaces.api.routes.collections import router as collections_router
    from src.interfaces.api.routes.health import router as health_router
    from src.interfaces.api.routes.proxy import router as proxy_router

    app.include_router(health_router, prefix="/v1")
    app.include_router(collections_router, prefix="/v1")
    # 代理端点保持旧路径，前端无需改动
    app.include_router(proxy_router, prefix="/api")

    return app
