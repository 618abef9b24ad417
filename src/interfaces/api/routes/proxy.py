"""模型代理 API 路由。

浏览器端不持有密钥，经由本服务访问 OpenAI：
- POST /api/openai：单次调用，返回 `{content}`
- POST /api/openai-stream：流式调用，响应体为逐段写出的纯文本

错误响应体沿用旧版 Express 代理的约定（`{error, details}` / 纯文本），
不走应用统一的 error_response 包装。
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from src.application.schemas.proxy import ProxyCompletionRequest, ProxyCompletionResponse
from src.application.services.content_generation.providers import ChatProvider
from src.interfaces.api.deps import get_proxy_provider
from src.shared.config import get_settings
from src.shared.errors import AppError
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

router = APIRouter()

TEXT_PLAIN = "text/plain; charset=utf-8"


@router.post("/openai", response_model=ProxyCompletionResponse)
async def proxy_complete(
    payload: ProxyCompletionRequest,
    provider: ChatProvider | None = Depends(get_proxy_provider),
):
    if provider is None:
        log.error("proxy_missing_api_key")
        return JSONResponse(status_code=500, content={"error": "The server is missing the OpenAI API key."})

    if not payload.prompt:
        return JSONResponse(status_code=400, content={"error": "Prompt is required"})

    supported = get_settings().openai_model
    if payload.model != supported:
        return JSONResponse(
            status_code=400,
            content={"error": f"This endpoint currently only supports {supported}"},
        )

    try:
        content = await provider.complete(payload.prompt, payload.model)
    except AppError as exc:
        log.warning("proxy_upstream_failed", extra=log_extra(code=exc.code, details=exc.details))
        detail = (exc.details or {}).get("error") or exc.message
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to call OpenAI API", "details": detail},
        )

    return ProxyCompletionResponse(content=content)


@router.post("/openai-stream")
async def proxy_stream(
    payload: ProxyCompletionRequest,
    provider: ChatProvider | None = Depends(get_proxy_provider),
):
    if provider is None:
        log.error("proxy_missing_api_key", extra=log_extra(endpoint="stream"))
        return PlainTextResponse("Server configuration error.", status_code=500, media_type=TEXT_PLAIN)

    if not payload.prompt or not payload.model:
        return PlainTextResponse("Prompt and model are required.", status_code=400, media_type=TEXT_PLAIN)

    supported = get_settings().openai_model
    if payload.model != supported:
        return PlainTextResponse(
            f"This endpoint currently only supports {supported}",
            status_code=400,
            media_type=TEXT_PLAIN,
        )

    chunks = provider.stream(payload.prompt, payload.model)

    # 先取第一个片段：上游在开始输出前失败时仍可返回 500
    try:
        first = await anext(chunks, None)
    except AppError as exc:
        log.warning("proxy_stream_upstream_failed", extra=log_extra(code=exc.code, details=exc.details))
        return PlainTextResponse("Failed to call OpenAI API.", status_code=500, media_type=TEXT_PLAIN)

    async def _body() -> AsyncIterator[str]:
        if first is None:
            return
        yield first
        try:
            async for chunk in chunks:
                if chunk:
                    yield chunk
        except AppError as exc:
            # 响应头已发出，只能提前结束响应体
            log.warning("proxy_stream_interrupted", extra=log_extra(code=exc.code, details=exc.details))

    return StreamingResponse(_body(), media_type=TEXT_PLAIN)
