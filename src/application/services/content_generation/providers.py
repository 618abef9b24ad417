"""模型调用适配器（批量 / 流式）。

两种能力：
- complete: 单次往返，返回完整文本
- stream: 返回有限、不可重放的异步文本片段序列；片段按接收顺序产出，空片段直接跳过

失败统一抛出 TransportError；缺少密钥在构建适配器时抛出 ConfigError。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, runtime_checkable

import httpx
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from src.application.services.content_generation.errors import ConfigError, TransportError
from src.application.services.content_generation.types import GenerationMode, ProviderChoice
from src.shared.config import Settings
from src.shared.errors import AppError
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


# ============== 适配器协议 ==============

@runtime_checkable
class ChatProvider(Protocol):
    """对话模型适配器协议。"""

    async def complete(self, prompt: str, model: str) -> str: ...

    def stream(self, prompt: str, model: str) -> AsyncIterator[str]: ...


@dataclass
class ProviderBinding:
    """一次会话使用的模型绑定：适配器 + 模型名 + 章节生成方式。

    outline_provider 为空时构成案与章节共用 provider；
    outline_web_search 为真时构成案提示词要求模型先检索上位文章。
    """

    provider: ChatProvider
    model: str
    section_mode: GenerationMode
    outline_provider: ChatProvider | None = None
    outline_web_search: bool = False

    @property
    def outline_adapter(self) -> ChatProvider:
        return self.outline_provider or self.provider


# ============== LangChain 对话模型封装 ==============

class LangChainChatProvider:
    """基于 langchain-openai 的适配器（OpenAI 及其兼容端点）。"""

    def __init__(
        self,
        *,
        name: str,
        api_key: str,
        base_url: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ):
        if not api_key:
            raise ConfigError(f"{name} の API キーが設定されていません。", details={"provider": name})
        self.name = name
        self._api_key = api_key
        self._base_url = base_url
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds

    def _build_chat_model(self, model: str, *, streaming: bool) -> Runnable:
        params: dict = {
            "model": model,
            "api_key": self._api_key,
            "streaming": streaming,
        }
        if self._base_url:
            params["base_url"] = self._base_url
        if self._temperature is not None:
            params["temperature"] = self._temperature
        if self._timeout_seconds is not None:
            params["timeout"] = self._timeout_seconds
        return ChatOpenAI(**params)

    def _build_runnable(self, model: str, *, streaming: bool):
        # prompt 原文作为变量注入，避免其中的花括号被当作模板占位符
        prompt_template = ChatPromptTemplate.from_messages([("human", "{prompt}")])
        return prompt_template | self._build_chat_model(model, streaming=streaming) | StrOutputParser()

    async def complete(self, prompt: str, model: str) -> str:
        runnable = self._build_runnable(model, streaming=False)
        try:
            raw = await runnable.ainvoke({"prompt": prompt})
        except AppError:
            raise
        except Exception as exc:
            log.exception("llm_complete_failed", extra=log_extra(provider=self.name, model=model))
            raise TransportError(
                f"{self.name} の呼び出し中にエラーが発生しました。",
                details={"provider": self.name, "model": model, "error": str(exc)},
            ) from exc
        return str(raw or "")

    async def stream(self, prompt: str, model: str) -> AsyncIterator[str]:
        runnable = self._build_runnable(model, streaming=True)
        try:
            async for chunk in runnable.astream({"prompt": prompt}):
                s = "" if chunk is None else str(chunk)
                if not s:
                    continue
                yield s
        except AppError:
            raise
        except Exception as exc:
            log.exception("llm_stream_failed", extra=log_extra(provider=self.name, model=model))
            raise TransportError(
                f"{self.name} のストリーミング中にエラーが発生しました。",
                details={"provider": self.name, "model": model, "error": str(exc)},
            ) from exc


class GeminiChatProvider(LangChainChatProvider):
    """基于 langchain-google-genai 的 Gemini 适配器。

    google_search=True 时为模型绑定 Google 搜索工具，构成案生成前先检索上位文章。
    """

    GOOGLE_SEARCH_TOOL = {"google_search": {}}

    def __init__(
        self,
        *,
        api_key: str,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        google_search: bool = False,
    ):
        super().__init__(
            name="Gemini",
            api_key=api_key,
            temperature=temperature,
            timeout_seconds=timeout_seconds,
        )
        self.google_search = google_search

    def _build_chat_model(self, model: str, *, streaming: bool) -> Runnable:
        params: dict = {"model": model, "google_api_key": self._api_key}
        if self._temperature is not None:
            params["temperature"] = self._temperature
        if self._timeout_seconds is not None:
            params["timeout"] = self._timeout_seconds
        chat_model = ChatGoogleGenerativeAI(**params)
        if self.google_search:
            return chat_model.bind_tools([self.GOOGLE_SEARCH_TOOL])
        return chat_model


# ============== 代理端点封装（/api/openai, /api/openai-stream） ==============

class HttpProxyProvider:
    """经由本服务代理端点访问模型的适配器（httpx）。"""

    COMPLETE_PATH = "/api/openai"
    STREAM_PATH = "/api/openai-stream"

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def complete(self, prompt: str, model: str) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(self.COMPLETE_PATH, json={"prompt": prompt, "model": model})
        except httpx.HTTPError as exc:
            log.warning("proxy_complete_failed", extra=log_extra(error=str(exc)))
            raise TransportError("代理サーバーへの接続に失敗しました。", details={"error": str(exc)}) from exc

        if resp.status_code != 200:
            raise TransportError(
                "OpenAI APIからの応答エラー",
                details={"status_code": resp.status_code, "error": _proxy_error_detail(resp)},
            )
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            log.warning("proxy_complete_invalid_body", extra=log_extra(body=resp.text[:200]))
            raise TransportError(
                "OpenAI APIからの応答を解析できませんでした。",
                details={"status_code": resp.status_code, "error": resp.text[:200]},
            )
        return str(data.get("content") or "")

    async def stream(self, prompt: str, model: str) -> AsyncIterator[str]:
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", self.STREAM_PATH, json={"prompt": prompt, "model": model}
                ) as resp:
                    if resp.status_code != 200:
                        await resp.aread()
                        raise TransportError(
                            "ストリーミング応答の取得に失敗しました。",
                            details={"status_code": resp.status_code, "error": resp.text},
                        )
                    async for text in resp.aiter_text():
                        if text:
                            yield text
        except httpx.HTTPError as exc:
            log.warning("proxy_stream_failed", extra=log_extra(error=str(exc)))
            raise TransportError("ストリーミング中に接続が切断されました。", details={"error": str(exc)}) from exc


def _proxy_error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return "OpenAI APIからの応答エラー"
    if isinstance(data, dict):
        return str(data.get("details") or data.get("error") or "OpenAI APIからの応答エラー")
    return "OpenAI APIからの応答エラー"


# ============== 绑定构建 ==============

def build_provider_bindings(
    settings: Settings,
    *,
    use_proxy: bool = False,
) -> dict[ProviderChoice, ProviderBinding]:
    """按配置构建可用的模型绑定。

    缺少密钥的适配器记录错误后跳过，不影响其他适配器。
    """
    bindings: dict[ProviderChoice, ProviderBinding] = {}

    try:
        # 构成案：绑定 Google 搜索并使用固定温度；章节正文不检索、不设温度
        gemini_outline = GeminiChatProvider(
            api_key=settings.gemini_api_key,
            temperature=settings.outline_temperature,
            timeout_seconds=settings.request_timeout_seconds,
            google_search=True,
        )
        gemini = GeminiChatProvider(
            api_key=settings.gemini_api_key,
            timeout_seconds=settings.request_timeout_seconds,
        )
        bindings[ProviderChoice.GEMINI] = ProviderBinding(
            provider=gemini,
            model=settings.gemini_model,
            section_mode=GenerationMode.BATCH,
            outline_provider=gemini_outline,
            outline_web_search=True,
        )
    except ConfigError as exc:
        log.error("provider_unavailable", extra=log_extra(provider="gemini", reason=exc.message))

    if use_proxy:
        openai: ChatProvider = HttpProxyProvider(
            settings.proxy_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
        bindings[ProviderChoice.OPENAI] = ProviderBinding(
            provider=openai,
            model=settings.openai_model,
            section_mode=GenerationMode.STREAM,
        )
        return bindings

    try:
        openai = LangChainChatProvider(
            name="OpenAI",
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url or None,
            timeout_seconds=settings.request_timeout_seconds,
        )
        bindings[ProviderChoice.OPENAI] = ProviderBinding(
            provider=openai,
            model=settings.openai_model,
            section_mode=GenerationMode.STREAM,
        )
    except ConfigError as exc:
        log.error("provider_unavailable", extra=log_extra(provider="openai", reason=exc.message))

    return bindings
