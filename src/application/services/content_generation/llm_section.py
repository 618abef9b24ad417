"""章节正文生成（批量调用 / 流式累积）。"""

from __future__ import annotations

import inspect
from typing import Any, Callable

from src.application.services.content_generation.prompts import build_section_prompt
from src.application.services.content_generation.providers import ChatProvider
from src.application.services.content_generation.types import GenerationMode, OutlineSection
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

# (section_heading, accumulated_text)
SectionUpdateCallback = Callable[[str, str], Any]


class StreamAccumulator:
    """单个章节的流式累积：new = previous + chunk。"""

    def __init__(self, initial: str = ""):
        self.text = initial
        self.chunks = 0

    def feed(self, chunk: str) -> bool:
        """追加片段；空片段忽略并返回 False。"""
        if not chunk:
            return False
        self.text += chunk
        self.chunks += 1
        return True


class SectionLLMGenerator:
    """封装章节生成的模型调用细节（complete / stream）。"""

    def __init__(self, *, provider: ChatProvider, model: str):
        self.provider = provider
        self.model = model

    async def generate(
        self,
        *,
        article_title: str,
        section: OutlineSection,
        mode: GenerationMode,
        on_update: SectionUpdateCallback | None = None,
    ) -> str:
        """生成章节正文。

        流式模式下每收到一个非空片段就回调一次累积后的全文，
        调用方可据此实时刷新编辑器；批量模式只在完成时回调一次。
        """
        prompt = build_section_prompt(article_title, section.heading, section.bullets)

        if mode == GenerationMode.STREAM:
            acc = StreamAccumulator()
            async for chunk in self.provider.stream(prompt, self.model):
                if acc.feed(chunk) and on_update is not None:
                    await _call(on_update, section.heading, acc.text)
            log.info(
                "section_stream_done",
                extra=log_extra(section=section.heading, chunks=acc.chunks, chars=len(acc.text)),
            )
            return acc.text

        text = await self.provider.complete(prompt, self.model)
        if on_update is not None:
            await _call(on_update, section.heading, text)
        log.info("section_generated", extra=log_extra(section=section.heading, chars=len(text)))
        return text


async def _call(callback: SectionUpdateCallback, heading: str, text: str) -> None:
    r = callback(heading, text)
    if inspect.isawaitable(r):
        await r
