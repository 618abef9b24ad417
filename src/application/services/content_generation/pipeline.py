from __future__ import annotations

import inspect
import time
from typing import Any, Callable

from src.application.services.content_generation.errors import ContentGenerationError
from src.application.services.content_generation.llm_section import SectionLLMGenerator
from src.application.services.content_generation.types import (
    ArticleContent,
    GenerationMode,
    Outline,
)
from src.shared.errors import AppError
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


async def _emit(on_event: Callable[[dict[str, Any]], Any] | None, payload: dict[str, Any]) -> None:
    if on_event is None:
        return
    try:
        r = on_event(payload)
        if inspect.isawaitable(r):
            await r
    except Exception:
        log.exception("pipeline_event_handler_failed", extra=log_extra(event_type=payload.get("type")))


def _completed(content: ArticleContent, failing: str) -> list[str]:
    return [h for h in content if h != failing]


class SectionGenerationPipeline:
    """按构成案顺序逐章生成正文。

    - 严格串行：第 N 章结束（完成或失败）后才开始第 N+1 章
    - 任一章失败立即中止，已完成章节的正文保留在返回的错误详情中
    - is_active 返回 False 时在下一章开始前停止（会话已重置，结果不再需要）
    """

    def __init__(self, *, generator: SectionLLMGenerator, mode: GenerationMode):
        self._generator = generator
        self._mode = mode

    async def run(
        self,
        outline: Outline,
        *,
        on_event: Callable[[dict[str, Any]], Any] | None = None,
        is_active: Callable[[], bool] | None = None,
    ) -> ArticleContent:
        content: ArticleContent = {}
        total = len(outline.sections)
        started = time.time()

        await _emit(
            on_event,
            {
                "type": "pipeline_start",
                "title": outline.title,
                "sections": total,
                "mode": self._mode.value,
            },
        )

        for idx, section in enumerate(outline.sections, start=1):
            if is_active is not None and not is_active():
                log.info("article_generation_abandoned", extra=log_extra(completed=len(content), total=total))
                return content

            await _emit(
                on_event,
                {
                    "type": "section_start",
                    "section_title": section.heading,
                    "index": idx,
                    "total": total,
                },
            )

            async def _on_update(heading: str, text: str) -> None:
                content[heading] = text
                await _emit(
                    on_event,
                    {"type": "section_update", "section_title": heading, "content": text},
                )

            try:
                text = await self._generator.generate(
                    article_title=outline.title,
                    section=section,
                    mode=self._mode,
                    on_update=_on_update,
                )
            except AppError as exc:
                log.warning(
                    "section_generation_failed",
                    extra=log_extra(section=section.heading, index=idx, code=exc.code, details=exc.details),
                )
                raise ContentGenerationError(
                    f"「{section.heading}」の生成中にエラーが発生しました: {exc.message}",
                    code=exc.code,
                    status_code=exc.status_code,
                    details={"section": section.heading, "completed": _completed(content, section.heading)},
                ) from exc
            except Exception as exc:
                log.exception("section_generation_failed", extra=log_extra(section=section.heading, index=idx))
                raise ContentGenerationError(
                    f"「{section.heading}」の生成中に不明なエラーが発生しました。",
                    details={"section": section.heading, "completed": _completed(content, section.heading)},
                ) from exc

            content[section.heading] = text
            await _emit(
                on_event,
                {
                    "type": "section_done",
                    "section_title": section.heading,
                    "chars": len(text),
                },
            )

        await _emit(
            on_event,
            {
                "type": "pipeline_done",
                "sections": len(content),
                "total_time_ms": round((time.time() - started) * 1000, 2),
            },
        )
        return content
