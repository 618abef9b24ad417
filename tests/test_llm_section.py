from __future__ import annotations

import pytest

from conftest import FakeChatProvider
from src.application.services.content_generation.llm_section import (
    SectionLLMGenerator,
    StreamAccumulator,
)
from src.application.services.content_generation.prompts import build_section_prompt
from src.application.services.content_generation.types import GenerationMode, OutlineSection


def test_accumulator_concatenates_and_ignores_empty_chunks():
    acc = StreamAccumulator()
    assert acc.feed("A") is True
    assert acc.feed("") is False
    assert acc.feed("B") is True
    assert acc.feed("C") is True
    assert acc.text == "ABC"
    assert acc.chunks == 3


def test_accumulator_is_order_sensitive():
    in_order = StreamAccumulator()
    shuffled = StreamAccumulator()
    for c in ["A", "B", "C"]:
        in_order.feed(c)
    for c in ["C", "A", "B"]:
        shuffled.feed(c)
    assert in_order.text == "ABC"
    assert shuffled.text != in_order.text


@pytest.mark.asyncio
async def test_stream_mode_publishes_accumulated_text_after_every_chunk():
    provider = FakeChatProvider(sections={"S": ["A", "", "B", "C"]})
    generator = SectionLLMGenerator(provider=provider, model="m")
    updates: list[tuple[str, str]] = []

    text = await generator.generate(
        article_title="T",
        section=OutlineSection(heading="S", bullets=["x"]),
        mode=GenerationMode.STREAM,
        on_update=lambda heading, value: updates.append((heading, value)),
    )

    assert text == "ABC"
    # 空片段不触发回调
    assert updates == [("S", "A"), ("S", "AB"), ("S", "ABC")]
    assert provider.calls == [("stream", "S")]


@pytest.mark.asyncio
async def test_stream_adapter_preserves_chunk_order():
    chunks = [f"{i}," for i in range(20)]
    provider = FakeChatProvider(sections={"S": chunks})

    received = [c async for c in provider.stream(build_section_prompt("T", "S", []), "m")]
    assert received == chunks

    generator = SectionLLMGenerator(provider=provider, model="m")
    text = await generator.generate(
        article_title="T", section=OutlineSection(heading="S"), mode=GenerationMode.STREAM
    )
    assert text == "".join(chunks)


@pytest.mark.asyncio
async def test_batch_mode_calls_update_once_with_full_text():
    provider = FakeChatProvider(sections={"S": "full body"})
    generator = SectionLLMGenerator(provider=provider, model="m")
    updates: list[tuple[str, str]] = []

    async def _on_update(heading: str, value: str) -> None:
        updates.append((heading, value))

    text = await generator.generate(
        article_title="T",
        section=OutlineSection(heading="S"),
        mode=GenerationMode.BATCH,
        on_update=_on_update,
    )

    assert text == "full body"
    assert updates == [("S", "full body")]
    assert provider.calls == [("complete", "S")]


def test_section_prompt_lists_subsections_and_forbids_title_repeat():
    prompt = build_section_prompt("記事", "導入", ["背景", "目的"])
    assert "記事タイトル: 記事" in prompt
    assert "執筆するセクション: 導入" in prompt
    assert "背景, 目的" in prompt
    assert "「導入」）は本文中に繰り返さないでください" in prompt
