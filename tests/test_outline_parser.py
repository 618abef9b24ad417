from __future__ import annotations

import pytest

from src.application.services.content_generation.errors import ParseError
from src.application.services.content_generation.markdown import render_outline_markdown
from src.application.services.content_generation.outline_parser import parse_outline, strip_json_fence


REMOTE_WORK = (
    '```json\n{"title":"Remote Work","outline":[{"section":"Intro","subsections":["why it matters"]}]}\n```'
)


def test_fenced_remote_work_outline():
    outline = parse_outline(REMOTE_WORK)

    assert outline.title == "Remote Work"
    assert len(outline.sections) == 1
    assert outline.sections[0].heading == "Intro"
    assert outline.sections[0].bullets == ["why it matters"]


def test_unfenced_json_is_used_verbatim():
    outline = parse_outline('{"title": "T", "outline": [{"section": "S", "subsections": []}]}')

    assert outline.title == "T"
    assert outline.headings() == ["S"]
    assert outline.sections[0].bullets == []


def test_only_first_fence_is_used():
    raw = (
        '前置き\n```json\n{"title": "A", "outline": [{"section": "S1", "subsections": []}]}\n```\n'
        '```json\n{"title": "B", "outline": []}\n```'
    )
    assert parse_outline(raw).title == "A"


def test_strip_json_fence_without_fence_returns_trimmed_text():
    assert strip_json_fence('  {"a": 1}\n') == '{"a": 1}'


@pytest.mark.parametrize(
    "raw",
    [
        '```json\n{"title": "T", "outline": [{"section": "S", "subsections": []}]}```',
        '```json {"title": "T", "outline": [{"section": "S", "subsections": []}]} ```',
        '```json\r\n{"title": "T", "outline": [{"section": "S", "subsections": []}]}\r\n```',
    ],
)
def test_fence_tolerates_missing_or_extra_whitespace(raw: str):
    outline = parse_outline(raw)
    assert outline.title == "T"
    assert outline.headings() == ["S"]


def test_missing_subsections_defaults_to_empty():
    outline = parse_outline('{"title": "T", "outline": [{"section": "S"}]}')
    assert outline.sections[0].bullets == []


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "```json\n{broken\n```",
        "",
    ],
)
def test_undecodable_text_raises_parse_error(raw: str):
    with pytest.raises(ParseError) as ei:
        parse_outline(raw)
    # 原始响应只写日志，不出现在面向用户的消息里
    assert raw.strip() == "" or raw not in ei.value.message


@pytest.mark.parametrize(
    "raw",
    [
        '{"outline": [{"section": "S", "subsections": []}]}',
        '{"title": "T"}',
        '{"title": "T", "outline": "S"}',
        '{"title": "T", "outline": [{"subsections": ["x"]}]}',
        "[1, 2, 3]",
    ],
)
def test_missing_required_fields_raise_parse_error(raw: str):
    with pytest.raises(ParseError):
        parse_outline(raw)


def test_empty_title_or_sections_rejected():
    with pytest.raises(ParseError):
        parse_outline('{"title": "  ", "outline": [{"section": "S", "subsections": []}]}')
    with pytest.raises(ParseError):
        parse_outline('{"title": "T", "outline": []}')


def test_duplicate_headings_rejected():
    raw = '{"title": "T", "outline": [{"section": "S", "subsections": []}, {"section": "S", "subsections": []}]}'
    with pytest.raises(ParseError):
        parse_outline(raw)


def test_parse_error_carries_code_and_status():
    with pytest.raises(ParseError) as ei:
        parse_outline("oops")
    assert ei.value.code == "parse_error"
    assert ei.value.status_code == 502


def test_parse_then_render_preserves_headings_and_bullets():
    raw = (
        '{"title": "在宅勤務のコツ", "outline": ['
        '{"section": "はじめに", "subsections": ["背景", "この記事で分かること"]},'
        '{"section": "環境づくり", "subsections": ["机と椅子", "照明"]},'
        '{"section": "まとめ", "subsections": []}]}'
    )
    md = render_outline_markdown(parse_outline(raw))

    assert md.startswith("# 在宅勤務のコツ\n\n")
    headings = [line[3:] for line in md.split("\n") if line.startswith("## ")]
    bullets = [line[2:] for line in md.split("\n") if line.startswith("- ")]
    assert headings == ["はじめに", "環境づくり", "まとめ"]
    assert bullets == ["背景", "この記事で分かること", "机と椅子", "照明"]
