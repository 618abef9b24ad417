"""构成案解析：模型响应文本 -> Outline。"""

from __future__ import annotations

import json
import re

from pydantic import ValidationError as PydanticValidationError

from src.application.schemas.artifacts import OutlinePayload
from src.application.services.content_generation.errors import ParseError
from src.application.services.content_generation.types import Outline
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

# 模型常把 JSON 包在 ```json ... ``` 代码块里，只取第一个
JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")


def strip_json_fence(raw: str) -> str:
    """去掉 ```json 代码块包裹；不存在时原样返回（去首尾空白）。"""
    text = (raw or "").strip()
    m = JSON_FENCE_RE.search(text)
    return m.group(1) if m else text


def parse_outline(raw: str) -> Outline:
    """解析模型返回的构成案。

    期望结构：`{"title": str, "outline": [{"section": str, "subsections": [str]}]}`

    Raises:
        ParseError: JSON 解码失败、缺少必填字段或章节标题重复
    """
    text = strip_json_fence(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        log.warning("outline_json_decode_failed", extra=log_extra(raw=raw, error=str(exc)))
        raise ParseError(
            "AI の応答を JSON として解析できませんでした。応答が不正な形式である可能性があります。"
        ) from exc

    if not isinstance(data, dict):
        log.warning("outline_not_object", extra=log_extra(raw=raw))
        raise ParseError("構成案の形式が不正です（オブジェクトではありません）。")

    try:
        payload = OutlinePayload.model_validate(data)
    except PydanticValidationError as exc:
        log.warning("outline_schema_invalid", extra=log_extra(raw=raw, errors=exc.errors()))
        raise ParseError(
            "構成案に必須項目（title / outline）がありません。",
            details={"fields": sorted({str(e["loc"][0]) for e in exc.errors() if e.get("loc")})},
        ) from exc

    if not payload.title.strip():
        log.warning("outline_title_empty", extra=log_extra(raw=raw))
        raise ParseError("構成案のタイトルが空です。")
    if not payload.outline:
        log.warning("outline_sections_empty", extra=log_extra(raw=raw))
        raise ParseError("構成案にセクションがありません。")

    outline = Outline.from_payload(payload.model_dump())
    headings = outline.headings()
    if len(set(headings)) != len(headings):
        log.warning("outline_duplicate_headings", extra=log_extra(headings=headings))
        raise ParseError("構成案のセクション見出しが重複しています。")
    return outline
