from __future__ import annotations

import asyncio
import json
import re
import sys
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.application.services.collection_store import CollectionStores
from src.application.services.content_generation.errors import TransportError
from src.application.services.content_generation.providers import ProviderBinding
from src.application.services.content_generation.service import PipelineController
from src.application.services.content_generation.types import GenerationMode, ProviderChoice
from src.shared.config import reset_settings_for_tests

_SECTION_RE = re.compile(r"執筆するセクション: (.+)")


def outline_json(title: str, sections: list[tuple[str, list[str]]], *, fenced: bool = False) -> str:
    """构造模型返回的构成案文本。"""
    raw = json.dumps(
        {"title": title, "outline": [{"section": s, "subsections": b} for s, b in sections]},
        ensure_ascii=False,
    )
    return f"```json\n{raw}\n```" if fenced else raw


class FakeChatProvider:
    """按提示词区分构成案 / 章节请求的假适配器。

    - outlines: 构成案请求依次返回的文本（只剩一条时重复使用）
    - sections: 章节标题 -> 正文（str）或流式片段（list[str]）
    - fail_on: 这些章节的请求抛出 TransportError
    - gate: 设置后构成案请求会等待该事件
    """

    def __init__(
        self,
        *,
        outlines: list[str] | None = None,
        sections: dict[str, Any] | None = None,
        fail_on: set[str] | None = None,
    ):
        self.outlines = list(outlines or [])
        self.sections = dict(sections or {})
        self.fail_on = set(fail_on or ())
        self.calls: list[tuple[str, str | None]] = []
        self.prompts: list[str] = []
        self.gate: asyncio.Event | None = None

    @staticmethod
    def section_of(prompt: str) -> str | None:
        m = _SECTION_RE.search(prompt)
        return m.group(1).strip() if m else None

    def _section_chunks(self, heading: str) -> list[str]:
        if heading in self.fail_on:
            raise TransportError("upstream failed", details={"section": heading})
        value = self.sections.get(heading, f"{heading} の本文")
        return [value] if isinstance(value, str) else list(value)

    async def complete(self, prompt: str, model: str) -> str:
        heading = self.section_of(prompt)
        self.calls.append(("complete", heading))
        self.prompts.append(prompt)
        if heading is None:
            if self.gate is not None:
                await self.gate.wait()
            if len(self.outlines) > 1:
                return self.outlines.pop(0)
            return self.outlines[0] if self.outlines else ""
        return "".join(self._section_chunks(heading))

    async def stream(self, prompt: str, model: str) -> AsyncIterator[str]:
        heading = self.section_of(prompt)
        self.calls.append(("stream", heading))
        for chunk in self._section_chunks(heading or ""):
            await asyncio.sleep(0)
            yield chunk

    def section_calls(self) -> list[str | None]:
        return [h for _, h in self.calls if h is not None]


class MemoryBackend:
    """内存键值存储（测试用）。"""

    def __init__(self) -> None:
        self.data: dict[str, list[dict[str, Any]]] = {}
        self.writes = 0

    def get_value(self, key: str) -> list[dict[str, Any]] | None:
        value = self.data.get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def set_value(self, key: str, value: list[dict[str, Any]]) -> None:
        self.writes += 1
        self.data[key] = json.loads(json.dumps(value))


class BrokenBackend:
    """任何读写都失败的存储。"""

    def get_value(self, key: str):
        raise OSError("storage unavailable")

    def set_value(self, key: str, value) -> None:
        raise OSError("storage unavailable")


@pytest.fixture()
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """隔离配置：临时 sqlite、禁用 .env、固定测试密钥。"""
    sqlite_path = tmp_path / "runtime" / "sqlite" / "test.db"
    monkeypatch.setenv("WRITER_SQLITE_PATH", str(sqlite_path))
    # 禁用加载 .env 文件，防止本地配置干扰测试
    monkeypatch.setenv("WRITER_DISABLE_DOTENV", "1")
    monkeypatch.setenv("WRITER_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("WRITER_GEMINI_API_KEY", "gm-test")
    monkeypatch.setenv("WRITER_OPENAI_MODEL", "gpt-5")
    reset_settings_for_tests()
    yield sqlite_path
    reset_settings_for_tests()


@pytest.fixture()
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def stores(memory_backend: MemoryBackend) -> CollectionStores:
    return CollectionStores(memory_backend)


@pytest.fixture()
def make_controller(stores: CollectionStores):
    def _make(
        provider: FakeChatProvider,
        *,
        mode: GenerationMode = GenerationMode.BATCH,
        choice: ProviderChoice = ProviderChoice.GEMINI,
        status_interval_seconds: float = 3.5,
    ) -> PipelineController:
        controller = PipelineController(
            bindings={choice: ProviderBinding(provider=provider, model="test-model", section_mode=mode)},
            stores=stores,
            provider_choice=choice,
            status_interval_seconds=status_interval_seconds,
        )
        return controller

    return _make


@pytest.fixture()
async def api_client(isolated_settings: Path):
    """API 客户端 Fixture，为每个测试用例提供隔离的 SQLite。"""
    from src.interfaces.api.app import create_app

    app = create_app()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.app = app  # type: ignore[attr-defined]
        yield client
