from __future__ import annotations

import argparse
import importlib.util
from pathlib import Path

import pytest

from conftest import BrokenBackend, FakeChatProvider, outline_json
from src.application.services.content_generation.providers import ProviderBinding
from src.application.services.content_generation.types import GenerationMode, ProviderChoice

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "generate-article.py"


def _load_script():
    module_spec = importlib.util.spec_from_file_location("generate_article_script", SCRIPT_PATH)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _args(tmp_path: Path, **overrides) -> argparse.Namespace:
    values = {
        "topic": "remote work",
        "provider": "gemini",
        "proxy": False,
        "save": True,
        "save_outline": True,
        "out": str(tmp_path / "out" / "article.md"),
    }
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture()
def script(isolated_settings: Path, monkeypatch: pytest.MonkeyPatch):
    module = _load_script()
    provider = FakeChatProvider(outlines=[outline_json("Remote Work", [("Intro", ["a"]), ("Setup", [])])])
    binding = ProviderBinding(provider=provider, model="test-model", section_mode=GenerationMode.BATCH)
    monkeypatch.setattr(
        module,
        "build_provider_bindings",
        lambda settings, use_proxy=False: {ProviderChoice.GEMINI: binding},
    )
    return module


@pytest.mark.asyncio
async def test_full_run_saves_and_writes_markdown(script, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    assert await script.run(_args(tmp_path)) == 0

    markdown = (tmp_path / "out" / "article.md").read_text(encoding="utf-8")
    assert markdown.startswith("# Remote Work\n\n## Intro\n\n")
    err = capsys.readouterr().err
    assert "構成案を保存しました" in err
    assert "記事を保存しました" in err


@pytest.mark.asyncio
async def test_failed_store_write_does_not_abort_run(
    script, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
):
    monkeypatch.setattr(script, "SqlKeyValueBackend", lambda session_factory: BrokenBackend())

    assert await script.run(_args(tmp_path)) == 0

    markdown = (tmp_path / "out" / "article.md").read_text(encoding="utf-8")
    assert markdown.startswith("# Remote Work\n\n## Intro\n\n")
    assert "## Setup" in markdown
    err = capsys.readouterr().err
    assert "構成案を保存できませんでした" in err
    assert "記事を保存できませんでした" in err


@pytest.mark.asyncio
async def test_unconfigured_provider_exits_early(script, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    assert await script.run(_args(tmp_path, provider="openai")) == 2

    assert "利用可能: gemini" in capsys.readouterr().err
    assert not (tmp_path / "out" / "article.md").exists()
