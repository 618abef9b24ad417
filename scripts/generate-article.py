#!/usr/bin/env python3
"""命令行生成文章：主题 -> 构成案 -> 逐章正文 -> Markdown。

使用方法：
    python scripts/generate-article.py --topic "リモートワークのコツ"
    python scripts/generate-article.py --topic "..." --provider openai --save --out article.md
    python scripts/generate-article.py --topic "..." --provider openai --proxy   # 经由本服务代理端点
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# 允许从任意工作目录运行脚本：确保项目根目录在 sys.path 中
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.application.services.collection_store import CollectionStores, SqlKeyValueBackend
from src.application.services.content_generation.errors import ValidationError
from src.application.services.content_generation.providers import build_provider_bindings
from src.application.services.content_generation.service import PipelineController
from src.application.services.content_generation.session import (
    LoadArticle,
    LoadOutline,
    PipelineStatus,
    SessionState,
)
from src.application.services.content_generation.types import ProviderChoice
from src.shared.config import get_settings
from src.shared.db import init_db, make_engine, make_session_factory
from src.shared.errors import AppError
from src.shared.logging import configure_logging
from src.shared.request_id import new_request_id, reset_request_id, set_request_id


class _ProgressPrinter:
    """把状态提示与当前章节输出到 stderr（去重）。"""

    def __init__(self) -> None:
        self._last_message = ""
        self._last_section = ""

    def __call__(self, state: SessionState) -> None:
        if state.status_message and state.status_message != self._last_message:
            self._last_message = state.status_message
            print(f"[構成案] {state.status_message}", file=sys.stderr)
        if state.current_section and state.current_section != self._last_section:
            self._last_section = state.current_section
            print(f"[執筆中] {state.current_section}", file=sys.stderr)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    engine = make_engine(settings.sqlite_path)
    init_db(engine)
    stores = CollectionStores(SqlKeyValueBackend(make_session_factory(engine)))

    controller = PipelineController(
        bindings=build_provider_bindings(settings, use_proxy=args.proxy),
        stores=stores,
        provider_choice=ProviderChoice(args.provider),
        status_interval_seconds=settings.status_rotation_interval_seconds,
    )
    if controller.provider_choice not in controller.available_providers:
        configured = ", ".join(c.value for c in controller.available_providers) or "なし"
        print(f"{args.provider} の API キーが設定されていません（利用可能: {configured}）", file=sys.stderr)
        return 2
    controller.subscribe(_ProgressPrinter())

    outline = await controller.generate_outline(args.topic)
    if outline is None:
        print(f"構成案の生成に失敗しました: {controller.state.error}", file=sys.stderr)
        return 1
    print(f"[構成案] {outline.title}（{len(outline.sections)} セクション）", file=sys.stderr)

    if args.save_outline:
        # 保存后会话回到初始状态，需要重新读入再继续
        record_id = controller.save_outline()
        try:
            controller.load_outline(record_id)
        except ValidationError:
            print("構成案を保存できませんでした。保存せずに続行します。", file=sys.stderr)
            controller.dispatch(LoadOutline(record_id=None, outline=outline))
        else:
            print(f"構成案を保存しました: {record_id}", file=sys.stderr)

    await controller.generate_article()
    if controller.state.status == PipelineStatus.ERROR:
        print(f"記事の生成に失敗しました: {controller.state.error}", file=sys.stderr)
        return 1

    if args.save:
        article_outline = controller.state.outline
        content = tuple(controller.state.article.items())
        record_id = controller.save_article()
        try:
            controller.load_article(record_id)
        except ValidationError:
            print("記事を保存できませんでした。保存せずに続行します。", file=sys.stderr)
            controller.dispatch(LoadArticle(record_id=None, outline=article_outline, content=content))
        else:
            print(f"記事を保存しました: {record_id}", file=sys.stderr)

    markdown = controller.generate_article_markdown()
    if args.save:
        controller.save_markdown()

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(markdown, encoding="utf-8")
        print(out_path.as_posix())
    else:
        print(markdown)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="AI 記事ライター：構成案と本文を生成して Markdown を出力")
    parser.add_argument("--topic", required=True, help="記事のトピック")
    parser.add_argument(
        "--provider",
        default=ProviderChoice.GEMINI.value,
        choices=[c.value for c in ProviderChoice],
        help="使用するモデル（gemini: 一括生成 / openai: ストリーミング生成）",
    )
    parser.add_argument("--proxy", action="store_true", help="OpenAI を本サービスの代理エンドポイント経由で呼び出す")
    parser.add_argument("--save", action="store_true", help="記事と Markdown を保存する")
    parser.add_argument("--save-outline", action="store_true", help="構成案も保存する")
    parser.add_argument("--out", default="", help="Markdown の出力先（省略時は標準出力）")
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    token = set_request_id(new_request_id())
    try:
        return asyncio.run(run(args))
    except AppError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 2
    finally:
        reset_request_id(token)


if __name__ == "__main__":
    raise SystemExit(main())
