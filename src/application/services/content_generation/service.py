"""内容生成控制器。

说明：
- 会话状态只由 `session.transition` 计算，本类负责执行其返回的副作用
- 构成案 / 文章生成以 asyncio.Task 运行；结果事件携带 token，过期结果由状态机丢弃
- 已保存产物的增删改统一走 CollectionStore（整表读改写）
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Mapping, Sequence

from src.application.schemas.artifacts import (
    ArticleContentPart,
    OutlinePayload,
    SavedArticle,
    SavedMarkdown,
    SavedOutline,
)
from src.application.services.collection_store import (
    CollectionStore,
    CollectionStores,
    new_record_id,
    now_millis,
)
from src.application.services.content_generation.errors import ConfigError, ValidationError
from src.application.services.content_generation.llm_section import SectionLLMGenerator
from src.application.services.content_generation.outline_parser import parse_outline
from src.application.services.content_generation.pipeline import SectionGenerationPipeline
from src.application.services.content_generation.prompts import build_outline_prompt
from src.application.services.content_generation.providers import ProviderBinding
from src.application.services.content_generation.session import (
    ArticleFailed,
    ArticleSucceeded,
    CancelEdit,
    CancelStatusRotation,
    DeleteRecord,
    EditArticleContent,
    EditMarkdown,
    EditSectionBullets,
    EditSectionHeading,
    EditTitle,
    Effect,
    Event,
    GenerateArticle,
    GenerateArticleMarkdown,
    GenerateOutlineMarkdown,
    LoadArticle,
    LoadMarkdown,
    LoadOutline,
    OutlineFailed,
    OutlineSucceeded,
    PersistArticle,
    PersistMarkdown,
    PersistOutline,
    RemoveRecord,
    RequestArticle,
    RequestOutline,
    Reset,
    SaveArticle,
    SaveMarkdown,
    SaveOutline,
    SectionStarted,
    SectionUpdated,
    SessionState,
    StartStatusRotation,
    StatusTick,
    Submit,
    Transition,
    transition,
)
from src.application.services.content_generation.status_rotation import (
    OUTLINE_STATUS_MESSAGES,
    StatusRotator,
)
from src.application.services.content_generation.types import (
    ArticleContent,
    ArtifactKind,
    Outline,
    ProviderChoice,
)
from src.shared.errors import AppError
from src.shared.logging import get_logger, log_extra
from src.shared.request_id import get_request_id, new_request_id, set_request_id

log = get_logger(__name__)

OUTLINE_FAILED_MESSAGE = "構成案の生成中にエラーが発生しました。"
ARTICLE_FAILED_MESSAGE = "記事の生成中にエラーが発生しました。"
RECORD_NOT_FOUND_MESSAGE = "指定された保存データが見つかりません。"

StateListener = Callable[[SessionState], None]


class PipelineController:
    """构成案 -> 逐章正文 -> Markdown -> 保存 的会话控制器。"""

    def __init__(
        self,
        *,
        bindings: Mapping[ProviderChoice, ProviderBinding],
        stores: CollectionStores,
        provider_choice: ProviderChoice = ProviderChoice.GEMINI,
        status_interval_seconds: float = 3.5,
        status_messages: Sequence[str] = OUTLINE_STATUS_MESSAGES,
    ):
        self._bindings = dict(bindings)
        self._stores = stores
        self.provider_choice = provider_choice
        self.state = SessionState()
        self._listeners: list[StateListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._last_saved_id: str | None = None
        self._rotator = StatusRotator(
            on_message=lambda message: self.dispatch(StatusTick(message)),
            messages=status_messages,
            interval_seconds=status_interval_seconds,
        )

    # ============== 状态机驱动 ==============

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """订阅状态变化；返回取消订阅函数。"""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, event: Event) -> Transition:
        result = transition(self.state, event)
        changed = result.state is not self.state
        self.state = result.state
        if changed:
            self._notify()
        for effect in result.effects:
            self._perform(effect)
        return result

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                log.exception("state_listener_failed")

    def _perform(self, effect: Effect) -> None:
        if isinstance(effect, StartStatusRotation):
            self._rotator.start()
        elif isinstance(effect, CancelStatusRotation):
            self._rotator.cancel()
        elif isinstance(effect, RequestOutline):
            self._spawn(self._run_outline(effect.token, effect.topic))
        elif isinstance(effect, RequestArticle):
            self._spawn(self._run_article(effect.token, effect.outline))
        elif isinstance(effect, PersistOutline):
            payload = effect.outline.to_payload()
            self._last_saved_id = self._upsert(
                self._stores.outlines,
                effect.record_id,
                lambda rid, created_at: SavedOutline(id=rid, created_at=created_at, **payload),
            )
        elif isinstance(effect, PersistArticle):
            outline = OutlinePayload.model_validate(effect.outline.to_payload())
            parts = [ArticleContentPart(section=h, content=c) for h, c in effect.content]
            self._last_saved_id = self._upsert(
                self._stores.articles,
                effect.record_id,
                lambda rid, created_at: SavedArticle(
                    id=rid, created_at=created_at, outline=outline, content=parts
                ),
            )
        elif isinstance(effect, PersistMarkdown):
            self._last_saved_id = self._upsert(
                self._stores.markdowns,
                effect.record_id,
                lambda rid, created_at: SavedMarkdown(
                    id=rid, created_at=created_at, title=effect.title, content=effect.content
                ),
            )
        elif isinstance(effect, RemoveRecord):
            store = self._stores.for_kind(effect.kind)
            records = store.get()
            remaining = [r for r in records if r.id != effect.record_id]
            if len(remaining) != len(records):
                store.set(remaining)
            log.info("record_deleted", extra=log_extra(kind=effect.kind.value, record_id=effect.record_id))
        else:  # pragma: no cover
            raise TypeError(f"unknown effect: {effect!r}")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _upsert(store: CollectionStore, record_id: str | None, build: Callable[[str, int], Any]) -> str:
        """编辑中的记录原位更新（保留 id 与 created_at），否则插入到最前面。"""
        records = store.get()
        if record_id is not None:
            for i, record in enumerate(records):
                if record.id == record_id:
                    records[i] = build(record.id, record.created_at)
                    store.set(records)
                    log.info("record_updated", extra=log_extra(key=store.key, record_id=record.id))
                    return record.id
            # 编辑中的记录已被删除：作为新记录保存
            log.warning("editing_record_missing", extra=log_extra(key=store.key, record_id=record_id))

        created_at = now_millis()
        rid = new_record_id(created_at)
        store.set([build(rid, created_at), *records])
        log.info("record_created", extra=log_extra(key=store.key, record_id=rid))
        return rid

    # ============== 异步生成任务 ==============

    def _binding(self) -> ProviderBinding:
        binding = self._bindings.get(self.provider_choice)
        if binding is None:
            raise ConfigError(
                "選択されたモデルの API キーが設定されていません。",
                details={"provider": self.provider_choice.value},
            )
        return binding

    def _is_active(self, token: int) -> bool:
        return self.state.active_token == token

    async def _run_outline(self, token: int, topic: str) -> None:
        if get_request_id() is None:
            set_request_id(new_request_id())
        try:
            binding = self._binding()
            prompt = build_outline_prompt(topic, web_search=binding.outline_web_search)
            raw = await binding.outline_adapter.complete(prompt, binding.model)
            outline = parse_outline(raw)
        except AppError as exc:
            log.warning("outline_generation_failed", extra=log_extra(code=exc.code, details=exc.details))
            self.dispatch(OutlineFailed(token=token, message=exc.message or OUTLINE_FAILED_MESSAGE))
            return
        except Exception:
            log.exception("outline_generation_failed")
            self.dispatch(OutlineFailed(token=token, message=OUTLINE_FAILED_MESSAGE))
            return

        if not self._is_active(token):
            log.info("stale_outline_discarded", extra=log_extra(token=token))
        self.dispatch(OutlineSucceeded(token=token, outline=outline))

    async def _run_article(self, token: int, outline: Outline) -> None:
        if get_request_id() is None:
            set_request_id(new_request_id())

        def _on_event(ev: dict[str, Any]) -> None:
            et = ev.get("type")
            if et == "section_start":
                self.dispatch(SectionStarted(token=token, heading=ev["section_title"]))
            elif et == "section_update":
                self.dispatch(
                    SectionUpdated(token=token, heading=ev["section_title"], text=ev["content"])
                )

        try:
            binding = self._binding()
            pipeline = SectionGenerationPipeline(
                generator=SectionLLMGenerator(provider=binding.provider, model=binding.model),
                mode=binding.section_mode,
            )
            await pipeline.run(outline, on_event=_on_event, is_active=lambda: self._is_active(token))
        except AppError as exc:
            self.dispatch(ArticleFailed(token=token, message=exc.message or ARTICLE_FAILED_MESSAGE))
            return
        except Exception:
            log.exception("article_generation_failed")
            self.dispatch(ArticleFailed(token=token, message=ARTICLE_FAILED_MESSAGE))
            return

        if not self._is_active(token):
            log.info("stale_article_discarded", extra=log_extra(token=token))
        self.dispatch(ArticleSucceeded(token=token))

    async def wait(self) -> None:
        """等待所有进行中的生成任务结束。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============== 公开操作 ==============

    def select_provider(self, choice: ProviderChoice | str) -> None:
        self.provider_choice = ProviderChoice(choice)

    @property
    def available_providers(self) -> list[ProviderChoice]:
        return list(self._bindings.keys())

    async def submit(self, topic: str) -> bool:
        """开始生成构成案；进行中的重复提交返回 False 且不做任何事。

        Raises:
            ValidationError: 主题为空
            ConfigError: 当前模型未配置
        """
        if not (topic or "").strip():
            raise ValidationError("トピックを入力してください。")
        if self.state.in_flight:
            log.info("submit_ignored_in_flight", extra=log_extra(status=self.state.status.value))
            return False
        self._binding()
        self.dispatch(Submit(topic=topic))
        return True

    async def generate_outline(self, topic: str) -> Outline | None:
        """提交并等待构成案生成结束；失败时返回 None（错误见 state.error）。"""
        await self.submit(topic)
        await self.wait()
        return self.state.outline

    async def start_article(self) -> bool:
        if self.state.outline is None:
            raise ValidationError("構成案がありません。先に構成案を生成してください。")
        if self.state.in_flight:
            log.info("article_ignored_in_flight", extra=log_extra(status=self.state.status.value))
            return False
        self._binding()
        self.dispatch(GenerateArticle())
        return True

    async def generate_article(self) -> ArticleContent:
        await self.start_article()
        await self.wait()
        return dict(self.state.article)

    def edit_title(self, title: str) -> None:
        self.dispatch(EditTitle(title=title))

    def edit_section_heading(self, index: int, heading: str) -> None:
        self.dispatch(EditSectionHeading(index=index, heading=heading))

    def edit_section_bullets(self, index: int, text: str) -> None:
        self.dispatch(EditSectionBullets(index=index, text=text))

    def edit_article_content(self, heading: str, text: str) -> None:
        self.dispatch(EditArticleContent(heading=heading, text=text))

    def generate_outline_markdown(self) -> str:
        self.dispatch(GenerateOutlineMarkdown())
        return self.state.markdown

    def generate_article_markdown(self) -> str:
        self.dispatch(GenerateArticleMarkdown())
        return self.state.markdown

    def edit_markdown(self, text: str) -> None:
        self.dispatch(EditMarkdown(text=text))

    def _save(self, event: Event) -> str | None:
        self._last_saved_id = None
        self.dispatch(event)
        return self._last_saved_id

    def save_outline(self) -> str | None:
        """保存构成案；返回记录 ID，没有可保存内容时返回 None。"""
        return self._save(SaveOutline())

    def save_article(self) -> str | None:
        return self._save(SaveArticle())

    def save_markdown(self) -> str | None:
        return self._save(SaveMarkdown())

    def list_saved(self, kind: ArtifactKind | str) -> list:
        return self._stores.for_kind(ArtifactKind(kind)).get()

    def _find(self, kind: ArtifactKind, record_id: str):
        for record in self._stores.for_kind(kind).get():
            if record.id == record_id:
                return record
        raise ValidationError(RECORD_NOT_FOUND_MESSAGE, details={"kind": kind.value, "id": record_id})

    def load_outline(self, record_id: str) -> None:
        record = self._find(ArtifactKind.OUTLINES, record_id)
        outline = Outline.from_payload(record.model_dump(include={"title", "outline"}))
        self.dispatch(LoadOutline(record_id=record.id, outline=outline))

    def load_article(self, record_id: str) -> None:
        record = self._find(ArtifactKind.ARTICLES, record_id)
        outline = Outline.from_payload(record.outline.model_dump())
        content = tuple((part.section, part.content) for part in record.content)
        self.dispatch(LoadArticle(record_id=record.id, outline=outline, content=content))

    def load_markdown(self, record_id: str) -> None:
        record = self._find(ArtifactKind.MARKDOWNS, record_id)
        self.dispatch(LoadMarkdown(record_id=record.id, content=record.content))

    def delete(self, kind: ArtifactKind | str, record_id: str) -> None:
        self.dispatch(DeleteRecord(kind=ArtifactKind(kind), record_id=record_id))

    def cancel_edit(self) -> None:
        self.dispatch(CancelEdit())

    def reset(self) -> None:
        """回到初始状态；进行中的模型调用不会中断，其结果到达后被丢弃。"""
        self.dispatch(Reset())
