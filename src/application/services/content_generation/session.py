"""生成会话状态机。

所有状态迁移都是纯函数 `transition(state, event) -> Transition(state, effects)`：
不修改入参，也不做任何 IO；需要执行的副作用（调用模型、启停定时器、写存储）
以 effect 列表返回，由 PipelineController 负责执行。

异步结果事件（构成案 / 章节）都携带 token，只有与当前活动请求一致时才会生效，
reset 之后迟到的结果会被直接丢弃。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from src.application.services.content_generation.markdown import (
    extract_markdown_title,
    render_article_markdown,
    render_outline_markdown,
)
from src.application.services.content_generation.types import (
    ArticleContent,
    ArtifactKind,
    Outline,
    OutlineSection,
)


class PipelineStatus(str, Enum):
    IDLE = "idle"
    GENERATING_OUTLINE = "generating_outline"
    OUTLINE_READY = "outline_ready"
    GENERATING_ARTICLE = "generating_article"
    ARTICLE_READY = "article_ready"
    ERROR = "error"


IN_FLIGHT = frozenset({PipelineStatus.GENERATING_OUTLINE, PipelineStatus.GENERATING_ARTICLE})


@dataclass(frozen=True)
class SessionState:
    """一次编辑会话的全部状态（不可变；每次迁移产生新实例，由 PipelineController 持有）。"""

    status: PipelineStatus = PipelineStatus.IDLE
    topic: str = ""
    outline: Outline | None = None
    article: ArticleContent = field(default_factory=dict)
    current_section: str = ""
    error: str | None = None
    status_message: str = ""
    markdown: str = ""
    editing_outline_id: str | None = None
    editing_article_id: str | None = None
    editing_markdown_id: str | None = None
    active_token: int | None = None
    next_token: int = 1

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT


# ============== Events ==============

@dataclass(frozen=True)
class Submit:
    topic: str


@dataclass(frozen=True)
class StatusTick:
    message: str


@dataclass(frozen=True)
class OutlineSucceeded:
    token: int
    outline: Outline


@dataclass(frozen=True)
class OutlineFailed:
    token: int
    message: str


@dataclass(frozen=True)
class EditTitle:
    title: str


@dataclass(frozen=True)
class EditSectionHeading:
    index: int
    heading: str


@dataclass(frozen=True)
class EditSectionBullets:
    index: int
    text: str


@dataclass(frozen=True)
class GenerateArticle:
    pass


@dataclass(frozen=True)
class SectionStarted:
    token: int
    heading: str


@dataclass(frozen=True)
class SectionUpdated:
    token: int
    heading: str
    text: str


@dataclass(frozen=True)
class ArticleSucceeded:
    token: int


@dataclass(frozen=True)
class ArticleFailed:
    token: int
    message: str


@dataclass(frozen=True)
class EditArticleContent:
    heading: str
    text: str


@dataclass(frozen=True)
class GenerateOutlineMarkdown:
    pass


@dataclass(frozen=True)
class GenerateArticleMarkdown:
    pass


@dataclass(frozen=True)
class EditMarkdown:
    text: str


@dataclass(frozen=True)
class SaveOutline:
    pass


@dataclass(frozen=True)
class SaveArticle:
    pass


@dataclass(frozen=True)
class SaveMarkdown:
    pass


@dataclass(frozen=True)
class LoadOutline:
    record_id: str | None
    outline: Outline


@dataclass(frozen=True)
class LoadArticle:
    record_id: str | None
    outline: Outline
    content: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class LoadMarkdown:
    record_id: str
    content: str


@dataclass(frozen=True)
class DeleteRecord:
    kind: ArtifactKind
    record_id: str


@dataclass(frozen=True)
class CancelEdit:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = (
    Submit
    | StatusTick
    | OutlineSucceeded
    | OutlineFailed
    | EditTitle
    | EditSectionHeading
    | EditSectionBullets
    | GenerateArticle
    | SectionStarted
    | SectionUpdated
    | ArticleSucceeded
    | ArticleFailed
    | EditArticleContent
    | GenerateOutlineMarkdown
    | GenerateArticleMarkdown
    | EditMarkdown
    | SaveOutline
    | SaveArticle
    | SaveMarkdown
    | LoadOutline
    | LoadArticle
    | LoadMarkdown
    | DeleteRecord
    | CancelEdit
    | Reset
)


# ============== Effects ==============

@dataclass(frozen=True)
class StartStatusRotation:
    pass


@dataclass(frozen=True)
class CancelStatusRotation:
    pass


@dataclass(frozen=True)
class RequestOutline:
    token: int
    topic: str


@dataclass(frozen=True)
class RequestArticle:
    token: int
    outline: Outline


@dataclass(frozen=True)
class PersistOutline:
    outline: Outline
    record_id: str | None


@dataclass(frozen=True)
class PersistArticle:
    outline: Outline
    content: tuple[tuple[str, str], ...]
    record_id: str | None


@dataclass(frozen=True)
class PersistMarkdown:
    title: str
    content: str
    record_id: str | None


@dataclass(frozen=True)
class RemoveRecord:
    kind: ArtifactKind
    record_id: str


Effect = (
    StartStatusRotation
    | CancelStatusRotation
    | RequestOutline
    | RequestArticle
    | PersistOutline
    | PersistArticle
    | PersistMarkdown
    | RemoveRecord
)


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: tuple[Effect, ...] = ()


def _unchanged(state: SessionState) -> Transition:
    return Transition(state)


def _cleared(state: SessionState) -> SessionState:
    """回到 IDLE：清空主题、构成案、文章与其编辑 ID；Markdown 缓冲区保留。"""
    return replace(
        state,
        status=PipelineStatus.IDLE,
        topic="",
        outline=None,
        article={},
        current_section="",
        error=None,
        status_message="",
        editing_outline_id=None,
        editing_article_id=None,
        active_token=None,
    )


def _with_section(outline: Outline, index: int, section: OutlineSection) -> Outline:
    sections = [OutlineSection(heading=s.heading, bullets=list(s.bullets)) for s in outline.sections]
    sections[index] = section
    return Outline(title=outline.title, sections=sections)


# ============== Transition ==============

def transition(state: SessionState, event: Event) -> Transition:
    """计算下一个状态与副作用。非法或过期的事件原样返回状态（no-op）。"""

    if isinstance(event, Reset):
        return Transition(
            replace(
                _cleared(state),
                markdown="",
                editing_markdown_id=None,
            ),
            (CancelStatusRotation(),),
        )

    if isinstance(event, Submit):
        topic = event.topic.strip()
        if not topic or state.in_flight:
            return _unchanged(state)
        token = state.next_token
        new_state = replace(
            state,
            status=PipelineStatus.GENERATING_OUTLINE,
            topic=event.topic,
            outline=None,
            article={},
            current_section="",
            error=None,
            status_message="",
            editing_outline_id=None,
            editing_article_id=None,
            active_token=token,
            next_token=token + 1,
        )
        return Transition(new_state, (StartStatusRotation(), RequestOutline(token=token, topic=topic)))

    if isinstance(event, StatusTick):
        if state.status != PipelineStatus.GENERATING_OUTLINE:
            return _unchanged(state)
        return Transition(replace(state, status_message=event.message))

    if isinstance(event, (OutlineSucceeded, OutlineFailed)):
        if state.status != PipelineStatus.GENERATING_OUTLINE or event.token != state.active_token:
            return _unchanged(state)
        if isinstance(event, OutlineSucceeded):
            new_state = replace(
                state,
                status=PipelineStatus.OUTLINE_READY,
                outline=event.outline.copy(),
                status_message="",
                active_token=None,
            )
        else:
            new_state = replace(
                state,
                status=PipelineStatus.ERROR,
                outline=None,
                error=event.message,
                status_message="",
                active_token=None,
            )
        return Transition(new_state, (CancelStatusRotation(),))

    if isinstance(event, EditTitle):
        if state.status != PipelineStatus.OUTLINE_READY or state.outline is None:
            return _unchanged(state)
        outline = state.outline.copy()
        outline.title = event.title
        return Transition(replace(state, outline=outline))

    if isinstance(event, EditSectionHeading):
        outline = state.outline
        if state.status != PipelineStatus.OUTLINE_READY or outline is None:
            return _unchanged(state)
        if not 0 <= event.index < len(outline.sections):
            return _unchanged(state)
        others = [h for i, h in enumerate(outline.headings()) if i != event.index]
        if event.heading in others:
            # 标题是正文的查找键，不允许重复
            return _unchanged(state)
        old = outline.sections[event.index]
        section = OutlineSection(heading=event.heading, bullets=list(old.bullets))
        return Transition(replace(state, outline=_with_section(outline, event.index, section)))

    if isinstance(event, EditSectionBullets):
        outline = state.outline
        if state.status != PipelineStatus.OUTLINE_READY or outline is None:
            return _unchanged(state)
        if not 0 <= event.index < len(outline.sections):
            return _unchanged(state)
        old = outline.sections[event.index]
        section = OutlineSection(heading=old.heading, bullets=event.text.split("\n"))
        return Transition(replace(state, outline=_with_section(outline, event.index, section)))

    if isinstance(event, GenerateArticle):
        if state.in_flight or state.outline is None:
            return _unchanged(state)
        token = state.next_token
        new_state = replace(
            state,
            status=PipelineStatus.GENERATING_ARTICLE,
            article={},
            current_section="",
            markdown="",
            error=None,
            active_token=token,
            next_token=token + 1,
        )
        return Transition(new_state, (RequestArticle(token=token, outline=state.outline.copy()),))

    if isinstance(event, (SectionStarted, SectionUpdated, ArticleSucceeded, ArticleFailed)):
        if state.status != PipelineStatus.GENERATING_ARTICLE or event.token != state.active_token:
            return _unchanged(state)
        if isinstance(event, SectionStarted):
            return Transition(replace(state, current_section=event.heading))
        if isinstance(event, SectionUpdated):
            article = dict(state.article)
            article[event.heading] = event.text
            return Transition(replace(state, article=article))
        if isinstance(event, ArticleSucceeded):
            return Transition(
                replace(
                    state,
                    status=PipelineStatus.ARTICLE_READY,
                    current_section="",
                    active_token=None,
                )
            )
        # 失败：已完成章节的正文保留
        return Transition(
            replace(
                state,
                status=PipelineStatus.ERROR,
                current_section="",
                error=event.message,
                active_token=None,
            )
        )

    if isinstance(event, EditArticleContent):
        if state.status != PipelineStatus.ARTICLE_READY or state.outline is None:
            return _unchanged(state)
        if event.heading not in state.outline.headings():
            return _unchanged(state)
        article = dict(state.article)
        article[event.heading] = event.text
        return Transition(replace(state, article=article))

    if isinstance(event, GenerateOutlineMarkdown):
        if state.in_flight or state.outline is None:
            return _unchanged(state)
        return Transition(replace(state, markdown=render_outline_markdown(state.outline)))

    if isinstance(event, GenerateArticleMarkdown):
        if state.in_flight or state.outline is None or not state.article:
            return _unchanged(state)
        md = render_article_markdown(state.outline, state.article)
        # 输出 Markdown 后文章编辑视图清空
        return Transition(
            replace(
                state,
                status=PipelineStatus.IDLE,
                markdown=md,
                outline=None,
                article={},
                editing_article_id=None,
                error=None,
            )
        )

    if isinstance(event, EditMarkdown):
        return Transition(replace(state, markdown=event.text))

    if isinstance(event, SaveOutline):
        if state.in_flight or state.outline is None:
            return _unchanged(state)
        effect = PersistOutline(outline=state.outline.copy(), record_id=state.editing_outline_id)
        return Transition(_cleared(state), (effect,))

    if isinstance(event, SaveArticle):
        if state.in_flight or state.outline is None or not state.article:
            return _unchanged(state)
        effect = PersistArticle(
            outline=state.outline.copy(),
            content=tuple(state.article.items()),
            record_id=state.editing_article_id,
        )
        return Transition(_cleared(state), (effect,))

    if isinstance(event, SaveMarkdown):
        if not state.markdown.strip():
            return _unchanged(state)
        effect = PersistMarkdown(
            title=extract_markdown_title(state.markdown),
            content=state.markdown,
            record_id=state.editing_markdown_id,
        )
        return Transition(replace(state, markdown="", editing_markdown_id=None), (effect,))

    if isinstance(event, LoadOutline):
        if state.in_flight:
            return _unchanged(state)
        return Transition(
            replace(
                state,
                status=PipelineStatus.OUTLINE_READY,
                topic=event.outline.title,
                outline=event.outline.copy(),
                article={},
                current_section="",
                error=None,
                editing_outline_id=event.record_id,
                editing_article_id=None,
            )
        )

    if isinstance(event, LoadArticle):
        if state.in_flight:
            return _unchanged(state)
        return Transition(
            replace(
                state,
                status=PipelineStatus.ARTICLE_READY,
                outline=event.outline.copy(),
                article=dict(event.content),
                current_section="",
                error=None,
                markdown="",
                editing_article_id=event.record_id,
                editing_outline_id=None,
            )
        )

    if isinstance(event, LoadMarkdown):
        if state.in_flight:
            return _unchanged(state)
        return Transition(
            replace(
                state,
                status=PipelineStatus.IDLE,
                outline=None,
                article={},
                current_section="",
                error=None,
                markdown=event.content,
                editing_markdown_id=event.record_id,
                editing_outline_id=None,
                editing_article_id=None,
            )
        )

    if isinstance(event, DeleteRecord):
        new_state = state
        if event.kind == ArtifactKind.OUTLINES and state.editing_outline_id == event.record_id:
            new_state = replace(new_state, editing_outline_id=None)
        elif event.kind == ArtifactKind.ARTICLES and state.editing_article_id == event.record_id:
            new_state = replace(new_state, editing_article_id=None)
        elif event.kind == ArtifactKind.MARKDOWNS and state.editing_markdown_id == event.record_id:
            new_state = replace(new_state, editing_markdown_id=None)
        return Transition(new_state, (RemoveRecord(kind=event.kind, record_id=event.record_id),))

    if isinstance(event, CancelEdit):
        if state.in_flight:
            return _unchanged(state)
        return Transition(
            replace(
                state,
                status=PipelineStatus.IDLE,
                topic="",
                outline=None,
                article={},
                error=None,
                editing_outline_id=None,
                editing_article_id=None,
                markdown="",
            )
        )

    raise TypeError(f"unknown event: {event!r}")
