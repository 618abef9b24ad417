"""构成案生成期间的状态提示轮换（纯展示用途）。"""

from __future__ import annotations

import asyncio
from typing import Callable, Sequence

OUTLINE_STATUS_MESSAGES: tuple[str, ...] = (
    "上位記事の検索を開始します...",
    "競合コンテンツのH2, H3を分析中...",
    "最適な構成案を生成しています...",
    "最終チェックを行っています...",
)


def next_status_index(index: int, total: int) -> int:
    """下一条提示的下标；到最后一条后停住，不回到第一条。"""
    if total <= 0:
        return 0
    return min(index + 1, total - 1)


class StatusRotator:
    """按固定间隔轮换状态提示的后台任务。

    start() 立即发布第一条，之后每个间隔前进一条，最后一条保持不变。
    cancel() 可重复调用。
    """

    def __init__(
        self,
        *,
        on_message: Callable[[str], None],
        messages: Sequence[str] = OUTLINE_STATUS_MESSAGES,
        interval_seconds: float = 3.5,
    ):
        self._on_message = on_message
        self._messages = tuple(messages)
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        if not self._messages:
            return
        self._publish(self._messages[0])
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        index = 0
        last = len(self._messages) - 1
        while index < last:
            await asyncio.sleep(self._interval)
            index = next_status_index(index, len(self._messages))
            self._publish(self._messages[index])

    def _publish(self, message: str) -> None:
        self._on_message(message)
