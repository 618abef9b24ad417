from __future__ import annotations

import asyncio

import pytest

from src.application.services.content_generation.status_rotation import (
    OUTLINE_STATUS_MESSAGES,
    StatusRotator,
    next_status_index,
)


def test_next_status_index_stops_at_last_message():
    assert [next_status_index(i, 4) for i in range(4)] == [1, 2, 3, 3]
    assert next_status_index(0, 0) == 0


def test_default_messages():
    assert len(OUTLINE_STATUS_MESSAGES) == 4
    assert OUTLINE_STATUS_MESSAGES[0] == "上位記事の検索を開始します..."


@pytest.mark.asyncio
async def test_rotation_publishes_first_immediately_and_last_is_sticky():
    seen: list[str] = []
    rotator = StatusRotator(on_message=seen.append, messages=["a", "b", "c"], interval_seconds=0.01)

    rotator.start()
    assert seen == ["a"]
    assert rotator.running

    await asyncio.sleep(0.2)
    assert seen == ["a", "b", "c"]
    # 最后一条之后任务自然结束，不会回到第一条
    assert not rotator.running
    rotator.cancel()


@pytest.mark.asyncio
async def test_cancel_stops_rotation_and_is_idempotent():
    seen: list[str] = []
    rotator = StatusRotator(on_message=seen.append, messages=["a", "b", "c"], interval_seconds=0.05)

    rotator.start()
    rotator.cancel()
    rotator.cancel()
    await asyncio.sleep(0.15)

    assert seen == ["a"]
    assert not rotator.running


@pytest.mark.asyncio
async def test_restart_replaces_previous_task():
    seen: list[str] = []
    rotator = StatusRotator(on_message=seen.append, messages=["a", "b"], interval_seconds=0.05)

    rotator.start()
    rotator.start()
    await asyncio.sleep(0.2)
    rotator.cancel()

    assert seen == ["a", "a", "b"]
