"""
Unit tests for cooperative cancellation helpers.

Coverage:
- Plain await without a token.
- Pre-cancelled token never schedules the coroutine.
- Cancellation mid-flight aborts the awaited operation.
"""

from __future__ import annotations

import asyncio

import pytest

from dumpscope.utils.concurrency import CancellationToken, run_cancellable


async def _value(result: str) -> str:
    return result


async def test_run_cancellable_without_token_is_plain_await() -> None:
    assert await run_cancellable(_value("ok")) == "ok"


async def test_run_cancellable_returns_value_when_token_never_fires() -> None:
    token = CancellationToken()

    assert await run_cancellable(_value("done"), token) == "done"
    assert not token.is_cancelled


async def test_pre_cancelled_token_raises_before_work_starts() -> None:
    token = CancellationToken()
    token.cancel()
    started: list[bool] = []

    async def work() -> str:
        started.append(True)
        return "never"

    with pytest.raises(asyncio.CancelledError):
        await run_cancellable(work(), token)
    assert started == []


async def test_cancel_during_operation_aborts_it() -> None:
    token = CancellationToken()
    finished: list[bool] = []
    entered = asyncio.Event()

    async def slow() -> str:
        entered.set()
        await asyncio.Event().wait()
        finished.append(True)
        return "unreachable"

    async def trigger() -> None:
        await entered.wait()
        token.cancel()

    trigger_task = asyncio.create_task(trigger())
    with pytest.raises(asyncio.CancelledError):
        await run_cancellable(slow(), token)
    await trigger_task
    assert finished == []


def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()
