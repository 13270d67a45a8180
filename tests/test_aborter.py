# Tests for AbortController / run_abortable
# Created: 2026-03-06

import asyncio

import pytest

from chatdesk.aborter import AbortController, run_abortable
from chatdesk.errors import AbortError


class TestAbortSignal:
    def test_abort_is_idempotent(self):
        controller = AbortController()
        calls = []
        controller.signal.add_listener(lambda: calls.append(1))
        controller.abort()
        controller.abort()
        assert controller.aborted is True
        assert calls == [1]

    def test_listener_added_after_abort_runs_immediately(self):
        controller = AbortController()
        controller.abort()
        calls = []
        controller.signal.add_listener(lambda: calls.append(1))
        assert calls == [1]

    def test_removed_listener_not_called(self):
        controller = AbortController()
        calls = []

        def listener():
            calls.append(1)

        controller.signal.add_listener(listener)
        controller.signal.remove_listener(listener)
        controller.abort()
        assert calls == []

    def test_raise_if_aborted(self):
        controller = AbortController()
        controller.signal.raise_if_aborted()
        controller.abort()
        with pytest.raises(AbortError):
            controller.signal.raise_if_aborted()

    async def test_wait(self):
        controller = AbortController()
        waiter = asyncio.create_task(controller.signal.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        controller.abort()
        await asyncio.wait_for(waiter, timeout=1)


class TestRunAbortable:
    async def test_returns_result(self):
        async def work():
            return 42

        assert await run_abortable(work(), AbortController().signal) == 42

    async def test_errors_propagate(self):
        async def work():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await run_abortable(work(), AbortController().signal)

    async def test_abort_cancels_non_cooperative_work(self):
        controller = AbortController()
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        task = asyncio.create_task(run_abortable(work(), controller.signal))
        for _ in range(3):
            await asyncio.sleep(0)
        controller.abort()
        with pytest.raises(AbortError):
            await task
        assert cancelled.is_set()

    async def test_already_aborted(self):
        controller = AbortController()
        controller.abort()
        started = []

        async def work():
            started.append(True)

        with pytest.raises(AbortError):
            await run_abortable(work(), controller.signal)
        assert started == []

    async def test_outer_cancellation_propagates(self):
        controller = AbortController()

        async def work():
            await asyncio.Event().wait()

        task = asyncio.create_task(run_abortable(work(), controller.signal))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
