# Tests for lifecycle registry and logging setup
# Created: 2026-03-07

import logging

from rich.logging import RichHandler

from chatdesk import lifecycle
from chatdesk.history import get_history_keeper
from chatdesk.logging_setup import setup_logging


class TestLifecycle:
    async def test_shutdown_runs_newest_first(self):
        calls = []

        async def async_shutdown():
            calls.append("async")

        lifecycle.register("a", shutdown=lambda: calls.append("sync"))
        lifecycle.register("b", shutdown=async_shutdown)
        await lifecycle.shutdown_all()
        assert calls == ["async", "sync"]

    async def test_reregistering_replaces_hooks(self):
        calls = []
        lifecycle.register("a", shutdown=lambda: calls.append("old"))
        lifecycle.register("b", shutdown=lambda: calls.append("b"))
        lifecycle.register("a", shutdown=lambda: calls.append("new"))
        await lifecycle.shutdown_all()
        assert calls == ["b", "new"]

    async def test_failing_shutdown_does_not_stop_others(self, caplog):
        calls = []

        def broken():
            raise RuntimeError("boom")

        lifecycle.register("broken", shutdown=broken)
        lifecycle.register("ok", shutdown=lambda: calls.append("ok"))
        await lifecycle.shutdown_all()
        assert calls == ["ok"]
        assert "Error shutting down broken" in caplog.text

    async def test_reset_all_forgets_hooks(self):
        resets = []
        shutdowns = []
        lifecycle.register("x", shutdown=lambda: shutdowns.append("x"), reset=lambda: resets.append("x"))
        lifecycle.reset_all()
        lifecycle.reset_all()
        await lifecycle.shutdown_all()
        assert resets == ["x"]
        assert shutdowns == []

    async def test_history_keeper_flushes_on_shutdown(self):
        keeper = get_history_keeper()
        assert get_history_keeper() is keeper

        keeper.save("m1", {"history": []})
        await lifecycle.shutdown_all()
        assert keeper.path_for("m1").exists()


class TestSetupLogging:
    def test_installs_one_rich_handler(self):
        root = logging.getLogger()
        before = [h for h in root.handlers if isinstance(h, RichHandler)]
        setup_logging("debug")
        setup_logging("INFO")
        after = [h for h in root.handlers if isinstance(h, RichHandler)]

        assert len(after) - len(before) <= 1
        assert len(after) >= 1
        assert root.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
