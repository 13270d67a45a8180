# Tests for Signal
# Created: 2026-03-06

from chatdesk.signals import Signal


class TestSignal:
    def test_emit_in_connection_order(self):
        signal = Signal("test")
        calls = []
        signal.connect(lambda x: calls.append(("a", x)))
        signal.connect(lambda x: calls.append(("b", x)))
        signal.emit(1)
        assert calls == [("a", 1), ("b", 1)]

    def test_connect_as_decorator(self):
        signal = Signal()
        calls = []

        @signal.connect
        def slot():
            calls.append(True)

        signal.emit()
        assert calls == [True]
        assert len(signal) == 1

    def test_disconnect(self):
        signal = Signal()
        calls = []
        slot = signal.connect(lambda: calls.append(True))
        signal.disconnect(slot)
        signal.disconnect(slot)
        signal.emit()
        assert calls == []

    def test_slot_exception_is_logged_not_raised(self, caplog):
        signal = Signal("broken")
        calls = []

        def broken():
            raise RuntimeError("boom")

        signal.connect(broken)
        signal.connect(lambda: calls.append(True))
        signal.emit()

        assert calls == [True]
        assert "broken" in caplog.text

    def test_disconnect_all(self):
        signal = Signal()
        signal.connect(lambda: None)
        signal.connect(lambda: None)
        signal.disconnect_all()
        assert len(signal) == 0
