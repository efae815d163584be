"""
Unit tests for shutdown coordination.
"""

import os
import signal
import sys
import threading

import pytest

from restshell.core.shutdown import (
    CompletionSignal,
    CoordinatorState,
    InterruptSignal,
    ManualSignal,
    ShutdownCoordinator,
)


class FakeServer:
    """Stands in for HTTPServer; records shutdown() calls."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    def shutdown(self, timeout: float):
        self.calls.append(timeout)
        if self.error is not None:
            raise self.error


class FatalRecorder:

    def __init__(self):
        self.messages = []
        self.called = threading.Event()

    def __call__(self, message: str):
        self.messages.append(message)
        self.called.set()


class TestCompletionSignal:

    def test_close_once(self):
        completion = CompletionSignal()
        assert not completion.closed
        assert completion.wait(0.01) is False

        completion.close()

        assert completion.closed
        assert completion.wait(0.01) is True

    def test_close_twice_raises(self):
        completion = CompletionSignal()
        completion.close()

        with pytest.raises(RuntimeError):
            completion.close()

    def test_wait_unblocks_other_thread(self):
        completion = CompletionSignal()
        woke = threading.Event()

        def waiter():
            completion.wait()
            woke.set()

        threading.Thread(target=waiter, daemon=True).start()
        completion.close()

        assert woke.wait(2.0)


class TestManualSignal:

    def test_trigger(self):
        signals = ManualSignal()
        assert not signals.fired

        signals.trigger()

        assert signals.fired
        assert signals.wait(0.01) == signal.SIGINT

    def test_first_signal_wins(self):
        signals = ManualSignal()
        signals.trigger(signal.SIGTERM)
        signals.trigger(signal.SIGINT)

        assert signals.wait(0.01) == signal.SIGTERM

    def test_release_without_signal(self):
        signals = ManualSignal()
        signals.release()

        assert signals.wait(0.01) is None
        assert not signals.fired


class TestShutdownCoordinator:

    def test_drain_success_closes_completion(self, caplog):
        server = FakeServer()
        completion = CompletionSignal()
        signals = ManualSignal()
        fatal = FatalRecorder()

        coordinator = ShutdownCoordinator(server, completion, signals, 7.5, fatal=fatal)
        coordinator.start()
        assert coordinator.state == CoordinatorState.ARMED
        assert not completion.closed

        with caplog.at_level("INFO", logger="restshell"):
            signals.trigger()
            assert coordinator.join(2.0)

        assert server.calls == [7.5]
        assert completion.closed
        assert coordinator.state == CoordinatorState.CLOSED
        assert fatal.messages == []
        assert "😔 Shutting down. Goodbye.." in caplog.text

    def test_drain_failure_calls_fatal(self):
        server = FakeServer(error=RuntimeError("3 connection(s) still active"))
        completion = CompletionSignal()
        signals = ManualSignal()
        fatal = FatalRecorder()

        coordinator = ShutdownCoordinator(server, completion, signals, 1.0, fatal=fatal)
        coordinator.start()
        signals.trigger()

        assert fatal.called.wait(2.0)
        assert coordinator.join(2.0)
        assert fatal.messages == ["⚠️  HTTP server shutdown error: 3 connection(s) still active"]
        assert not completion.closed
        assert coordinator.state == CoordinatorState.DRAINING

    def test_abandon(self):
        server = FakeServer()
        completion = CompletionSignal()
        coordinator = ShutdownCoordinator(server, completion, ManualSignal(), 1.0,
                                          fatal=FatalRecorder())
        coordinator.start()

        coordinator.abandon()

        assert coordinator.join(2.0)
        assert coordinator.state == CoordinatorState.ABANDONED
        assert server.calls == []
        assert not completion.closed

    def test_no_drain_without_signal(self):
        server = FakeServer()
        coordinator = ShutdownCoordinator(server, CompletionSignal(), ManualSignal(), 1.0)
        coordinator.start()

        assert coordinator.join(0.1) is False
        assert server.calls == []

        coordinator.abandon()
        assert coordinator.join(2.0)

    def test_start_twice_raises(self):
        coordinator = ShutdownCoordinator(FakeServer(), CompletionSignal(), ManualSignal(), 1.0)
        coordinator.start()

        with pytest.raises(RuntimeError):
            coordinator.start()

        coordinator.abandon()
        coordinator.join(2.0)

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_invalid_timeout(self, timeout):
        with pytest.raises(ValueError):
            ShutdownCoordinator(FakeServer(), CompletionSignal(), ManualSignal(), timeout)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
class TestInterruptSignal:

    def test_sigint_delivered_once_then_default(self):
        original = signal.getsignal(signal.SIGINT)
        source = InterruptSignal()
        source.arm()
        try:
            os.kill(os.getpid(), signal.SIGINT)

            assert source.wait(2.0) == signal.SIGINT
            assert source.fired
            assert signal.getsignal(signal.SIGINT) == signal.SIG_DFL
        finally:
            source.disarm()

        assert signal.getsignal(signal.SIGINT) == original

    def test_disarm_restores_handler(self):
        original = signal.getsignal(signal.SIGINT)
        source = InterruptSignal()
        source.arm()
        assert signal.getsignal(signal.SIGINT) != original

        source.disarm()
        source.disarm()

        assert signal.getsignal(signal.SIGINT) == original

    def test_arm_off_main_thread(self):
        errors = []

        def arm():
            try:
                InterruptSignal().arm()
            except RuntimeError as e:
                errors.append(e)

        t = threading.Thread(target=arm)
        t.start()
        t.join(2.0)

        assert len(errors) == 1
