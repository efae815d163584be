"""
=============================================================================
SHUTDOWN COORDINATION
=============================================================================

Turns a process interrupt into an orderly drain of the HTTP server.

    main thread                          watcher thread
    ───────────                          ──────────────
    coordinator.start()  ── arms SIGINT, spawns ──►  signals.wait()
    server.serve()       (blocks)                        │
         │                                         ^C ───┘
         │                                         log "😔 Shutting down"
         │ ◄─── listener closed ─────────────────  server.shutdown(timeout)
    returns NormalClosure                                │ drained
    completion.wait()    (blocks)                        ▼
         │ ◄──────────────────────────────────── completion.close()
    process exits

    ┌────────┐  interrupt  ┌──────────┐  drained  ┌────────┐
    │ ARMED  │ ──────────► │ DRAINING │ ────────► │ CLOSED │
    └───┬────┘             └────┬─────┘           └────────┘
        │ abandon()             │ timeout / error
        ▼                       ▼
    ┌───────────┐           fatal(): CRITICAL log, exit status 1
    │ ABANDONED │
    └───────────┘

The watcher is the only writer of the completion signal, and it reaches
close() from exactly one state transition, so it is closed at most once.

=============================================================================
"""

from abc import ABC
from enum import Enum
from typing import Callable, Optional, Protocol
import logging
import os
import signal
import threading


logger = logging.getLogger(__name__)


class CompletionSignal:
    """
    One-shot "shutdown finished" marker.

    close() may be called once; wait() unblocks every waiter after that.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._event.is_set()

    def close(self):
        """
        Raises:
            RuntimeError: Already closed.
        """
        with self._lock:
            if self._event.is_set():
                raise RuntimeError("completion signal closed twice")
            self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """True once closed; False if ``timeout`` elapsed first."""
        return self._event.wait(timeout)


# =============================================================================
# SIGNAL SOURCES
# =============================================================================

class SignalSource(ABC):
    """
    Something the watcher can block on until a shutdown is requested.

    wait() returns the signal number that triggered shutdown, or None when
    the source was released without one (the server died on its own and
    nobody will ever drain it).
    """

    def __init__(self):
        self._event = threading.Event()
        self._received: Optional[int] = None

    def arm(self):
        """Start listening. Called once, from the main thread."""

    def disarm(self):
        """Stop listening and restore whatever arm() replaced."""

    def _deliver(self, signum: int):
        if self._received is None:
            self._received = signum
        self._event.set()

    @property
    def fired(self) -> bool:
        return self._received is not None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        self._event.wait(timeout)
        return self._received

    def release(self):
        """Unblock wait() without a signal."""
        self._event.set()


class InterruptSignal(SignalSource):
    """
    SIGINT from the OS (Ctrl+C, ``kill -INT``).

    Only the first interrupt is caught. The handler then puts SIG_DFL back,
    so a second Ctrl+C during a slow drain terminates the process at once.
    """

    def __init__(self, signum: int = signal.SIGINT):
        super().__init__()
        self.signum = signum
        self._original = None
        self._armed = False

    def arm(self):
        """
        Raises:
            RuntimeError: Not on the main thread (Python only lets the main
                thread install signal handlers).
        """
        if threading.current_thread() is not threading.main_thread():
            raise RuntimeError("InterruptSignal.arm() must run on the main thread")
        self._original = signal.signal(self.signum, self._handle)
        self._armed = True

    def _handle(self, signum, frame):
        signal.signal(self.signum, signal.SIG_DFL)
        self._deliver(signum)

    def disarm(self):
        if not self._armed:
            return
        self._armed = False
        original = self._original if self._original is not None else signal.SIG_DFL
        signal.signal(self.signum, original)


class ManualSignal(SignalSource):
    """
    Programmatic shutdown trigger for embedding and tests.

        signals = ManualSignal()
        threading.Thread(target=register, args=(manager, config, signals)).start()
        ...
        signals.trigger()
    """

    def trigger(self, signum: int = signal.SIGINT):
        self._deliver(signum)


# =============================================================================
# COORDINATOR
# =============================================================================

class Drainable(Protocol):
    def shutdown(self, timeout: float) -> None: ...


class CoordinatorState(Enum):
    ARMED = "armed"
    DRAINING = "draining"
    CLOSED = "closed"
    ABANDONED = "abandoned"


def default_fatal(message: str):
    """Log at CRITICAL, flush every handler, exit with status 1."""
    logger.critical(message)
    logging.shutdown()
    os._exit(1)


class ShutdownCoordinator:
    """
    Watches a SignalSource and drains the server when it fires.

    Args:
        server: Anything with shutdown(timeout); normally HTTPServer.
        completion: Closed once the drain succeeded.
        signals: Where shutdown requests come from.
        timeout: Drain deadline in seconds.
        fatal: Called with a message when the drain fails. The default
            exits the process; tests pass a recorder instead.
    """

    def __init__(
        self,
        server: Drainable,
        completion: CompletionSignal,
        signals: SignalSource,
        timeout: float,
        fatal: Callable[[str], None] = default_fatal,
    ):
        if timeout <= 0:
            raise ValueError("shutdown timeout must be > 0")
        self._server = server
        self._completion = completion
        self._signals = signals
        self._timeout = timeout
        self._fatal = fatal
        self._state = CoordinatorState.ARMED
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def start(self):
        """Arm the signal source here, then watch it on a new thread."""
        if self._thread is not None:
            raise RuntimeError("ShutdownCoordinator already started")

        self._signals.arm()
        self._thread = threading.Thread(
            target=self._watch,
            name="shutdown-coordinator",
            daemon=True,
        )
        self._thread.start()

    def abandon(self):
        """Stop watching; used when serve() failed and there is nothing to drain."""
        self._signals.release()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the watcher to finish. True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _watch(self):
        signum = self._signals.wait()
        if signum is None:
            self._state = CoordinatorState.ABANDONED
            logger.debug("Shutdown watcher abandoned")
            return

        self._state = CoordinatorState.DRAINING
        logger.info("😔 Shutting down. Goodbye..")

        try:
            self._server.shutdown(self._timeout)
        except Exception as e:
            self._fatal(f"⚠️  HTTP server shutdown error: {e}")
            return

        self._state = CoordinatorState.CLOSED
        self._completion.close()
