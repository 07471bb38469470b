"""Ordered shutdown hooks that run on every way a process can end.

``atexit`` covers a normal return, ``sys.exit`` and uncaught exceptions
(including ``KeyboardInterrupt``).  Termination signals would otherwise kill
the interpreter without running ``atexit``, so :meth:`ShutdownHooks.install`
also traps them, runs the hooks, and then re-delivers the signal with its
previous disposition.  Signals the process inherited as ignored stay ignored.

Workers forked by :mod:`multiprocessing` leave through ``os._exit``; they
run the hooks from a multiprocessing finalizer instead.
"""

from __future__ import annotations

import atexit
import logging
import multiprocessing.util
import os
import signal
import threading
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from types import FrameType

logger = logging.getLogger(__name__)

Hook = Callable[[], Any]

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig
)

# Runs after every other multiprocessing finalizer.
FORKED_WORKER_PRIORITY = -100


class ShutdownHooks:
    """Registry of callbacks with a terminal phase.

    Ordinary hooks run in registration order, at most once per process;
    hooks registered with ``always_last=True`` run after them on every call
    to :meth:`run`, so a flush that already happened on a signal the
    process survived happens again at the real exit.
    """

    def __init__(self, signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS) -> None:
        self._hooks: list[Hook] = []
        self._terminal: list[Hook] = []
        self._fork_hooks: list[Hook] = []
        self._signals = signals
        self._previous: dict[int, Any] = {}
        self._lock = threading.Lock()
        self._installed = False
        self._ran = False

    def register(self, callback: Hook, *, always_last: bool = False) -> None:
        (self._terminal if always_last else self._hooks).append(callback)

    def register_fork(self, callback: Hook) -> None:
        """Run *callback* in the child right after this process forks."""
        self._fork_hooks.append(callback)

    @property
    def has_run(self) -> bool:
        return self._ran

    def run(self) -> None:
        """Run the hooks; log failures and re-raise the first one."""
        with self._lock:
            callbacks = list(self._terminal) if self._ran else [*self._hooks, *self._terminal]
            self._ran = True

        first_error: BaseException | None = None
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.exception("Shutdown hook %r failed", callback)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def install(self) -> None:
        """Attach :meth:`run` to ``atexit``, the configured signals and forks."""
        if self._installed:
            return
        self._installed = True
        atexit.register(self.run)
        if hasattr(os, "register_at_fork"):
            os.register_at_fork(after_in_child=self._after_fork_in_child)
        multiprocessing.util.register_after_fork(self, ShutdownHooks._watch_forked_worker)

        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; signal handlers not installed")
            return
        for sig in self._signals:
            try:
                if signal.getsignal(sig) is signal.SIG_IGN:
                    logger.debug("%s is ignored; not trapping it", sig)
                    continue
                self._previous[sig] = signal.signal(sig, self._handle_signal)
            except (OSError, ValueError) as exc:
                logger.debug("Cannot trap %s: %s", sig, exc)

    def _after_fork_in_child(self) -> None:
        self._lock = threading.Lock()
        self._ran = False
        for callback in self._fork_hooks:
            callback()

    def _watch_forked_worker(self) -> None:
        # multiprocessing clears inherited finalizers before calling this.
        multiprocessing.util.Finalize(self, self.run, exitpriority=FORKED_WORKER_PRIORITY)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        try:
            self.run()
        finally:
            previous = self._previous.get(signum, signal.SIG_DFL)
            if callable(previous):
                signal.signal(signum, previous)
                previous(signum, frame)
            else:
                signal.signal(signum, signal.SIG_DFL if previous is None else previous)
                os.kill(os.getpid(), signum)
