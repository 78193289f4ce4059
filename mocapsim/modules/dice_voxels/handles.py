"""Asynchronous handle for one fan-out/fan-in stage.

A ``StageHandle`` wraps a ``concurrent.futures.Future`` that resolves once
*every* task of the stage has finished and the stage result has been
published.  It is the only synchronization point callers see:

    handle = engine.compute_descriptors()
    handle.add_done_callback(lambda h: ...)   # continuation, never blocks
    handle.done()                             # poll
    handle.result(timeout=30)                 # or block explicitly

Per-task progress is reported through ``add_progress_callback``.
Cancellation is cooperative: tasks that have not started yet bail out,
running ones finish, and the stage never publishes its result.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger(__name__)


class StageHandle:
    def __init__(self, stage: str, total: int) -> None:
        self.stage = stage
        self.total = total
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._completed = 0
        self._settled = False
        self._outcomes: Dict[int, Any] = {}
        self._failures: Dict[int, BaseException] = {}
        self._progress: List[Callable[[int, int], None]] = []
        self._linked: List["StageHandle"] = []

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def completed(self) -> int:
        return self._completed

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def result(self, timeout: Optional[float] = None) -> Any:
        return self._future.result(timeout)

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout)

    def add_done_callback(self, fn: Callable[["StageHandle"], None]) -> None:
        """Run ``fn(handle)`` once the stage resolves (immediately if it has)."""
        self._future.add_done_callback(lambda _f: fn(self))

    def add_progress_callback(self, fn: Callable[[int, int], None]) -> None:
        """Run ``fn(completed, total)`` after every finished task.

        Calls are serialized and all of them happen before the stage
        resolves; *fn* must not call back into this handle.
        """
        self._progress.append(fn)

    def cancel(self) -> bool:
        """Request cancellation.  Returns False if the stage already resolved."""
        if self._future.done():
            return False
        self._cancel.set()
        for other in self._linked:
            other.cancel()
        return True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def __repr__(self) -> str:
        if self.cancelled():
            state = "cancelled"
        elif self.done():
            state = "failed" if self._future.exception() else "finished"
        else:
            state = "running"
        return f"<StageHandle {self.stage} {self._completed}/{self.total} {state}>"

    # ── Engine side ───────────────────────────────────────────────────────────

    def link(self, upstream: "StageHandle") -> None:
        """Propagate cancellation of this handle to *upstream*."""
        self._linked.append(upstream)

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise CancelledError(f"{self.stage} cancelled")

    def record(self, key: int, value: Any = None, error: Optional[BaseException] = None) -> bool:
        """Store one task outcome.  Returns True for the last task of the stage."""
        with self._lock:
            if error is not None:
                self._failures[key] = error
            else:
                self._outcomes[key] = value
            self._completed += 1
            completed = self._completed
            last = completed == self.total
            for fn in self._progress:
                try:
                    fn(completed, self.total)
                except Exception:
                    log.exception("[%s] progress callback failed", self.stage)
        return last

    @property
    def outcomes(self) -> Dict[int, Any]:
        return self._outcomes

    @property
    def failures(self) -> Dict[int, BaseException]:
        return self._failures

    def _settle(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True

    def resolve(self, value: Any) -> None:
        if self._settle():
            self._future.set_result(value)

    def fail(self, exc: BaseException) -> None:
        if self._settle():
            self._future.set_exception(exc)

    def abort(self) -> None:
        if self._settle():
            self._future.cancel()
