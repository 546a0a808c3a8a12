# cancellation.py
# Blocking collaborator calls that a caller can cut short.
#
# The call runs on a daemon worker thread. The core only stops waiting for
# it; the worker itself is never force-terminated.

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, wait
from typing import TypeVar

from agent_orchestrator.errors import CancelledError

T = TypeVar("T")

POLL_INTERVAL = 0.05


def run_cancellable(
    fn: Callable[[], T],
    *,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
    grace: float = 0.0,
    name: str = "collaborator-call",
) -> T:
    """
    Run fn and return its result, or raise whatever fn raised.

    Raises TimeoutError when `timeout` elapses first, and CancelledError when
    `cancel` fires and no response arrives within `grace` seconds. With no
    cancel event and no timeout, fn runs inline on the calling thread.
    """
    if cancel is None and timeout is None:
        return fn()

    future: Future = Future()

    def _target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn())
        except BaseException as exc:
            future.set_exception(exc)

    threading.Thread(target=_target, name=name, daemon=True).start()

    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        wait([future], timeout=POLL_INTERVAL)
        if future.done():
            return future.result()
        if cancel is not None and cancel.is_set():
            wait([future], timeout=grace)
            if future.done():
                return future.result()
            raise CancelledError(f"{name} cancelled before a response arrived.")
        if deadline is not None and time.monotonic() >= deadline:
            raise TimeoutError(f"{name} timed out after {timeout:.2f}s.")
