"""Supervised background tasks.

Long-lived work (stats pollers, the discovery loop, stream pumps) runs on
daemon threads so that process exit always tears it down. Each task
captures its result or exception for the joiner, and is tied to a
CancellationToken handed over at spawn time.
"""

from __future__ import annotations

import threading
from typing import Any, Callable


class CancellationToken:
    """One-shot cancellation flag shared between a spawner and its tasks."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to ``timeout`` seconds.

        Returns:
            True if cancelled, which ends the wait early.
        """
        return self._event.wait(timeout)


class BackgroundTask:
    """A daemon thread that keeps its outcome.

    Example:
        task = BackgroundTask("pump", pump_output, session).start()
        task.join()  # re-raises whatever pump_output raised
    """

    def __init__(
        self,
        name: str,
        target: Callable[..., Any],
        *args: Any,
        token: CancellationToken | None = None,
    ) -> None:
        self.name = name
        self.token = token or CancellationToken()
        self._target = target
        self._args = args
        self._result: Any = None
        self._error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        try:
            self._result = self._target(*self._args)
        except BaseException as exc:  # surfaced by join()
            self._error = exc

    def start(self) -> "BackgroundTask":
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Request cancellation. The target must observe the token."""
        self.token.cancel()

    def done(self) -> bool:
        return self._thread.ident is not None and not self._thread.is_alive()

    def exception(self) -> BaseException | None:
        """Error raised by the target, None while running or on success."""
        return self._error if self.done() else None

    def join(self, timeout: float | None = None) -> Any:
        """Wait for the task and return its result.

        Raises:
            TimeoutError: If the task is still running after ``timeout``.
            Exception: Whatever the target raised.
        """
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Task {self.name} still running")
        if self._error is not None:
            raise self._error
        return self._result
