from __future__ import annotations
"""View-agnostic progress reporting and cooperative cancellation."""
from dataclasses import dataclass
import threading
from typing import Callable, Iterable, Optional, TypeVar

from .errors import OperationCancelledError, TransferCancelledError

T = TypeVar("T")


@dataclass(frozen=True)
class ProgressUpdate:
    percentage: int
    message: str = ""


class CancellationToken:
    """Thread-safe flag a caller sets to ask a running operation to stop."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def __call__(self) -> bool:
        return self.is_cancellation_requested


class ProgressTracker:
    """Accumulates progress (0-100) and forwards each update to a callback."""

    def __init__(
        self,
        on_update: Optional[Callable[[ProgressUpdate], None]] = None,
        token: CancellationToken | None = None,
    ):
        self._on_update = on_update
        self._token = token
        self._value = 0
        self._last_message = ""

    @property
    def value(self) -> int:
        return self._value

    def report(self, message: str = "", increment: int | None = None) -> None:
        if increment is not None:
            self._value += increment
        elif message and message != self._last_message:
            self._value += max(1, min(10, 100 - self._value))
        self._value = min(self._value, 100)
        if message:
            self._last_message = message
        self._emit()

    def set_progress(self, percentage: int, message: str = "") -> None:
        self._value = max(0, min(int(percentage), 100))
        if message:
            self._last_message = message
        self._emit()

    def is_completed(self) -> bool:
        return self._value >= 100

    def is_cancellation_requested(self) -> bool:
        return bool(self._token and self._token.is_cancellation_requested)

    def _emit(self) -> None:
        if self._on_update:
            self._on_update(ProgressUpdate(self._value, self._last_message))


def run_batch(
    items: Iterable[T],
    operation: Callable[[T], None],
    *,
    tracker: ProgressTracker | None = None,
    token: CancellationToken | None = None,
) -> list[T]:
    """Apply ``operation`` to each item in order, stopping when cancelled.

    Cancellation is checked before every item, and a transfer cancelled while
    an item is in flight stops the batch too. Items already processed stay
    processed; they are reported on the raised :class:`OperationCancelledError`.
    """

    pending = list(items)
    completed: list[T] = []
    total = len(pending)
    for index, item in enumerate(pending):
        if token is not None and token.is_cancellation_requested:
            raise OperationCancelledError(completed=completed)
        try:
            operation(item)
        except TransferCancelledError as exc:
            raise OperationCancelledError(str(exc), completed=completed) from exc
        completed.append(item)
        if tracker is not None:
            tracker.set_progress(round((index + 1) / total * 100), f"Processed {index + 1} of {total}")
    return completed
