"""Cooperative cancellation for long-running pipeline steps."""

import threading

from survey_import.errors import OperationCancelled


class CancellationToken:
    """Thread-safe flag checked between units of work."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelled(f"{operation} was cancelled")
