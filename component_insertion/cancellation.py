"""Cooperative cancellation helpers."""

from __future__ import annotations

import threading

from component_insertion.errors import OperationCancelledError


def check_cancelled(cancel_event: threading.Event | None) -> None:
    """Raise OperationCancelledError if cancellation was requested.

    Args:
        cancel_event: Event set by the caller to request cancellation, or None.

    Raises:
        OperationCancelledError: If the event is set.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError()


__all__ = ["check_cancelled"]
