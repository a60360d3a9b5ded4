"""Cooperative cancellation shared between a watcher and its caller."""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    One-shot cancellation signal.

    Callbacks registered with ``add_callback`` run once, on the thread that
    calls ``cancel()``, or immediately if the token is already cancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def cancel(self) -> bool:
        """
        Cancel the token and run its callbacks.

        Returns:
            True if this call cancelled the token, False if already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")
        return True

    @property
    def cancelled(self) -> bool:
        """Check if the token has been cancelled."""
        return self._event.is_set()

    def wait(self, timeout: float = None) -> bool:
        """Block until cancelled or the timeout expires; return cancelled state."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """
        Register a callback to run on cancellation.

        Args:
            callback: Zero-argument callable
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> bool:
        """
        Unregister a callback.

        Returns:
            True if the callback was registered
        """
        with self._lock:
            try:
                self._callbacks.remove(callback)
                return True
            except ValueError:
                return False
