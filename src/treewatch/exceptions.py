"""Custom exceptions for the treewatch package."""

from pathlib import Path
from typing import Optional


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class ConfigError(WatcherError):
    """Watcher configuration is missing or invalid."""
    pass


class RegistrationError(WatcherError):
    """
    A directory could not be registered with the watch service.

    Attributes:
        path: The directory that failed to register
        cause: The underlying OS error, if any
    """

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.cause = cause
        message = f"Failed to register directory: {self.path}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)

    @property
    def vanished(self) -> bool:
        """True if the directory no longer existed when registration was attempted."""
        return isinstance(self.cause, (FileNotFoundError, NotADirectoryError))


class DispatchError(WatcherError):
    """
    The blocking wait of the dispatch loop failed.

    Attributes:
        cause: The underlying error
    """

    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        message = "Event dispatch failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ClosedWatchServiceError(WatcherError):
    """Watch service was used after it was closed."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """Watcher is already running."""
    pass
