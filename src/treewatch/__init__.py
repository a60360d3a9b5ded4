"""
treewatch

Watches a directory and all of its subdirectories for changes and calls
back once per change event.

Features:
- One recursive native watch per tree, with a key per directory and no symlink following
- Subdirectories created while watching are registered before their events are handled
- Entries created in a new directory before its watch existed are still reported
- Overflow notifications when a directory's event backlog is dropped
- Cooperative cancellation that releases every watch
"""

from .models import (
    EventKind,
    ChangeEvent,
    OverflowNotice,
    RegistrationPolicy,
    CHANGE_KINDS,
    parse_event_kinds,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    ConfigError,
    RegistrationError,
    DispatchError,
    ClosedWatchServiceError,
    WatcherAlreadyRunningError,
)

from .cancellation import CancellationToken
from .service import WatchService, WatchKey, TreeEventHandler
from .registry import WatchRegistry
from .registrar import TreeRegistrar, list_entries
from .dispatcher import DirectoryWatcher, DispatchStats, watch


__all__ = [
    # Models
    "EventKind",
    "ChangeEvent",
    "OverflowNotice",
    "RegistrationPolicy",
    "CHANGE_KINDS",
    "parse_event_kinds",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "ConfigError",
    "RegistrationError",
    "DispatchError",
    "ClosedWatchServiceError",
    "WatcherAlreadyRunningError",
    # Components
    "CancellationToken",
    "WatchService",
    "WatchKey",
    "TreeEventHandler",
    "WatchRegistry",
    "TreeRegistrar",
    "list_entries",
    # Dispatch loop
    "DirectoryWatcher",
    "DispatchStats",
    "watch",
]

__version__ = "0.1.0"
