"""Watch service built on watchdog, with one recursive watch per tree and one key per directory."""

import dataclasses
import logging
import os
import queue
import sys
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from .exceptions import ClosedWatchServiceError
from .models import ChangeEvent, EventKind

logger = logging.getLogger(__name__)

_WAKEUP = object()
_CLOSED = object()


def create_observer():
    """
    Create the platform observer.

    On Linux the inotify observer is asked for full move events, so a
    directory moved in from outside the watched tree arrives as a move with
    no source rather than as a plain creation.
    """
    if sys.platform.startswith("linux"):
        from watchdog.observers.inotify import InotifyObserver

        return InotifyObserver(generate_full_events=True)
    return Observer()


class TreeEventHandler(FileSystemEventHandler):
    """Routes events from one recursive watch to the key of the directory they happened in."""

    def __init__(self, service: "WatchService", root: Path):
        super().__init__()
        self.service = service
        self.root = root

    def _entry(self, kind: EventKind, raw_path, is_directory: bool, moved: bool = False) -> None:
        path = Path(os.fsdecode(raw_path))
        if path == self.root:
            return
        key = self.service._key_for(path.parent)
        if key is not None:
            key.signal_event(kind, path.name, is_directory, moved)

    def on_created(self, event):
        # Contents of a directory moved into the tree; the move itself is reported.
        if event.is_synthetic:
            return
        self._entry(EventKind.CREATED, event.src_path, event.is_directory)

    def on_deleted(self, event):
        path = Path(os.fsdecode(event.src_path))
        if path == self.root:
            key = self.service._key_for(path)
            if key is not None:
                key.invalidate()
            return
        self._entry(EventKind.DELETED, event.src_path, event.is_directory)

    def on_modified(self, event):
        # watchdog marks a directory modified whenever one of its entries changes.
        if event.is_directory:
            return
        self._entry(EventKind.MODIFIED, event.src_path, event.is_directory)

    def on_moved(self, event):
        if event.is_synthetic:
            return
        if event.src_path:
            self._entry(EventKind.DELETED, event.src_path, event.is_directory, moved=True)
        if event.dest_path:
            if not event.src_path and event.is_directory:
                self.service._adopt(Path(os.fsdecode(event.dest_path)))
            self._entry(EventKind.CREATED, event.dest_path, event.is_directory, moved=True)


class WatchKey:
    """
    Handle for one registered directory.

    Events routed by the observer thread accumulate in the key. A key with
    pending events is queued on its service exactly once until the consumer
    drains it with ``poll_events()`` and re-arms it with ``reset()``.
    """

    def __init__(self, service: "WatchService", directory: Path, max_pending_events: int = 512):
        self.directory = directory
        self.watch: Optional[ObservedWatch] = None
        self._service = service
        self._max_pending_events = max_pending_events
        self._pending: List[ChangeEvent] = []
        self._created: Set[str] = set()
        self._signalled = False
        self._valid = True
        self._lock = threading.Lock()

    @property
    def valid(self) -> bool:
        """Whether the key can still report events."""
        with self._lock:
            return self._valid

    def signal_event(
        self,
        kind: EventKind,
        name: str,
        is_directory: bool = False,
        moved: bool = False,
    ) -> None:
        """
        Record an event for an entry of this directory.

        A CREATED event for a name whose creation was already reported (by an
        earlier event or by ``seed()``) with no deletion since is a duplicate
        and is dropped. Creations by rename are always kept, since a rename
        can replace an existing entry.

        Args:
            kind: Kind of change
            name: Entry name within the directory
            is_directory: Whether the entry is a directory
            moved: Whether the change is one side of a rename
        """
        with self._lock:
            if not self._valid:
                return
            if kind is EventKind.CREATED:
                if name in self._created and not moved:
                    return
                self._created.add(name)
            elif kind is EventKind.DELETED:
                self._created.discard(name)
            self._append(ChangeEvent(kind, self.directory, name, is_directory, moved))
            self._signal()

    def seed(self, entries: Iterable[Tuple[str, bool]]) -> int:
        """
        Queue synthetic CREATED events for entries that already exist.

        Used right after registration of a directory that appeared while
        watching, so entries created before the key existed are still
        reported. Names already reported are skipped.

        Args:
            entries: (name, is_directory) pairs found in the directory

        Returns:
            Number of events queued
        """
        with self._lock:
            if not self._valid:
                return 0
            count = 0
            for name, is_directory in entries:
                if name in self._created:
                    continue
                self._created.add(name)
                self._append(ChangeEvent(EventKind.CREATED, self.directory, name, is_directory))
                count += 1
            if count:
                self._signal()
            return count

    def poll_events(self) -> List[ChangeEvent]:
        """
        Take all pending events, oldest first.

        Returns:
            List of pending events (possibly empty)
        """
        with self._lock:
            events = self._pending
            self._pending = []
            return events

    def reset(self) -> bool:
        """
        Re-arm the key after its events were drained.

        Returns:
            True if the key is still valid
        """
        with self._lock:
            if not self._valid:
                return False
            if self._pending:
                self._service._enqueue(self)
            else:
                self._signalled = False
            return True

    def invalidate(self) -> None:
        """Mark the key invalid because its directory went away."""
        with self._lock:
            if not self._valid:
                return
            self._valid = False
            if not self._signalled:
                self._signalled = True
                self._service._enqueue(self)

    def cancel(self) -> None:
        """Stop watching the directory and release the underlying watch."""
        self._service.release(self)

    def _discard(self) -> None:
        with self._lock:
            self._valid = False
            self._pending = []
            self._created.clear()

    def _append(self, event: ChangeEvent) -> None:
        # caller holds self._lock
        if len(self._pending) < self._max_pending_events:
            self._pending.append(event)
            return
        last = self._pending[-1]
        if last.kind is EventKind.OVERFLOW:
            self._pending[-1] = dataclasses.replace(last, count=last.count + 1)
        else:
            self._pending.append(ChangeEvent(EventKind.OVERFLOW, self.directory, ""))

    def _signal(self) -> None:
        # caller holds self._lock
        if not self._signalled:
            self._signalled = True
            self._service._enqueue(self)

    def __repr__(self) -> str:
        return f"WatchKey({self.directory})"


class WatchService:
    """
    Registers directories and hands out ready keys.

    The first directory of a tree gets a recursive watchdog watch; directories
    below it only get a key, and the tree's handler routes each event to the
    key of its parent directory. Events in directories without a key are
    dropped. A directory moved in from outside every watched tree is not
    covered by the recursive watch and gets a watch of its own when it is
    registered.

    ``take()`` is the single blocking point for consumers. It returns a
    signalled WatchKey, or None on wake-up or timeout, and raises
    ClosedWatchServiceError once the service is closed.
    """

    def __init__(self, max_pending_events: int = 512):
        """
        Initialize the watch service.

        Args:
            max_pending_events: Undrained events per key before overflow
        """
        self._observer = create_observer()
        self._max_pending_events = max_pending_events
        self._ready: "queue.Queue[object]" = queue.Queue()
        self._keys: Dict[Path, WatchKey] = {}
        self._roots: Dict[Path, ObservedWatch] = {}
        self._adopted: Set[Path] = set()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def observer(self):
        """The underlying watchdog observer."""
        return self._observer

    @property
    def closed(self) -> bool:
        """Check if the service has been closed."""
        return self._closed

    def start(self) -> None:
        """Start the observer thread if it is not running."""
        self._check_open()
        if not self._observer.is_alive():
            self._observer.start()

    def register(self, directory: Path) -> WatchKey:
        """
        Start reporting events for the entries of a directory.

        Subdirectories are not reported until they are registered too.

        Args:
            directory: Absolute path of an existing directory

        Returns:
            WatchKey for the directory

        Raises:
            OSError: If the OS refuses a new watch (missing, permissions, limits)
            ValueError: If the directory is already registered
            ClosedWatchServiceError: If the service is closed
        """
        self.start()
        directory = Path(directory)
        key = WatchKey(self, directory, self._max_pending_events)
        with self._lock:
            self._check_open()
            if directory in self._keys:
                raise ValueError(f"Already watching {directory}")
            needs_watch = directory in self._adopted or self._root_for(directory) is None
            self._adopted.discard(directory)
            self._keys[directory] = key

        if needs_watch:
            handler = TreeEventHandler(self, directory)
            try:
                key.watch = self._observer.schedule(handler, str(directory), recursive=True)
            except OSError:
                with self._lock:
                    self._keys.pop(directory, None)
                key._discard()
                self._forget_handler(handler, directory)
                raise
            with self._lock:
                self._roots[directory] = key.watch
            logger.debug(f"Scheduled recursive watch for {directory}")

        logger.debug(f"Registered {directory}")
        return key

    def release(self, key: WatchKey) -> None:
        """
        Cancel a key, unscheduling its recursive watch if it owns one.

        Args:
            key: Key previously returned by register()
        """
        key._discard()
        with self._lock:
            if self._keys.get(key.directory) is not key:
                return
            del self._keys[key.directory]
            watch = self._roots.pop(key.directory, None) if key.watch is not None else None
            closed = self._closed

        if watch is not None and not closed:
            try:
                self._observer.unschedule(watch)
            except KeyError:
                logger.debug(f"Watch for {key.directory} was already unscheduled")
        logger.debug(f"Released {key.directory}")

    def take(self, timeout: Optional[float] = None) -> Optional[WatchKey]:
        """
        Block until a key is signalled.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The signalled key, or None on timeout or wake-up

        Raises:
            ClosedWatchServiceError: If the service is or becomes closed
        """
        self._check_open()
        try:
            item = self._ready.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any other waiter.
            self._ready.put(_CLOSED)
            raise ClosedWatchServiceError("Watch service is closed")
        if item is _WAKEUP:
            return None
        return item

    def wakeup(self) -> None:
        """Make a blocked take() return None."""
        self._ready.put(_WAKEUP)

    def close(self) -> int:
        """
        Release every key and stop the observer.

        Returns:
            Number of keys that were still registered
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            keys = list(self._keys.values())
            self._keys.clear()
            self._roots.clear()
            self._adopted.clear()

        for key in keys:
            key._discard()

        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5.0)
        else:
            self._observer.unschedule_all()

        self._ready.put(_CLOSED)
        logger.debug(f"Watch service closed, released {len(keys)} key(s)")
        return len(keys)

    def _key_for(self, directory: Path) -> Optional[WatchKey]:
        with self._lock:
            return self._keys.get(directory)

    def _adopt(self, directory: Path) -> None:
        """Remember a directory moved in from outside, so registering it schedules a watch."""
        with self._lock:
            if directory.parent in self._keys:
                self._adopted.add(directory)

    def _root_for(self, directory: Path) -> Optional[Path]:
        # caller holds self._lock
        for root in self._roots:
            if directory == root or root in directory.parents:
                return root
        return None

    def _enqueue(self, key: WatchKey) -> None:
        self._ready.put(key)

    def _check_open(self) -> None:
        if self._closed:
            raise ClosedWatchServiceError("Watch service is closed")

    def _forget_handler(self, handler: TreeEventHandler, directory: Path) -> None:
        """Drop a handler left behind by a failed schedule() call."""
        try:
            self._observer.remove_handler_for_watch(
                handler, ObservedWatch(str(directory), recursive=True)
            )
        except (KeyError, ValueError):
            pass

    def __len__(self) -> int:
        """Return the number of registered keys."""
        with self._lock:
            return len(self._keys)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
