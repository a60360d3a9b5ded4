"""Event dispatch loop for a recursively watched directory tree."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .cancellation import CancellationToken
from .config import WatcherConfig
from .exceptions import (
    ClosedWatchServiceError,
    DispatchError,
    RegistrationError,
    WatcherAlreadyRunningError,
)
from .models import ChangeEvent, EventKind, OverflowNotice, RegistrationPolicy
from .registrar import TreeRegistrar
from .registry import WatchRegistry
from .service import WatchService

logger = logging.getLogger(__name__)


@dataclass
class DispatchStats:
    """Counters kept by the dispatch loop."""

    keys_taken: int = 0
    events_dispatched: int = 0
    overflows: int = 0
    stale_keys: int = 0
    directories_registered: int = 0


class DirectoryWatcher:
    """
    Watches a directory tree and calls back once per change.

    All registry updates and callbacks happen on the thread running ``run()``.
    Callbacks must return promptly: while one runs, no other event is
    delivered. An exception raised by a callback ends the watch and propagates
    out of ``run()`` after all watches are released.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[], None],
        config: Optional[WatcherConfig] = None,
        on_overflow: Optional[Callable[[OverflowNotice], None]] = None,
        on_event: Optional[Callable[[ChangeEvent], None]] = None,
    ):
        """
        Initialize the watcher.

        Args:
            root: Directory to watch
            on_change: Zero-argument callback invoked once per change event
            config: Watcher configuration
            on_overflow: Called when event detail was dropped for a directory
            on_event: Called with each dispatched event, right after on_change
        """
        self.root = Path(root)
        self.on_change = on_change
        self.config = config or WatcherConfig()
        self.on_overflow = on_overflow
        self.on_event = on_event
        self.stats = DispatchStats()

        self._registry = WatchRegistry()
        self._service: Optional[WatchService] = None
        self._registrar: Optional[TreeRegistrar] = None
        self._token: Optional[CancellationToken] = None
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self._started = threading.Event()
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    @property
    def service(self) -> Optional[WatchService]:
        """Watch service of the current or last run."""
        return self._service

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that ended a background run, if any."""
        return self._error

    def watched_directories(self):
        """Get the directories currently being watched."""
        return self._registry.directories()

    def run(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Watch the tree until cancelled (blocking).

        Args:
            cancel_token: Token that ends the watch when cancelled

        Raises:
            WatcherAlreadyRunningError: If already running
            RegistrationError: If the root cannot be watched
            DispatchError: If waiting for events failed
        """
        token = cancel_token or CancellationToken()
        with self._lock:
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")
            self._running = True
            self._token = token
            self._started.clear()

        service = WatchService(max_pending_events=self.config.max_pending_events)
        self._service = service
        self._registrar = TreeRegistrar(service, self.config.registration_policy, token)
        self._registry = WatchRegistry()
        token.add_callback(service.wakeup)

        try:
            root = self.root.resolve()
            service.start()
            self._registry = self._registrar.register_tree(root)
            self.stats.directories_registered += len(self._registry)
            logger.info(f"Watching {root} ({len(self._registry)} directories)")
            self._started.set()
            self._loop(service, token)
        finally:
            token.remove_callback(service.wakeup)
            self._registry.clear()
            service.close()
            with self._lock:
                self._running = False
            self._started.set()
            logger.info(
                f"Stopped watching {self.root}: {self.stats.events_dispatched} events, "
                f"{self.stats.overflows} overflows"
            )

    def start_async(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Run the watcher on a background thread.

        Returns once the initial tree is registered (or registration failed).

        Raises:
            WatcherAlreadyRunningError: If already running
        """
        with self._lock:
            if self._running or (self._thread is not None and self._thread.is_alive()):
                raise WatcherAlreadyRunningError("Watcher is already running")
            self._started.clear()

        self._error = None
        token = cancel_token or CancellationToken()
        self._token = token
        self._thread = threading.Thread(
            target=self._run_in_thread,
            args=(token,),
            name="TreeWatcher",
            daemon=True,
        )
        self._thread.start()
        self._started.wait()

    def _run_in_thread(self, token: CancellationToken) -> None:
        try:
            self.run(token)
        except Exception as e:
            self._error = e
            logger.error(f"Watcher for {self.root} failed: {e}")
        finally:
            self._started.set()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel the watch and wait for the loop to exit.

        Args:
            timeout: Seconds to wait for a background thread to finish
        """
        if self._token is not None:
            self._token.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _loop(self, service: WatchService, token: CancellationToken) -> None:
        while not token.cancelled:
            try:
                key = service.take(timeout=self.config.wait_timeout)
            except ClosedWatchServiceError as e:
                if token.cancelled:
                    return
                raise DispatchError(e) from e

            if key is None:
                continue

            directory = self._registry.get(key)
            if directory is None:
                self.stats.stale_keys += 1
                logger.debug(f"Ignoring notification for stale {key!r}")
                continue

            self.stats.keys_taken += 1
            for event in key.poll_events():
                self._dispatch(event)
                if token.cancelled:
                    return

            if not key.reset():
                logger.debug(f"Watch for {directory} is no longer valid")
                self._registry.remove(key)
                service.release(key)

    def _dispatch(self, event: ChangeEvent) -> None:
        if event.kind is EventKind.OVERFLOW:
            self._handle_overflow(event)
            return

        if event.is_directory:
            if event.kind is EventKind.CREATED and self.config.follow_new_directories:
                self._register_new_directory(event)
            elif event.kind is EventKind.DELETED:
                self._release_tree(event.path)

        if not self.config.wants(event.kind):
            return

        logger.debug(f"{event.kind.value}: {event.path}")
        self.stats.events_dispatched += 1
        self.on_change()
        if self.on_event is not None:
            self.on_event(event)

    def _handle_overflow(self, event: ChangeEvent) -> None:
        notice = OverflowNotice(directory=event.directory, dropped=event.count)
        self.stats.overflows += 1
        logger.warning(f"Event overflow in {event.directory}: {event.count} event(s) dropped")

        # Subdirectories created during the overflow were never seen.
        if self.config.follow_new_directories:
            self._extend_registry(event.directory, seed=False)

        if self.on_overflow is not None:
            self.on_overflow(notice)

    def _register_new_directory(self, event: ChangeEvent) -> None:
        if self._registry.contains_directory(event.path):
            return
        # Only a directory created in place can fill up before its key exists.
        seed = self.config.seed_new_directories and not event.moved
        self._extend_registry(event.path, seed=seed)

    def _extend_registry(self, directory: Path, seed: bool) -> None:
        """Register unwatched directories at and below ``directory``."""
        try:
            added = self._registrar.register_tree(directory, known=self._registry, seed=seed)
        except RegistrationError as e:
            if e.vanished or self.config.registration_policy is RegistrationPolicy.SKIP_SUBTREE:
                logger.warning(f"Not watching {directory}: {e}")
                return
            raise
        if added:
            self._registry.update(added)
            self.stats.directories_registered += len(added)
            logger.debug(f"Now watching {len(added)} new directories under {directory}")

    def _release_tree(self, directory: Path) -> None:
        """Drop the watches of a deleted directory and everything below it."""
        keys = self._registry.remove_tree(directory)
        for key in keys:
            # Flush what was reported before the directory went away.
            for event in key.poll_events():
                self._dispatch(event)
            self._service.release(key)
        if keys:
            logger.debug(f"Released {len(keys)} watch(es) under deleted {directory}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


def watch(
    root: Path,
    on_change: Callable[[], None],
    cancel_token: Optional[CancellationToken] = None,
    config: Optional[WatcherConfig] = None,
    on_overflow: Optional[Callable[[OverflowNotice], None]] = None,
    on_event: Optional[Callable[[ChangeEvent], None]] = None,
) -> None:
    """
    Watch a directory tree, calling ``on_change`` once per change.

    Blocks until ``cancel_token`` is cancelled or a fatal error occurs.

    Args:
        root: Absolute path of an existing directory
        on_change: Zero-argument callback, run on the watching thread
        cancel_token: Token that ends the watch; without one the call only
            returns on a fatal error
        config: Watcher configuration
        on_overflow: Called with an OverflowNotice when events were dropped
        on_event: Called with each dispatched ChangeEvent

    Raises:
        RegistrationError: If the tree cannot be registered
        DispatchError: If waiting for events failed
    """
    watcher = DirectoryWatcher(
        root,
        on_change,
        config=config,
        on_overflow=on_overflow,
        on_event=on_event,
    )
    watcher.run(cancel_token)
