"""Discovery and registration of every directory in a tree."""

import errno
import logging
import os
import stat
from pathlib import Path
from typing import List, Optional, Tuple

from .cancellation import CancellationToken
from .exceptions import RegistrationError
from .models import RegistrationPolicy
from .registry import WatchRegistry
from .service import WatchService

logger = logging.getLogger(__name__)


def list_entries(directory: Path) -> List[Tuple[str, bool]]:
    """
    List the entries of a directory without following symlinks.

    Args:
        directory: Directory to list

    Returns:
        (name, is_directory) pairs; symlinks to directories count as files

    Raises:
        OSError: If the directory cannot be listed
    """
    entries = []
    with os.scandir(directory) as it:
        for entry in it:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            entries.append((entry.name, is_dir))
    return entries


class TreeRegistrar:
    """
    Registers a directory and all of its real subdirectories with a watch service.

    The tree is walked with an explicit stack. The cancellation token, when
    given, is checked before each directory; a cancelled walk stops early and
    returns what it registered so far.

    Failure handling:
        - The starting directory must exist and be readable, otherwise
          RegistrationError is raised whatever the policy.
        - A subdirectory that vanished before it could be registered or
          listed is skipped.
        - Any other subdirectory failure either skips that subtree
          (SKIP_SUBTREE) or releases everything registered by the call and
          raises RegistrationError (ABORT).
    """

    def __init__(
        self,
        service: WatchService,
        policy: RegistrationPolicy = RegistrationPolicy.SKIP_SUBTREE,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.service = service
        self.policy = policy
        self.cancel_token = cancel_token

    def register_tree(
        self,
        directory: Path,
        known: Optional[WatchRegistry] = None,
        seed: bool = False,
    ) -> WatchRegistry:
        """
        Register a directory tree.

        Args:
            directory: Absolute path of the top directory
            known: Live registry; directories already in it are walked but not registered again
            seed: Queue CREATED events for entries found in newly registered directories

        Returns:
            Registry with the newly registered directories

        Raises:
            RegistrationError: See the class docstring
        """
        top = Path(directory)
        self._check_directory(top)

        registered = WatchRegistry()
        stack = [top]
        while stack:
            if self.cancel_token is not None and self.cancel_token.cancelled:
                logger.info(f"Registration of {top} cancelled after {len(registered)} directories")
                break

            current = stack.pop()
            is_top = current == top
            key = None

            if not (known is not None and known.contains_directory(current)):
                try:
                    key = self.service.register(current)
                except OSError as e:
                    self._handle_failure(current, e, is_top, registered)
                    continue
                registered.add(key, current)

            try:
                entries = list_entries(current)
            except OSError as e:
                self._handle_failure(current, e, is_top, registered)
                if key is not None:
                    registered.remove(key)
                    self.service.release(key)
                continue

            if seed and key is not None:
                key.seed(entries)

            # Reverse so children are visited in listing order.
            for name, is_dir in reversed(entries):
                if is_dir:
                    stack.append(current / name)

        logger.debug(f"Registered {len(registered)} directories under {top}")
        return registered

    def _check_directory(self, path: Path) -> None:
        try:
            mode = os.stat(path).st_mode
        except OSError as e:
            raise RegistrationError(path, e) from e
        if not stat.S_ISDIR(mode):
            cause = NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(path))
            raise RegistrationError(path, cause)

    def _handle_failure(
        self,
        path: Path,
        error: OSError,
        is_top: bool,
        registered: WatchRegistry,
    ) -> None:
        vanished = isinstance(error, (FileNotFoundError, NotADirectoryError))
        if is_top or (not vanished and self.policy is RegistrationPolicy.ABORT):
            self._release_all(registered)
            raise RegistrationError(path, error) from error
        if vanished:
            logger.debug(f"Directory vanished before registration: {path}")
        else:
            logger.warning(f"Skipping subtree {path}: {error}")

    def _release_all(self, registered: WatchRegistry) -> None:
        for key in registered.keys():
            self.service.release(key)
        registered.clear()
