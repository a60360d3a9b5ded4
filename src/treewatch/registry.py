"""Mapping of watch keys to the directories they watch."""

from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional

from .service import WatchKey


class WatchRegistry:
    """
    Mapping of watch keys to the directories they were registered for.

    Keeps a reverse index so a directory is never registered twice. Not
    thread-safe: the registry is owned by the thread running the dispatch
    loop.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._directories: Dict[WatchKey, Path] = {}
        self._keys: Dict[Path, WatchKey] = {}

    def add(self, key: WatchKey, directory: Path) -> None:
        """
        Add a key for a directory.

        Args:
            key: Watch key returned by the watch service
            directory: Absolute directory path the key watches

        Raises:
            ValueError: If the key or the directory is already registered
        """
        directory = Path(directory)
        if key in self._directories:
            raise ValueError(f"Key already registered for {self._directories[key]}")
        if directory in self._keys:
            raise ValueError(f"Directory already registered: {directory}")
        self._directories[key] = directory
        self._keys[directory] = key

    def update(self, other: "WatchRegistry") -> None:
        """
        Merge all entries of another registry into this one.

        Args:
            other: Registry whose entries are added
        """
        for key, directory in other.items():
            self.add(key, directory)

    def get(self, key: WatchKey) -> Optional[Path]:
        """
        Resolve a key to its directory.

        Returns:
            The directory, or None for keys that are not (or no longer) registered
        """
        return self._directories.get(key)

    def key_for(self, directory: Path) -> Optional[WatchKey]:
        """Find the key watching a directory, if any."""
        return self._keys.get(Path(directory))

    def contains_directory(self, directory: Path) -> bool:
        """Check if a directory has a registered key."""
        return Path(directory) in self._keys

    def remove(self, key: WatchKey) -> Optional[Path]:
        """
        Remove a key.

        Returns:
            The directory the key was registered for, or None if not found
        """
        directory = self._directories.pop(key, None)
        if directory is not None:
            self._keys.pop(directory, None)
        return directory

    def remove_tree(self, directory: Path) -> List[WatchKey]:
        """
        Remove a directory and every registered directory below it.

        Args:
            directory: Top of the subtree

        Returns:
            Removed keys, parents before children
        """
        directory = Path(directory)
        depth = len(directory.parts)
        below = [p for p in self._keys if p.parts[:depth] == directory.parts]
        removed = []
        for path in sorted(below, key=lambda p: len(p.parts)):
            key = self._keys.pop(path)
            self._directories.pop(key, None)
            removed.append(key)
        return removed

    def directories(self) -> FrozenSet[Path]:
        """
        Get all registered directories.

        Returns:
            Frozen set of directory paths
        """
        return frozenset(self._keys)

    def keys(self) -> List[WatchKey]:
        """Get all registered keys."""
        return list(self._directories)

    def items(self):
        """Iterate over (key, directory) pairs."""
        return list(self._directories.items())

    def clear(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries removed
        """
        count = len(self._directories)
        self._directories.clear()
        self._keys.clear()
        return count

    def __len__(self) -> int:
        """Return the number of registered directories."""
        return len(self._directories)

    def __contains__(self, key: WatchKey) -> bool:
        """Check if a key is registered."""
        return key in self._directories

    def __iter__(self) -> Iterator[WatchKey]:
        return iter(list(self._directories))
