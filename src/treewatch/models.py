"""Data models for the treewatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, FrozenSet, Union
import time


class EventKind(Enum):
    """Kinds of change events reported for a watched directory."""
    CREATED = "created"
    DELETED = "deleted"
    MODIFIED = "modified"
    OVERFLOW = "overflow"

    @classmethod
    def parse(cls, value: Union[str, "EventKind"]) -> "EventKind":
        """
        Convert a string such as ``"created"`` or ``"CREATED"`` to an EventKind.

        Args:
            value: Kind name or value, or an EventKind

        Returns:
            The matching EventKind

        Raises:
            ValueError: If the value names no kind
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if kind.value == text:
                return kind
        raise ValueError(f"Unknown event kind: {value!r}")


CHANGE_KINDS: FrozenSet[EventKind] = frozenset(
    {EventKind.CREATED, EventKind.DELETED, EventKind.MODIFIED}
)


def parse_event_kinds(values: Iterable[Union[str, EventKind]]) -> FrozenSet[EventKind]:
    """
    Parse a collection of kind names into a frozen set of change kinds.

    Args:
        values: Kind names or EventKind members

    Returns:
        Frozen set of EventKind

    Raises:
        ValueError: If a value is unknown or names OVERFLOW
    """
    kinds = set()
    for value in values:
        kind = EventKind.parse(value)
        if kind is EventKind.OVERFLOW:
            raise ValueError("overflow is not a selectable event kind")
        kinds.add(kind)
    return frozenset(kinds)


class RegistrationPolicy(Enum):
    """How the tree registrar reacts when a subdirectory cannot be registered."""
    SKIP_SUBTREE = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class ChangeEvent:
    """
    A single change reported against a watched directory.

    Attributes:
        kind: The kind of change
        directory: The watched directory the event was reported against
        name: Name of the affected entry within the directory
        is_directory: Whether the affected entry is a directory
        moved: The entry arrived or left by a rename rather than a create or delete
        count: Number of occurrences this event stands for (above 1 only for OVERFLOW)
        timestamp: Unix timestamp when the event was observed
    """
    kind: EventKind
    directory: Path
    name: str
    is_directory: bool = False
    moved: bool = False
    count: int = 1
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.directory.is_absolute():
            raise ValueError(f"directory must be absolute: {self.directory}")

    @property
    def path(self) -> Path:
        """Full path of the affected entry."""
        return self.directory / self.name

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "directory": str(self.directory),
            "name": self.name,
            "is_directory": self.is_directory,
            "moved": self.moved,
            "count": self.count,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class OverflowNotice:
    """
    The watch mechanism dropped event detail for a directory.

    Attributes:
        directory: The directory whose events were dropped
        dropped: Number of events that were lost
        timestamp: Unix timestamp when the overflow was dispatched
    """
    directory: Path
    dropped: int = 1
    timestamp: float = field(default_factory=time.time)
