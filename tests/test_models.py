"""Tests for models and exceptions modules."""

import pytest
from pathlib import Path

from treewatch.models import (
    CHANGE_KINDS,
    ChangeEvent,
    EventKind,
    OverflowNotice,
    RegistrationPolicy,
    parse_event_kinds,
)
from treewatch.exceptions import DispatchError, RegistrationError, WatcherError


class TestEventKind:
    """Tests for EventKind enum."""

    def test_event_kind_values(self):
        assert EventKind.CREATED.value == "created"
        assert EventKind.DELETED.value == "deleted"
        assert EventKind.MODIFIED.value == "modified"
        assert EventKind.OVERFLOW.value == "overflow"

    def test_parse(self):
        assert EventKind.parse("created") is EventKind.CREATED
        assert EventKind.parse(" Modified ") is EventKind.MODIFIED
        assert EventKind.parse(EventKind.DELETED) is EventKind.DELETED

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            EventKind.parse("renamed")

    def test_change_kinds(self):
        assert CHANGE_KINDS == {EventKind.CREATED, EventKind.DELETED, EventKind.MODIFIED}

    def test_parse_event_kinds(self):
        assert parse_event_kinds(["created", "modified"]) == frozenset(
            {EventKind.CREATED, EventKind.MODIFIED}
        )

    def test_parse_event_kinds_rejects_overflow(self):
        with pytest.raises(ValueError):
            parse_event_kinds(["overflow"])


class TestRegistrationPolicy:
    """Tests for RegistrationPolicy enum."""

    def test_from_value(self):
        assert RegistrationPolicy("skip") is RegistrationPolicy.SKIP_SUBTREE
        assert RegistrationPolicy("abort") is RegistrationPolicy.ABORT


class TestChangeEvent:
    """Tests for ChangeEvent dataclass."""

    def test_create_event(self, tmp_path):
        event = ChangeEvent(EventKind.CREATED, tmp_path, "File.txt")

        assert event.kind is EventKind.CREATED
        assert event.directory == tmp_path
        assert event.name == "File.txt"
        assert event.is_directory is False
        assert event.moved is False
        assert event.count == 1
        assert event.timestamp > 0

    def test_path(self, tmp_path):
        event = ChangeEvent(EventKind.DELETED, tmp_path, "sub", is_directory=True)
        assert event.path == tmp_path / "sub"

    def test_relative_directory_rejected(self):
        with pytest.raises(ValueError, match="must be absolute"):
            ChangeEvent(EventKind.CREATED, Path("relative"), "x")

    def test_immutable(self, tmp_path):
        event = ChangeEvent(EventKind.CREATED, tmp_path, "x")
        with pytest.raises(AttributeError):
            event.name = "y"

    def test_to_dict(self, tmp_path):
        event = ChangeEvent(EventKind.MODIFIED, tmp_path, "a.txt", timestamp=12.5)
        assert event.to_dict() == {
            "kind": "modified",
            "directory": str(tmp_path),
            "name": "a.txt",
            "is_directory": False,
            "moved": False,
            "count": 1,
            "timestamp": 12.5,
        }


class TestOverflowNotice:
    """Tests for OverflowNotice dataclass."""

    def test_defaults(self, tmp_path):
        notice = OverflowNotice(directory=tmp_path)
        assert notice.directory == tmp_path
        assert notice.dropped == 1


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_registration_error(self, tmp_path):
        cause = PermissionError(13, "Permission denied")
        error = RegistrationError(tmp_path / "locked", cause)

        assert isinstance(error, WatcherError)
        assert error.path == tmp_path / "locked"
        assert error.cause is cause
        assert "locked" in str(error)
        assert error.vanished is False

    def test_registration_error_vanished(self, tmp_path):
        error = RegistrationError(tmp_path, FileNotFoundError(2, "No such file"))
        assert error.vanished is True

    def test_dispatch_error(self):
        cause = RuntimeError("closed")
        error = DispatchError(cause)

        assert isinstance(error, WatcherError)
        assert error.cause is cause
        assert "closed" in str(error)
