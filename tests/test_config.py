"""Tests for config module."""

import pytest

from treewatch.config import WatcherConfig
from treewatch.exceptions import ConfigError
from treewatch.models import CHANGE_KINDS, EventKind, RegistrationPolicy


class TestWatcherConfig:
    """Tests for WatcherConfig class."""

    def test_default_values(self):
        config = WatcherConfig()
        assert config.follow_new_directories is True
        assert config.event_kinds == CHANGE_KINDS
        assert config.registration_policy is RegistrationPolicy.SKIP_SUBTREE
        assert config.wait_timeout is None
        assert config.max_pending_events == 512
        assert config.seed_new_directories is True

    def test_custom_values(self):
        config = WatcherConfig(
            follow_new_directories=False,
            event_kinds={EventKind.CREATED},
            registration_policy=RegistrationPolicy.ABORT,
            wait_timeout=0.5,
            max_pending_events=10,
        )
        assert config.follow_new_directories is False
        assert config.event_kinds == frozenset({EventKind.CREATED})
        assert config.registration_policy is RegistrationPolicy.ABORT
        assert config.wait_timeout == 0.5
        assert config.max_pending_events == 10

    def test_event_kinds_from_strings(self):
        config = WatcherConfig(event_kinds=["created", "DELETED"])
        assert config.event_kinds == frozenset({EventKind.CREATED, EventKind.DELETED})

    def test_event_kinds_rejects_overflow(self):
        with pytest.raises(ConfigError):
            WatcherConfig(event_kinds=[EventKind.OVERFLOW])

    def test_event_kinds_rejects_unknown(self):
        with pytest.raises(ConfigError):
            WatcherConfig(event_kinds=["renamed"])

    def test_policy_from_string(self):
        config = WatcherConfig(registration_policy="abort")
        assert config.registration_policy is RegistrationPolicy.ABORT

    def test_invalid_policy(self):
        with pytest.raises(ConfigError):
            WatcherConfig(registration_policy="ignore")

    def test_invalid_wait_timeout(self):
        with pytest.raises(ConfigError):
            WatcherConfig(wait_timeout=0)

    def test_invalid_max_pending(self):
        with pytest.raises(ConfigError):
            WatcherConfig(max_pending_events=0)

    def test_wants(self):
        config = WatcherConfig(event_kinds=["modified"])
        assert config.wants(EventKind.MODIFIED) is True
        assert config.wants(EventKind.CREATED) is False
        assert config.wants(EventKind.OVERFLOW) is False


class TestWatcherConfigFromEnv:
    """Tests for WatcherConfig.from_env."""

    def test_empty_environment_gives_defaults(self):
        config = WatcherConfig.from_env(environ={})
        assert config == WatcherConfig()

    def test_reads_all_variables(self):
        env = {
            "TREEWATCH_FOLLOW_NEW": "false",
            "TREEWATCH_EVENT_KINDS": "created, deleted",
            "TREEWATCH_POLICY": "abort",
            "TREEWATCH_WAIT_TIMEOUT": "2.5",
            "TREEWATCH_MAX_PENDING": "64",
            "TREEWATCH_SEED_NEW": "no",
        }
        config = WatcherConfig.from_env(environ=env)
        assert config.follow_new_directories is False
        assert config.event_kinds == frozenset({EventKind.CREATED, EventKind.DELETED})
        assert config.registration_policy is RegistrationPolicy.ABORT
        assert config.wait_timeout == 2.5
        assert config.max_pending_events == 64
        assert config.seed_new_directories is False

    def test_custom_prefix(self):
        config = WatcherConfig.from_env(prefix="APP_", environ={"APP_FOLLOW_NEW": "0"})
        assert config.follow_new_directories is False

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("TREEWATCH_MAX_PENDING", "7")
        config = WatcherConfig.from_env()
        assert config.max_pending_events == 7

    def test_invalid_bool(self):
        with pytest.raises(ConfigError):
            WatcherConfig.from_env(environ={"TREEWATCH_FOLLOW_NEW": "maybe"})

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError):
            WatcherConfig.from_env(environ={"TREEWATCH_WAIT_TIMEOUT": "soon"})

    def test_invalid_max_pending(self):
        with pytest.raises(ConfigError):
            WatcherConfig.from_env(environ={"TREEWATCH_MAX_PENDING": "lots"})
