"""Configuration for the treewatch package."""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from .exceptions import ConfigError
from .models import CHANGE_KINDS, EventKind, RegistrationPolicy, parse_event_kinds


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class WatcherConfig:
    """
    Configuration options for the directory watcher.

    Attributes:
        follow_new_directories: Register subdirectories created after start
        event_kinds: Kinds of change that invoke the callback
        registration_policy: Skip or abort when a subdirectory fails to register
        wait_timeout: Seconds between idle wake-ups of the dispatch loop (None = block)
        max_pending_events: Undrained events a directory may hold before overflowing
        seed_new_directories: Report entries already present in a new directory
    """
    follow_new_directories: bool = True
    event_kinds: FrozenSet[EventKind] = field(default_factory=lambda: CHANGE_KINDS)
    registration_policy: RegistrationPolicy = RegistrationPolicy.SKIP_SUBTREE
    wait_timeout: Optional[float] = None
    max_pending_events: int = 512
    seed_new_directories: bool = True

    def __post_init__(self):
        try:
            self.event_kinds = parse_event_kinds(self.event_kinds)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"event_kinds is invalid: {e}") from e

        if isinstance(self.registration_policy, str):
            try:
                self.registration_policy = RegistrationPolicy(self.registration_policy.lower())
            except ValueError as e:
                allowed = ", ".join(p.value for p in RegistrationPolicy)
                raise ConfigError(f"registration_policy must be one of: {allowed}") from e

        if self.wait_timeout is not None and self.wait_timeout <= 0:
            raise ConfigError("wait_timeout must be positive")

        if self.max_pending_events < 1:
            raise ConfigError("max_pending_events must be at least 1")

    def wants(self, kind: EventKind) -> bool:
        """Check whether events of this kind invoke the callback."""
        return kind in self.event_kinds

    @classmethod
    def from_env(
        cls,
        prefix: str = "TREEWATCH_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "WatcherConfig":
        """
        Build a configuration from environment variables.

        Recognized variables (with the default prefix): TREEWATCH_FOLLOW_NEW,
        TREEWATCH_EVENT_KINDS (comma separated), TREEWATCH_POLICY,
        TREEWATCH_WAIT_TIMEOUT, TREEWATCH_MAX_PENDING, TREEWATCH_SEED_NEW.

        Args:
            prefix: Prefix for variable names
            environ: Mapping to read instead of os.environ

        Returns:
            WatcherConfig with defaults for unset variables

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        follow = env.get(f"{prefix}FOLLOW_NEW")
        if follow is not None:
            kwargs["follow_new_directories"] = _parse_bool(follow, f"{prefix}FOLLOW_NEW")

        kinds = env.get(f"{prefix}EVENT_KINDS")
        if kinds is not None:
            kwargs["event_kinds"] = [k for k in kinds.split(",") if k.strip()]

        policy = env.get(f"{prefix}POLICY")
        if policy is not None:
            kwargs["registration_policy"] = policy.strip()

        timeout = env.get(f"{prefix}WAIT_TIMEOUT")
        if timeout:
            try:
                kwargs["wait_timeout"] = float(timeout)
            except ValueError as e:
                raise ConfigError(f"{prefix}WAIT_TIMEOUT must be numeric") from e

        max_pending = env.get(f"{prefix}MAX_PENDING")
        if max_pending:
            try:
                kwargs["max_pending_events"] = int(max_pending)
            except ValueError as e:
                raise ConfigError(f"{prefix}MAX_PENDING must be an integer") from e

        seed = env.get(f"{prefix}SEED_NEW")
        if seed is not None:
            kwargs["seed_new_directories"] = _parse_bool(seed, f"{prefix}SEED_NEW")

        return cls(**kwargs)


def _parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false)")
