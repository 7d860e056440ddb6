"""
Persisted run configuration.

The configuration is a singleton record stored under ``CONFIG_NAME`` in a
flat string-to-string ``ConfigStore``. It has three independent axes:

    enabled   gates whether a run proceeds at all
    status    unknown | running | done, an advisory lock between runs
    action    check | migrate | rollback

plus ``limit`` (0 = unlimited) and ``users`` (empty = all users).

The ``running`` status is a cooperative, non-atomic check: two processes
starting at the same instant can both proceed. Callers serialize runs
externally; this module does not pretend to provide a distributed lock.

Decoding is defensive field by field: a malformed value falls back to
its default and logs a warning instead of failing the whole read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from idmigrate.exceptions import ConfigurationError, RecordNotFoundError

if TYPE_CHECKING:
    from idmigrate.registry.interface import ConfigStore

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

CONFIG_NAME = "idmigration-config"

DEFAULT_LIMIT = 1000

FIELD_ENABLED = "enabled"
FIELD_STATUS = "status"
FIELD_ACTION = "action"
FIELD_LIMIT = "limit"
FIELD_USERS = "users"


class MigrationStatus(Enum):
    """Run status recorded in the configuration."""

    UNKNOWN = "unknown"
    """No run has recorded a status yet."""

    RUNNING = "running"
    """A migrate or rollback run is in progress; do not start another."""

    DONE = "done"
    """The last run finished, successfully or not."""


class MigrationAction(Enum):
    """What a run does with the users it finds."""

    CHECK = "check"
    """Report pending and migrated users without changing anything."""

    MIGRATE = "migrate"
    """Move DN-keyed references to ID-keyed ones."""

    ROLLBACK = "rollback"
    """Move ID-keyed references back to DN-keyed ones."""

    @property
    def is_destructive(self) -> bool:
        return self is not MigrationAction.CHECK


@dataclass(frozen=True)
class MigrationConfiguration:
    """
    Run configuration.

    Attributes:
        enabled: Whether a run proceeds at all
        status: Advisory run status
        action: Action to execute
        limit: Maximum number of users per run, 0 for no limit
        users: Explicit allow-list of user names, empty for all users
    """

    enabled: bool = True
    status: MigrationStatus = MigrationStatus.UNKNOWN
    action: MigrationAction = MigrationAction.MIGRATE
    limit: int = DEFAULT_LIMIT
    users: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # users are stored comma-joined, so a name must survive the split
        for name in self.users:
            if "," in name or name != name.strip() or not name:
                raise ConfigurationError(
                    f"Invalid user name {name!r} in allow-list: names cannot be empty, "
                    "contain commas or have surrounding whitespace"
                )

    def to_fields(self) -> dict[str, str]:
        """Serialize to the flat string mapping stored in the ConfigStore."""
        return {
            FIELD_ENABLED: "true" if self.enabled else "false",
            FIELD_STATUS: self.status.value,
            FIELD_ACTION: self.action.value,
            FIELD_LIMIT: str(self.limit),
            FIELD_USERS: ",".join(sorted(self.users)),
        }

    @classmethod
    def from_fields(cls, fields: dict[str, str]) -> MigrationConfiguration:
        """
        Decode from the flat string mapping stored in the ConfigStore.

        Missing or malformed fields keep their default value.

        Args:
            fields: Stored key/value pairs

        Returns:
            The decoded configuration
        """
        defaults = cls()
        return cls(
            enabled=_decode_bool(fields, FIELD_ENABLED, defaults.enabled),
            status=_decode_enum(fields, FIELD_STATUS, MigrationStatus, defaults.status),
            action=_decode_enum(fields, FIELD_ACTION, MigrationAction, defaults.action),
            limit=_decode_limit(fields, defaults.limit),
            users=_decode_users(fields),
        )


def _decode_bool(fields: dict[str, str], key: str, default: bool) -> bool:
    value = fields.get(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in ("true", "1", "t", "yes"):
        return True
    if normalized in ("false", "0", "f", "no"):
        return False
    logger.warning(
        f"Ignoring malformed configuration field {key}={value!r}",
        extra={"field": key, "value": value},
    )
    return default


def _decode_enum(fields: dict[str, str], key: str, enum_type: type[E], default: E) -> E:
    value = fields.get(key)
    if value is None:
        return default
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        logger.warning(
            f"Ignoring malformed configuration field {key}={value!r}",
            extra={"field": key, "value": value},
        )
        return default


def _decode_limit(fields: dict[str, str], default: int) -> int:
    value = fields.get(FIELD_LIMIT)
    if value is None:
        return default
    try:
        limit = int(value.strip())
    except ValueError:
        limit = -1
    if limit < 0:
        logger.warning(
            f"Ignoring malformed configuration field {FIELD_LIMIT}={value!r}",
            extra={"field": FIELD_LIMIT, "value": value},
        )
        return default
    return limit


def _decode_users(fields: dict[str, str]) -> frozenset[str]:
    value = fields.get(FIELD_USERS, "")
    return frozenset(name.strip() for name in value.split(",") if name.strip())


def get_or_create_configuration(store: ConfigStore) -> MigrationConfiguration:
    """
    Read the run configuration, creating it with defaults on first access.

    Args:
        store: The configuration store

    Returns:
        The current configuration

    Raises:
        RegistryError: If the store fails for any reason other than absence
    """
    try:
        fields = store.get(CONFIG_NAME)
    except RecordNotFoundError:
        configuration = MigrationConfiguration()
        logger.info(
            f"Creating default migration configuration {CONFIG_NAME}",
            extra={"config_name": CONFIG_NAME},
        )
        fields = store.create(CONFIG_NAME, configuration.to_fields())

    return MigrationConfiguration.from_fields(fields)


def save_configuration(store: ConfigStore, configuration: MigrationConfiguration) -> None:
    """Persist the configuration, replacing the stored fields."""
    store.update(CONFIG_NAME, configuration.to_fields())


__all__ = [
    "CONFIG_NAME",
    "DEFAULT_LIMIT",
    "MigrationAction",
    "MigrationConfiguration",
    "MigrationStatus",
    "get_or_create_configuration",
    "save_configuration",
]
