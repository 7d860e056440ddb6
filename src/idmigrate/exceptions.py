"""
Exceptions for the idmigrate package.

Exception Hierarchy:
    IdMigrateError (base)
    +-- CodecError
    |   +-- InvalidLengthError
    |   +-- InvalidFormatError
    +-- DirectoryError
    |   +-- AuthenticationFailedError
    |   +-- EntryNotFoundError
    |   +-- AmbiguousResultError
    |   +-- MissingStableIdError
    +-- RegistryError
    |   +-- RegistryConflictError
    |   +-- RegistryUnavailableError
    |   +-- RecordNotFoundError
    |   +-- RecordDecodeError
    +-- ConfigurationError
    +-- MigrationAbortedError

Codec and directory errors are local to one user: they decide whether that
user's context can be built. Registry errors raised while rebinding are fatal
to the whole run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from idmigrate.models import MigrationReport


class IdMigrateError(Exception):
    """Base exception for the idmigrate package."""

    pass


# =============================================================================
# Codec
# =============================================================================


class CodecError(IdMigrateError):
    """Raised when an identifier cannot be converted between its raw and text forms."""

    pass


class InvalidLengthError(CodecError):
    """Raised when raw identifier bytes are not exactly 16 bytes long."""

    def __init__(self, length: int, expected: int = 16) -> None:
        self.length = length
        self.expected = expected
        super().__init__(f"Invalid identifier length: expected {expected} bytes, got {length}")


class InvalidFormatError(CodecError):
    """Raised when an identifier string is not in canonical UUID text form."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid identifier format: {value!r}")


# =============================================================================
# Directory
# =============================================================================


class DirectoryError(IdMigrateError):
    """Raised when a directory lookup cannot produce a usable result."""

    pass


class AuthenticationFailedError(DirectoryError):
    """
    Raised when a directory bind or query fails.

    The underlying protocol error is never part of the message; it is
    available through ``__cause__`` for debugging.
    """

    def __init__(self, message: str = "authentication failed") -> None:
        super().__init__(message)


class EntryNotFoundError(DirectoryError):
    """Raised when a directory lookup returns no entry."""

    def __init__(self, base: str, search_filter: str) -> None:
        self.base = base
        self.search_filter = search_filter
        super().__init__(f"Cannot locate user information for {base} with filter {search_filter}")


class AmbiguousResultError(DirectoryError):
    """
    Raised when a directory lookup that must be unique returns several entries.

    A DN is unique within a tree; more than one result points at a tree
    integrity problem and is never resolved by picking one of the entries.
    """

    def __init__(self, base: str, count: int) -> None:
        self.base = base
        self.count = count
        super().__init__(f"Directory search under {base} found {count} entries, expected one")


class MissingStableIdError(DirectoryError):
    """Raised when a directory entry carries none of the stable identifier attributes."""

    def __init__(self, dn: str, attributes: tuple[str, ...]) -> None:
        self.dn = dn
        self.attributes = attributes
        super().__init__(f"Entry {dn} has none of the attributes {', '.join(attributes)}")


# =============================================================================
# Registry
# =============================================================================


class RegistryError(IdMigrateError):
    """Raised when the user or binding registry rejects or fails an operation."""

    pass


class RegistryConflictError(RegistryError):
    """
    Raised when an optimistic concurrency check fails.

    The caller may retry a bounded number of times after re-reading the record.
    """

    def __init__(self, kind: str, name: str, message: str | None = None) -> None:
        self.kind = kind
        self.name = name
        super().__init__(message or f"Conflict on {kind} {name}: record was modified concurrently")


class RegistryUnavailableError(RegistryError):
    """Raised for any registry I/O failure other than a conflict."""

    pass


class RecordNotFoundError(RegistryError):
    """Raised when a record does not exist in the registry."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} not found: {name}")


class RecordDecodeError(RegistryError):
    """Raised when a stored record is missing required fields or has malformed ones."""

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(f"Cannot decode {kind} record: {message}")


# =============================================================================
# Configuration and run control
# =============================================================================


class ConfigurationError(IdMigrateError):
    """Raised when process settings are invalid."""

    pass


class MigrationAbortedError(IdMigrateError):
    """
    Raised when a migrate or rollback run stops on a fatal error.

    The run configuration has already been marked ``done`` when this is
    raised, so a corrective re-run can start immediately. If that status
    write failed too, it was logged and the status may still read
    ``running``.

    Attributes:
        report: The partial report describing what was changed before the stop
    """

    def __init__(self, report: MigrationReport, message: str) -> None:
        self.report = report
        super().__init__(f"Migration aborted during {report.action.value}: {message}")
