"""
Directory lookups that map a DN to its stable identifier and back.

``resolve_stable_id`` is a base-object search on a known DN: it never
walks the tree. ``find_dn_by_stable_id`` is the reverse lookup used by
rollback when a user record no longer remembers its original DN; it
searches the user subtree with the raw identifier escaped into the
filter.

Any protocol failure is reported as AuthenticationFailedError so raw
directory errors never reach callers. An empty result is
EntryNotFoundError and more than one result is AmbiguousResultError;
neither is ever resolved by guessing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_NO_SUCH_OBJECT, RESULT_SUCCESS

from idmigrate import codec
from idmigrate.directory.connection import DirectoryConnection
from idmigrate.directory.settings import (
    ATTR_OBJECT_CLASS,
    ATTR_OBJECT_GUID,
    DirectorySettings,
)
from idmigrate.exceptions import (
    AmbiguousResultError,
    AuthenticationFailedError,
    EntryNotFoundError,
    MissingStableIdError,
)
from idmigrate.observability import ATTR_DN, ATTR_STABLE_ID, Tracer, create_tracer

logger = logging.getLogger(__name__)

_EMPTY_RESULT_CODES = (RESULT_SUCCESS, RESULT_NO_SUCH_OBJECT)


@dataclass(frozen=True)
class DirectoryEntry:
    """
    A directory entry as returned by a search, kept for diagnostics.

    Attributes:
        dn: Distinguished name of the entry
        raw_attributes: Attribute name to raw values
    """

    dn: str
    raw_attributes: Mapping[str, list[bytes]] = field(default_factory=dict)

    def raw_values(self, attribute: str) -> list[bytes]:
        """Raw values of an attribute, matching its name case-insensitively."""
        wanted = attribute.lower()
        for name, values in self.raw_attributes.items():
            if name.lower() == wanted:
                return list(values)
        return []

    def first_raw_value(self, attribute: str) -> bytes | None:
        values = self.raw_values(attribute)
        return values[0] if values else None


def _search(
    connection: DirectoryConnection,
    base: str,
    search_filter: str,
    scope: str,
    attributes: list[str],
) -> list[DirectoryEntry]:
    try:
        ok = connection.search(
            search_base=base,
            search_filter=search_filter,
            search_scope=scope,
            dereference_aliases=ldap3.DEREF_NEVER,
            attributes=attributes,
        )
    except LDAPException as e:
        raise AuthenticationFailedError() from e

    if not ok:
        result: dict[str, Any] = connection.result or {}
        if result.get("result") not in _EMPTY_RESULT_CODES:
            logger.warning(
                f"Directory search under {base} failed: {result.get('description')}",
                extra={"base": base, "result": result.get("result")},
            )
            raise AuthenticationFailedError()

    entries: list[DirectoryEntry] = []
    for item in connection.response or []:
        if item.get("type") != "searchResEntry":
            continue
        entries.append(
            DirectoryEntry(dn=item.get("dn", ""), raw_attributes=item.get("raw_attributes") or {})
        )
    return entries


def extract_stable_id(entry: DirectoryEntry, settings: DirectorySettings) -> str:
    """
    Read the stable identifier from an entry.

    ``objectGUID`` holds 16 raw bytes and goes through the codec;
    ``entryUUID`` already holds UUID text and is only normalized.
    Attributes are tried in ``settings.stable_id_attributes`` order.

    Raises:
        MissingStableIdError: If the entry has none of the attributes
        CodecError: If the attribute value is malformed
    """
    for attribute in settings.stable_id_attributes:
        raw = entry.first_raw_value(attribute)
        if not raw:
            continue
        if attribute.lower() == ATTR_OBJECT_GUID.lower():
            return codec.parse(raw)
        return codec.normalize(raw.decode("ascii", errors="replace"))
    raise MissingStableIdError(entry.dn, settings.stable_id_attributes)


def resolve_stable_id(
    connection: DirectoryConnection,
    dn: str,
    settings: DirectorySettings,
) -> tuple[str, DirectoryEntry]:
    """
    Look up the entry at ``dn`` and return its stable identifier.

    Args:
        connection: A bound directory connection
        dn: Distinguished name of the user entry
        settings: Directory settings (object class and attributes)

    Returns:
        The canonical stable identifier and the raw entry

    Raises:
        AuthenticationFailedError: If the query fails
        EntryNotFoundError: If no entry exists at ``dn``
        AmbiguousResultError: If more than one entry is returned
        MissingStableIdError: If the entry has no stable identifier
        CodecError: If the identifier value is malformed
    """
    search_filter = settings.user_filter
    entries = _search(connection, dn, search_filter, ldap3.BASE, settings.search_attributes)

    if not entries:
        raise EntryNotFoundError(dn, search_filter)
    if len(entries) > 1:
        raise AmbiguousResultError(dn, len(entries))

    entry = entries[0]
    return extract_stable_id(entry, settings), entry


def stable_id_filter(stable_id: str, settings: DirectorySettings) -> str:
    """
    Build the filter matching a user by stable identifier.

    ``objectGUID`` is compared on its raw bytes, so the identifier is
    encoded back to wire layout and escaped byte by byte.
    """
    clauses = []
    for attribute in settings.stable_id_attributes:
        if attribute.lower() == ATTR_OBJECT_GUID.lower():
            clauses.append(f"({attribute}={codec.escape(codec.encode(stable_id))})")
        else:
            clauses.append(f"({attribute}={codec.normalize(stable_id)})")
    id_clause = clauses[0] if len(clauses) == 1 else f"(|{''.join(clauses)})"
    return f"(&({ATTR_OBJECT_CLASS}={settings.user_object_class}){id_clause})"


def find_dn_by_stable_id(
    connection: DirectoryConnection,
    stable_id: str,
    settings: DirectorySettings,
) -> tuple[str, DirectoryEntry]:
    """
    Find the DN of the user entry carrying ``stable_id``.

    Searches the subtree under ``settings.user_search_base``.

    Raises:
        InvalidFormatError: If ``stable_id`` is not canonical UUID text
        AuthenticationFailedError: If the query fails
        EntryNotFoundError: If no entry matches
        AmbiguousResultError: If several entries match
    """
    search_filter = stable_id_filter(stable_id, settings)
    base = settings.user_search_base
    entries = _search(connection, base, search_filter, ldap3.SUBTREE, settings.search_attributes)

    if not entries:
        raise EntryNotFoundError(base, search_filter)
    if len(entries) > 1:
        raise AmbiguousResultError(base, len(entries))
    return entries[0].dn, entries[0]


class DirectoryResolver:
    """
    Resolves identities against one bound directory connection.

    Example:
        >>> resolver = DirectoryResolver(open_connection(settings), settings)
        >>> resolver.resolve_stable_id("cn=alice,ou=users,dc=example,dc=org")
        '3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb'
    """

    def __init__(
        self,
        connection: DirectoryConnection,
        settings: DirectorySettings,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection
        self._settings = settings

    @property
    def settings(self) -> DirectorySettings:
        return self._settings

    def resolve_stable_id(self, dn: str) -> str:
        """Return the stable identifier of the entry at ``dn``."""
        with self._tracer.span("idmigrate.directory.resolve_stable_id", {ATTR_DN: dn}):
            stable_id, _ = resolve_stable_id(self._connection, dn, self._settings)
            logger.debug(
                f"Resolved {dn} to {stable_id}",
                extra={"dn": dn, "stable_id": stable_id},
            )
            return stable_id

    def find_dn(self, stable_id: str) -> str:
        """Return the DN of the entry carrying ``stable_id``."""
        with self._tracer.span("idmigrate.directory.find_dn", {ATTR_STABLE_ID: stable_id}):
            dn, _ = find_dn_by_stable_id(self._connection, stable_id, self._settings)
            logger.debug(
                f"Resolved {stable_id} to {dn}",
                extra={"dn": dn, "stable_id": stable_id},
            )
            return dn


__all__ = [
    "DirectoryEntry",
    "DirectoryResolver",
    "extract_stable_id",
    "find_dn_by_stable_id",
    "resolve_stable_id",
    "stable_id_filter",
]
