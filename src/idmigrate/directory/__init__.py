"""
Directory access: settings, bound connections and identity resolution.

Only base-object searches on a known DN are used to resolve stable
identifiers; the reverse lookup by stable identifier searches the user
subtree.
"""

from idmigrate.directory.connection import DirectoryConnection, open_connection
from idmigrate.directory.resolver import (
    DirectoryEntry,
    DirectoryResolver,
    extract_stable_id,
    find_dn_by_stable_id,
    resolve_stable_id,
    stable_id_filter,
)
from idmigrate.directory.settings import (
    ATTR_ENTRY_UUID,
    ATTR_OBJECT_CLASS,
    ATTR_OBJECT_GUID,
    DirectorySettings,
)

__all__ = [
    "ATTR_ENTRY_UUID",
    "ATTR_OBJECT_CLASS",
    "ATTR_OBJECT_GUID",
    "DirectoryConnection",
    "DirectoryEntry",
    "DirectoryResolver",
    "DirectorySettings",
    "extract_stable_id",
    "find_dn_by_stable_id",
    "open_connection",
    "resolve_stable_id",
    "stable_id_filter",
]
