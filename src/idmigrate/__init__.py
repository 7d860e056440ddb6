"""
idmigrate - Move directory-backed identities from DN to stable ID references.

This package provides:
- Identifier codec for binary objectGUID values and their filter escaping
- Directory resolver over ldap3 (DN to stable ID and back)
- Persisted run configuration with an advisory running status
- Binding locator and the create-then-delete rebinding protocol
- Migration orchestrator for check, migrate and rollback runs
- In-memory and SQLAlchemy-backed registries
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("idmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from idmigrate import codec
from idmigrate.bindings import (
    BindingLocator,
    RebindResult,
    group_bindings_by_principal,
    rebind,
)
from idmigrate.config import (
    CONFIG_NAME,
    MigrationAction,
    MigrationConfiguration,
    MigrationStatus,
    get_or_create_configuration,
    save_configuration,
)
from idmigrate.directory import (
    DirectoryResolver,
    DirectorySettings,
    open_connection,
)
from idmigrate.exceptions import (
    AmbiguousResultError,
    AuthenticationFailedError,
    CodecError,
    ConfigurationError,
    DirectoryError,
    EntryNotFoundError,
    IdMigrateError,
    InvalidFormatError,
    InvalidLengthError,
    MigrationAbortedError,
    MissingStableIdError,
    RecordDecodeError,
    RecordNotFoundError,
    RegistryConflictError,
    RegistryError,
    RegistryUnavailableError,
)
from idmigrate.models import (
    BindingKind,
    BindingRecord,
    MigrationReport,
    UserContext,
    UserFailure,
    UserRecord,
)
from idmigrate.orchestrator import (
    ORIGINAL_PRINCIPAL_ANNOTATION,
    MigrationOrchestrator,
    partition,
)
from idmigrate.principal import PrincipalReference, PrincipalScheme, ReferenceKind
from idmigrate.registry import (
    DatabaseBindingRegistry,
    DatabaseConfigStore,
    DatabaseUserRegistry,
    InMemoryBindingRegistry,
    InMemoryConfigStore,
    InMemoryUserRegistry,
    create_schema,
)
from idmigrate.retry import RetryConfig

__all__ = [
    "__version__",
    # Codec
    "codec",
    # Principals and records
    "BindingKind",
    "BindingRecord",
    "PrincipalReference",
    "PrincipalScheme",
    "ReferenceKind",
    "UserRecord",
    # Configuration
    "CONFIG_NAME",
    "MigrationAction",
    "MigrationConfiguration",
    "MigrationStatus",
    "RetryConfig",
    "get_or_create_configuration",
    "save_configuration",
    # Directory
    "DirectoryResolver",
    "DirectorySettings",
    "open_connection",
    # Registries
    "DatabaseBindingRegistry",
    "DatabaseConfigStore",
    "DatabaseUserRegistry",
    "InMemoryBindingRegistry",
    "InMemoryConfigStore",
    "InMemoryUserRegistry",
    "create_schema",
    # Bindings
    "BindingLocator",
    "RebindResult",
    "group_bindings_by_principal",
    "rebind",
    # Orchestration
    "ORIGINAL_PRINCIPAL_ANNOTATION",
    "MigrationOrchestrator",
    "MigrationReport",
    "UserContext",
    "UserFailure",
    "partition",
    # Exceptions
    "AmbiguousResultError",
    "AuthenticationFailedError",
    "CodecError",
    "ConfigurationError",
    "DirectoryError",
    "EntryNotFoundError",
    "IdMigrateError",
    "InvalidFormatError",
    "InvalidLengthError",
    "MigrationAbortedError",
    "MissingStableIdError",
    "RecordDecodeError",
    "RecordNotFoundError",
    "RegistryConflictError",
    "RegistryError",
    "RegistryUnavailableError",
]
