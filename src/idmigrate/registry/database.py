"""
Database-backed registries.

Stores users, bindings and the run configuration in three tables through
a synchronous SQLAlchemy Engine or Connection. Records are kept as JSON
bodies next to the indexed key columns, and every row read back is
decoded with the pydantic record models, so a malformed row raises
RecordDecodeError instead of producing half-empty records.

Tables:
    idm_users     seq, name, resource_version, body
    idm_bindings  seq, kind, name, namespace, principal, resource_version, body
    idm_config    name, data

``seq`` is an insertion sequence used for listing order, which keeps
limited runs selecting the same users across calls.

Usage:
    >>> from sqlalchemy import create_engine
    >>> engine = create_engine("sqlite:///idmigrate.db")
    >>> create_schema(engine)
    >>> users = DatabaseUserRegistry(engine)
    >>> crtbs = DatabaseBindingRegistry(engine, BindingKind.CLUSTER)
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import (
    Column,
    Connection,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from idmigrate.exceptions import (
    RecordDecodeError,
    RecordNotFoundError,
    RegistryConflictError,
    RegistryUnavailableError,
)
from idmigrate.models import BindingKind, BindingRecord, UserRecord, decode_binding, decode_user
from idmigrate.observability import (
    ATTR_BINDING_KIND,
    ATTR_BINDING_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_USER_NAME,
    Tracer,
    create_tracer,
)
from idmigrate.registry._connection import execute_with_connection
from idmigrate.registry.in_memory import generate_name

logger = logging.getLogger(__name__)

metadata = MetaData()

users_table = Table(
    "idm_users",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("resource_version", Integer, nullable=False),
    Column("body", Text, nullable=False),
)

bindings_table = Table(
    "idm_bindings",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(16), nullable=False),
    Column("name", String(255), nullable=False),
    Column("namespace", String(255), nullable=False, index=True),
    Column("principal", Text, nullable=False),
    Column("resource_version", Integer, nullable=False),
    Column("body", Text, nullable=False),
    UniqueConstraint("kind", "name", name="uq_idm_bindings_kind_name"),
)

config_table = Table(
    "idm_config",
    metadata,
    Column("name", String(255), primary_key=True),
    Column("data", Text, nullable=False),
)


def create_schema(conn: Connection | Engine) -> None:
    """Create the registry tables if they do not exist."""
    try:
        with execute_with_connection(conn) as connection:
            metadata.create_all(connection, checkfirst=True)
    except SQLAlchemyError as e:
        raise RegistryUnavailableError(f"Cannot create registry schema: {e}") from e


def _db_system(conn: Connection | Engine) -> str:
    return conn.dialect.name


class DatabaseUserRegistry:
    """
    User registry backed by the ``idm_users`` table.

    Updates are conditional on ``resource_version``; a stale version
    raises RegistryConflictError.
    """

    def __init__(
        self,
        conn: Connection | Engine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the user registry.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.conn = conn

    def list(self) -> list[UserRecord]:
        with self._tracer.span(
            "idmigrate.registry.users.list",
            {ATTR_DB_SYSTEM: _db_system(self.conn), ATTR_DB_OPERATION: "SELECT"},
        ):
            query = text("SELECT resource_version, body FROM idm_users ORDER BY seq")
            try:
                with execute_with_connection(self.conn, transactional=False) as conn:
                    rows = conn.execute(query).fetchall()
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot list users: {e}") from e
            return [self._decode(row[0], row[1]) for row in rows]

    def get(self, name: str) -> UserRecord:
        with self._tracer.span(
            "idmigrate.registry.users.get",
            {ATTR_DB_SYSTEM: _db_system(self.conn), ATTR_USER_NAME: name},
        ):
            query = text("SELECT resource_version, body FROM idm_users WHERE name = :name")
            try:
                with execute_with_connection(self.conn, transactional=False) as conn:
                    row = conn.execute(query, {"name": name}).fetchone()
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot get user {name}: {e}") from e
            if row is None:
                raise RecordNotFoundError("user", name)
            return self._decode(row[0], row[1])

    def create(self, user: UserRecord) -> UserRecord:
        with self._tracer.span(
            "idmigrate.registry.users.create",
            {ATTR_DB_SYSTEM: _db_system(self.conn), ATTR_USER_NAME: user.name},
        ):
            stored = user.model_copy(update={"resource_version": 1}, deep=True)
            query = text("""
                INSERT INTO idm_users (name, resource_version, body)
                VALUES (:name, :resource_version, :body)
            """)
            params = {
                "name": stored.name,
                "resource_version": stored.resource_version,
                "body": stored.model_dump_json(),
            }
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    conn.execute(query, params)
            except IntegrityError as e:
                raise RegistryConflictError(
                    "user", user.name, f"user already exists: {user.name}"
                ) from e
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot create user {user.name}: {e}") from e
            return stored

    def update(self, user: UserRecord) -> UserRecord:
        with self._tracer.span(
            "idmigrate.registry.users.update",
            {ATTR_DB_SYSTEM: _db_system(self.conn), ATTR_USER_NAME: user.name},
        ):
            stored = user.model_copy(update={"resource_version": user.resource_version + 1})
            query = text("""
                UPDATE idm_users
                SET resource_version = :new_version, body = :body
                WHERE name = :name AND resource_version = :expected_version
            """)
            params = {
                "name": user.name,
                "new_version": stored.resource_version,
                "expected_version": user.resource_version,
                "body": stored.model_dump_json(),
            }
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    result = conn.execute(query, params)
                    if result.rowcount == 0:
                        exists = conn.execute(
                            text("SELECT 1 FROM idm_users WHERE name = :name"),
                            {"name": user.name},
                        ).fetchone()
                        if exists is None:
                            raise RecordNotFoundError("user", user.name)
                        raise RegistryConflictError("user", user.name)
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot update user {user.name}: {e}") from e
            return stored

    @staticmethod
    def _decode(resource_version: int, body: str) -> UserRecord:
        user = decode_user(body)
        return user.model_copy(update={"resource_version": resource_version})


class DatabaseBindingRegistry:
    """Registry for one binding kind backed by the ``idm_bindings`` table."""

    def __init__(
        self,
        conn: Connection | Engine,
        kind: BindingKind,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the binding registry.

        Args:
            conn: Database connection or engine
            kind: Binding kind held by this registry
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._kind = kind
        self.conn = conn

    @property
    def kind(self) -> BindingKind:
        return self._kind

    def list(self, namespace: str | None = None) -> list[BindingRecord]:
        with self._tracer.span(
            "idmigrate.registry.bindings.list",
            {
                ATTR_DB_SYSTEM: _db_system(self.conn),
                ATTR_DB_OPERATION: "SELECT",
                ATTR_BINDING_KIND: self._kind.value,
            },
        ):
            params: dict[str, str] = {"kind": self._kind.value}
            sql = "SELECT name, resource_version, body FROM idm_bindings WHERE kind = :kind"
            if namespace is not None:
                sql += " AND namespace = :namespace"
                params["namespace"] = namespace
            sql += " ORDER BY seq"
            try:
                with execute_with_connection(self.conn, transactional=False) as conn:
                    rows = conn.execute(text(sql), params).fetchall()
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(
                    f"Cannot list {self._kind.value} bindings: {e}"
                ) from e
            return [self._decode(row[0], row[1], row[2]) for row in rows]

    def create(self, binding: BindingRecord) -> BindingRecord:
        if binding.kind is not self._kind:
            raise ValueError(
                f"Cannot store a {binding.kind.value} binding in the {self._kind.value} registry"
            )
        name = binding.name or generate_name(self._kind.name_prefix)
        with self._tracer.span(
            "idmigrate.registry.bindings.create",
            {
                ATTR_DB_SYSTEM: _db_system(self.conn),
                ATTR_BINDING_KIND: self._kind.value,
                ATTR_BINDING_NAME: name,
            },
        ):
            stored = binding.model_copy(update={"name": name, "resource_version": 1}, deep=True)
            query = text("""
                INSERT INTO idm_bindings
                    (kind, name, namespace, principal, resource_version, body)
                VALUES (:kind, :name, :namespace, :principal, :resource_version, :body)
            """)
            params = {
                "kind": self._kind.value,
                "name": name,
                "namespace": stored.namespace,
                "principal": stored.principal,
                "resource_version": stored.resource_version,
                "body": stored.model_dump_json(),
            }
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    conn.execute(query, params)
            except IntegrityError as e:
                raise RegistryConflictError(
                    f"{self._kind.value} binding", name, f"binding already exists: {name}"
                ) from e
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(
                    f"Cannot create {self._kind.value} binding {name}: {e}"
                ) from e
            return stored

    def delete(self, name: str) -> None:
        with self._tracer.span(
            "idmigrate.registry.bindings.delete",
            {
                ATTR_DB_SYSTEM: _db_system(self.conn),
                ATTR_BINDING_KIND: self._kind.value,
                ATTR_BINDING_NAME: name,
            },
        ):
            query = text("DELETE FROM idm_bindings WHERE kind = :kind AND name = :name")
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    result = conn.execute(query, {"kind": self._kind.value, "name": name})
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(
                    f"Cannot delete {self._kind.value} binding {name}: {e}"
                ) from e
            if result.rowcount == 0:
                raise RecordNotFoundError(f"{self._kind.value} binding", name)

    def _decode(self, name: str, resource_version: int, body: str) -> BindingRecord:
        binding = decode_binding(body)
        if binding.kind is not self._kind or binding.name != name:
            raise RecordDecodeError(
                "binding",
                f"row {self._kind.value}/{name} holds {binding.kind.value}/{binding.name}",
            )
        return binding.model_copy(update={"resource_version": resource_version})


class DatabaseConfigStore:
    """Flat key/value configuration store backed by the ``idm_config`` table."""

    def __init__(
        self,
        conn: Connection | Engine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.conn = conn

    def get(self, name: str) -> dict[str, str]:
        with self._tracer.span("idmigrate.registry.config.get", {ATTR_DB_OPERATION: "SELECT"}):
            query = text("SELECT data FROM idm_config WHERE name = :name")
            try:
                with execute_with_connection(self.conn, transactional=False) as conn:
                    row = conn.execute(query, {"name": name}).fetchone()
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot read configuration {name}: {e}") from e
            if row is None:
                raise RecordNotFoundError("configuration", name)
            return self._decode(name, row[0])

    def create(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        with self._tracer.span("idmigrate.registry.config.create", {ATTR_DB_OPERATION: "INSERT"}):
            query = text("INSERT INTO idm_config (name, data) VALUES (:name, :data)")
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    conn.execute(query, {"name": name, "data": json.dumps(fields, sort_keys=True)})
            except IntegrityError as e:
                raise RegistryConflictError(
                    "configuration", name, f"configuration already exists: {name}"
                ) from e
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot create configuration {name}: {e}") from e
            return dict(fields)

    def update(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        with self._tracer.span("idmigrate.registry.config.update", {ATTR_DB_OPERATION: "UPDATE"}):
            data = json.dumps(fields, sort_keys=True)
            try:
                with execute_with_connection(self.conn, transactional=True) as conn:
                    result = conn.execute(
                        text("UPDATE idm_config SET data = :data WHERE name = :name"),
                        {"name": name, "data": data},
                    )
                    if result.rowcount == 0:
                        conn.execute(
                            text("INSERT INTO idm_config (name, data) VALUES (:name, :data)"),
                            {"name": name, "data": data},
                        )
            except SQLAlchemyError as e:
                raise RegistryUnavailableError(f"Cannot update configuration {name}: {e}") from e
            return dict(fields)

    @staticmethod
    def _decode(name: str, data: str) -> dict[str, str]:
        try:
            fields = json.loads(data)
        except json.JSONDecodeError as e:
            raise RecordDecodeError("configuration", f"{name}: {e}") from e
        if not isinstance(fields, dict):
            raise RecordDecodeError("configuration", f"{name}: expected an object")
        return {str(key): str(value) for key, value in fields.items()}


__all__ = [
    "DatabaseBindingRegistry",
    "DatabaseConfigStore",
    "DatabaseUserRegistry",
    "create_schema",
    "metadata",
]
