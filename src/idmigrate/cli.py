"""
Command line entry point.

    idmigrate run                  run the configured action once
    idmigrate config show          print the persisted run configuration
    idmigrate config set ...       change fields of the run configuration
    idmigrate init-db              create the registry tables

Process settings come from flags, with ``IDMIGRATE_*`` environment
variables as defaults. Exit status: 0 on success or a skipped run, 1 when
a run was aborted, 2 on configuration or connection errors.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import replace

from sqlalchemy import create_engine

from idmigrate.config import (
    MigrationAction,
    MigrationStatus,
    get_or_create_configuration,
    save_configuration,
)
from idmigrate.directory import DirectoryResolver, DirectorySettings, open_connection
from idmigrate.exceptions import (
    ConfigurationError,
    DirectoryError,
    MigrationAbortedError,
    RegistryError,
)
from idmigrate.models import BindingKind
from idmigrate.orchestrator import MigrationOrchestrator
from idmigrate.principal import PrincipalScheme
from idmigrate.registry import (
    DatabaseBindingRegistry,
    DatabaseConfigStore,
    DatabaseUserRegistry,
    create_schema,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_ERROR = 2

DEFAULT_DATABASE_URL = "sqlite:///idmigrate.db"
DEFAULT_SCOPE = "openldap_user"


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default)


def _bool_flag(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("true", "yes", "1"):
        return True
    if normalized in ("false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def _non_negative(value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from e
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idmigrate",
        description=(
            "Move directory-backed user identities from DN references to "
            "stable ID references, or back."
        ),
    )
    parser.add_argument(
        "--database-url",
        default=_env("IDMIGRATE_DATABASE_URL", DEFAULT_DATABASE_URL),
        help="SQLAlchemy URL of the registry database (env IDMIGRATE_DATABASE_URL)",
    )
    parser.add_argument(
        "--scope",
        default=_env("IDMIGRATE_SCOPE", DEFAULT_SCOPE),
        help="Principal scope managed by this run, e.g. openldap_user (env IDMIGRATE_SCOPE)",
    )
    parser.add_argument(
        "--log-level",
        default=_env("IDMIGRATE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run the configured action once")
    run.add_argument(
        "--ldap-server",
        action="append",
        dest="ldap_servers",
        help="Directory host, repeatable (env IDMIGRATE_LDAP_SERVERS, comma-separated)",
    )
    run.add_argument(
        "--ldap-port",
        type=int,
        default=int(_env("IDMIGRATE_LDAP_PORT", "389")),
        help="Directory port",
    )
    tls = run.add_mutually_exclusive_group()
    tls.add_argument("--ldap-tls", action="store_true", help="Connect with LDAPS")
    tls.add_argument("--ldap-start-tls", action="store_true", help="Upgrade with StartTLS")
    run.add_argument(
        "--ldap-ca-cert",
        default=_env("IDMIGRATE_LDAP_CA_CERT"),
        help="PEM CA bundle used to verify the directory certificate",
    )
    run.add_argument(
        "--ldap-bind-dn",
        default=_env("IDMIGRATE_LDAP_BIND_DN"),
        help="Service account DN (env IDMIGRATE_LDAP_BIND_DN)",
    )
    run.add_argument(
        "--ldap-password",
        default=_env("IDMIGRATE_LDAP_PASSWORD"),
        help="Service account password (env IDMIGRATE_LDAP_PASSWORD)",
    )
    run.add_argument(
        "--user-search-base",
        default=_env("IDMIGRATE_LDAP_USER_SEARCH_BASE"),
        help="Subtree holding user entries (env IDMIGRATE_LDAP_USER_SEARCH_BASE)",
    )
    run.add_argument(
        "--user-object-class",
        default=_env("IDMIGRATE_LDAP_USER_OBJECT_CLASS", "inetOrgPerson"),
        help="Object class of user entries",
    )
    run.set_defaults(handler=_cmd_run)

    config = commands.add_parser("config", help="Inspect or change the run configuration")
    config_commands = config.add_subparsers(dest="config_command", required=True)

    show = config_commands.add_parser("show", help="Print the run configuration")
    show.set_defaults(handler=_cmd_config_show)

    update = config_commands.add_parser("set", help="Change fields of the run configuration")
    update.add_argument("--enabled", type=_bool_flag, help="true or false")
    update.add_argument("--action", choices=[a.value for a in MigrationAction])
    update.add_argument(
        "--status",
        choices=[s.value for s in MigrationStatus],
        help="Overwrite the advisory status, e.g. to clear a stale 'running'",
    )
    update.add_argument("--limit", type=_non_negative, help="Users per run, 0 for no limit")
    update.add_argument(
        "--users",
        help="Comma-separated user names to process; empty string for all users",
    )
    update.set_defaults(handler=_cmd_config_set)

    init_db = commands.add_parser("init-db", help="Create the registry tables")
    init_db.set_defaults(handler=_cmd_init_db)

    return parser


def directory_settings_from_args(args: argparse.Namespace) -> DirectorySettings:
    """
    Build directory settings from parsed ``run`` arguments.

    Raises:
        ConfigurationError: If the settings are inconsistent
    """
    servers = args.ldap_servers or [
        host.strip() for host in _env("IDMIGRATE_LDAP_SERVERS").split(",") if host.strip()
    ]
    return DirectorySettings(
        servers=tuple(servers),
        port=args.ldap_port,
        tls=args.ldap_tls,
        start_tls=args.ldap_start_tls,
        ca_certificate=args.ldap_ca_cert,
        service_account_dn=args.ldap_bind_dn,
        service_account_password=args.ldap_password,
        user_search_base=args.user_search_base,
        user_object_class=args.user_object_class,
    )


def _cmd_run(args: argparse.Namespace) -> int:
    engine = create_engine(args.database_url)
    try:
        scheme = PrincipalScheme(args.scope)
        settings = directory_settings_from_args(args)
        connection = open_connection(settings)
        try:
            orchestrator = MigrationOrchestrator(
                users=DatabaseUserRegistry(engine),
                cluster_bindings=DatabaseBindingRegistry(engine, BindingKind.CLUSTER),
                project_bindings=DatabaseBindingRegistry(engine, BindingKind.PROJECT),
                config_store=DatabaseConfigStore(engine),
                resolver=DirectoryResolver(connection, settings),
                scheme=scheme,
            )
            report = orchestrator.run()
        finally:
            connection.unbind()
    except MigrationAbortedError as e:
        for line in e.report.lines():
            print(line)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ABORTED
    except (ConfigurationError, DirectoryError, RegistryError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        engine.dispose()

    for line in report.lines():
        print(line)
    return EXIT_OK


def _cmd_config_show(args: argparse.Namespace) -> int:
    engine = create_engine(args.database_url)
    try:
        configuration = get_or_create_configuration(DatabaseConfigStore(engine))
    except RegistryError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        engine.dispose()

    for key, value in configuration.to_fields().items():
        print(f"{key}={value}")
    return EXIT_OK


def _cmd_config_set(args: argparse.Namespace) -> int:
    changes: dict[str, object] = {}
    if args.enabled is not None:
        changes["enabled"] = args.enabled
    if args.action is not None:
        changes["action"] = MigrationAction(args.action)
    if args.status is not None:
        changes["status"] = MigrationStatus(args.status)
    if args.limit is not None:
        changes["limit"] = args.limit
    if args.users is not None:
        changes["users"] = frozenset(n.strip() for n in args.users.split(",") if n.strip())

    engine = create_engine(args.database_url)
    try:
        store = DatabaseConfigStore(engine)
        configuration = replace(get_or_create_configuration(store), **changes)
        save_configuration(store, configuration)
    except (ConfigurationError, RegistryError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        engine.dispose()

    logger.info(
        f"Updated migration configuration: {', '.join(sorted(changes)) or 'no changes'}",
        extra={"fields": sorted(changes)},
    )
    for key, value in configuration.to_fields().items():
        print(f"{key}={value}")
    return EXIT_OK


def _cmd_init_db(args: argparse.Namespace) -> int:
    engine = create_engine(args.database_url)
    try:
        create_schema(engine)
    except RegistryError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        engine.dispose()
    print(f"Registry tables ready in {engine.url.render_as_string(hide_password=True)}")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``idmigrate`` command and return its exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
