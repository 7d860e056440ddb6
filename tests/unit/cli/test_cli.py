"""
Unit tests for the idmigrate command line.

The registry database is a SQLite file under tmp_path; the directory
connection is replaced with FakeDirectoryConnection.
"""

import pytest
from sqlalchemy import create_engine

from idmigrate import cli
from idmigrate.config import MigrationAction, MigrationStatus, get_or_create_configuration
from idmigrate.exceptions import AuthenticationFailedError, MigrationAbortedError
from idmigrate.models import BindingKind, MigrationReport
from idmigrate.orchestrator import ORIGINAL_PRINCIPAL_ANNOTATION
from idmigrate.registry import (
    DatabaseBindingRegistry,
    DatabaseConfigStore,
    DatabaseUserRegistry,
)
from tests.fixtures import (
    ALICE_DN,
    ALICE_STABLE_ID,
    FakeDirectoryConnection,
    dn_ref,
    id_ref,
    make_binding,
    make_user,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in [
        "IDMIGRATE_DATABASE_URL",
        "IDMIGRATE_SCOPE",
        "IDMIGRATE_LDAP_SERVERS",
        "IDMIGRATE_LDAP_BIND_DN",
        "IDMIGRATE_LDAP_PASSWORD",
        "IDMIGRATE_LDAP_USER_SEARCH_BASE",
    ]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'idmigrate.db'}"


@pytest.fixture
def engine(database_url):
    engine = create_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def initialized(database_url):
    assert cli.main(["--database-url", database_url, "init-db"]) == cli.EXIT_OK


@pytest.fixture
def fake_directory(monkeypatch):
    """Route open_connection to a fake holding alice."""
    connection = FakeDirectoryConnection()
    connection.add_entry(ALICE_DN, entry_uuid=ALICE_STABLE_ID)
    opened = []

    def fake_open_connection(settings):
        opened.append(settings)
        return connection

    monkeypatch.setattr(cli, "open_connection", fake_open_connection)
    connection.opened = opened
    return connection


def run_args(database_url, *extra):
    return [
        "--database-url",
        database_url,
        "run",
        "--ldap-server",
        "ldap.example.org",
        "--ldap-bind-dn",
        "cn=admin,dc=example,dc=org",
        "--ldap-password",
        "secret",
        "--user-search-base",
        "ou=users,dc=example,dc=org",
        *extra,
    ]


class TestInitDb:
    """Tests for the init-db command."""

    def test_creates_tables(self, database_url, engine, capsys):
        assert cli.main(["--database-url", database_url, "init-db"]) == cli.EXIT_OK

        assert "Registry tables ready" in capsys.readouterr().out
        assert DatabaseUserRegistry(engine).list() == []

    def test_is_repeatable(self, database_url, initialized):
        assert cli.main(["--database-url", database_url, "init-db"]) == cli.EXIT_OK


class TestConfigCommands:
    """Tests for config show and config set."""

    def test_show_defaults(self, database_url, initialized, capsys):
        assert cli.main(["--database-url", database_url, "config", "show"]) == cli.EXIT_OK

        out = capsys.readouterr().out.splitlines()
        assert "enabled=true" in out
        assert "action=migrate" in out
        assert "limit=1000" in out

    def test_set_fields(self, database_url, initialized, engine, capsys):
        code = cli.main(
            [
                "--database-url",
                database_url,
                "config",
                "set",
                "--action",
                "rollback",
                "--limit",
                "0",
                "--users",
                "u-bob, u-alice",
            ]
        )

        assert code == cli.EXIT_OK
        configuration = get_or_create_configuration(DatabaseConfigStore(engine))
        assert configuration.action is MigrationAction.ROLLBACK
        assert configuration.limit == 0
        assert configuration.users == frozenset({"u-alice", "u-bob"})
        assert configuration.enabled
        assert "users=u-alice,u-bob" in capsys.readouterr().out

    def test_set_clears_stale_status(self, database_url, initialized, engine):
        cli.main(["--database-url", database_url, "config", "set", "--status", "running"])

        cli.main(["--database-url", database_url, "config", "set", "--status", "unknown"])

        status = get_or_create_configuration(DatabaseConfigStore(engine)).status
        assert status is MigrationStatus.UNKNOWN

    @pytest.mark.parametrize("flag", [["--limit", "-1"], ["--enabled", "maybe"]])
    def test_rejects_bad_values(self, database_url, initialized, flag):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--database-url", database_url, "config", "set", *flag])

        assert exc_info.value.code == 2

    def test_show_without_tables_fails(self, database_url, capsys):
        assert cli.main(["--database-url", database_url, "config", "show"]) == cli.EXIT_ERROR
        assert "ERROR" in capsys.readouterr().err


class TestRunCommand:
    """Tests for the run command."""

    @pytest.fixture
    def seeded(self, engine, initialized):
        DatabaseUserRegistry(engine).create(make_user("u-alice", dn_ref(ALICE_DN)))
        DatabaseBindingRegistry(engine, BindingKind.CLUSTER).create(
            make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN), name="crtb-alice")
        )

    def test_migrates(self, database_url, seeded, engine, fake_directory, capsys):
        assert cli.main(run_args(database_url)) == cli.EXIT_OK

        user = DatabaseUserRegistry(engine).get("u-alice")
        assert user.principal_ids == [id_ref(ALICE_STABLE_ID)]
        assert user.annotations[ORIGINAL_PRINCIPAL_ANNOTATION] == dn_ref(ALICE_DN)
        crtbs = DatabaseBindingRegistry(engine, BindingKind.CLUSTER).list()
        assert [b.principal for b in crtbs] == [id_ref(ALICE_STABLE_ID)]
        assert not fake_directory.bound
        assert "Found 1 users to migrate" in capsys.readouterr().out

    def test_passes_directory_settings(self, database_url, seeded, fake_directory):
        cli.main(run_args(database_url, "--ldap-start-tls", "--ldap-port", "1389"))

        settings = fake_directory.opened[0]
        assert settings.servers == ("ldap.example.org",)
        assert settings.port == 1389
        assert settings.start_tls
        assert settings.service_account_dn == "cn=admin,dc=example,dc=org"

    def test_servers_from_environment(self, database_url, seeded, fake_directory, monkeypatch):
        monkeypatch.setenv("IDMIGRATE_LDAP_SERVERS", "ldap1.example.org, ldap2.example.org")

        cli.main(["--database-url", database_url, "run"])

        assert fake_directory.opened[0].servers == ("ldap1.example.org", "ldap2.example.org")

    def test_check_prints_report(self, database_url, seeded, engine, fake_directory, capsys):
        cli.main(["--database-url", database_url, "config", "set", "--action", "check"])
        capsys.readouterr()

        assert cli.main(run_args(database_url)) == cli.EXIT_OK

        out = capsys.readouterr().out
        assert f"u-alice: DN: {ALICE_DN} -> stable ID: {ALICE_STABLE_ID}" in out
        assert DatabaseUserRegistry(engine).get("u-alice").principal_ids == [dn_ref(ALICE_DN)]

    def test_missing_servers_is_an_error(self, database_url, initialized, capsys):
        assert cli.main(["--database-url", database_url, "run"]) == cli.EXIT_ERROR
        assert "ERROR" in capsys.readouterr().err

    def test_bind_failure_is_an_error(self, database_url, initialized, monkeypatch):
        def refuse(settings):
            raise AuthenticationFailedError("bind as cn=admin,dc=example,dc=org rejected")

        monkeypatch.setattr(cli, "open_connection", refuse)

        assert cli.main(run_args(database_url)) == cli.EXIT_ERROR

    def test_aborted_run(self, database_url, seeded, fake_directory, monkeypatch, capsys):
        def abort(self):
            raise MigrationAbortedError(MigrationReport(action=MigrationAction.MIGRATE), "boom")

        monkeypatch.setattr(cli.MigrationOrchestrator, "run", abort)

        assert cli.main(run_args(database_url)) == cli.EXIT_ABORTED
        assert "boom" in capsys.readouterr().err
        assert not fake_directory.bound
