"""CLI command tests for pgbind."""

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pgbind import pipeline
from pgbind.cli.main import app
from pgbind.config import DATABASE_URL_ENV, ContainerRuntime
from pgbind.core.types import MigrationFile
from pgbind.exceptions import MigrationError, ProvisioningError

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's PGBIND_DATABASE_URL out of the tests."""
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def generate_calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, tuple, dict]]:
    """Record pipeline calls instead of generating."""
    calls: list[tuple[str, tuple, dict]] = []

    def fake(kind: str):
        def run(*args, **kwargs):
            calls.append((kind, args, kwargs))
            return [Path("generated/__init__.py"), Path("generated/types.py")]

        return run

    monkeypatch.setattr(pipeline, "generate_transient", fake("transient"))
    monkeypatch.setattr(pipeline, "generate_live", fake("live"))
    return calls


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "pgbind v" in result.stdout


class TestMigrationsCommands:
    """Test migration commands."""

    def test_new_creates_file(self, tmp_path: Path) -> None:
        """Test creating a migration in a custom directory."""
        result = runner.invoke(
            app,
            ["--json", "migrations", "--migrations-path", str(tmp_path), "new", "create_users"],
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        data = json.loads(result.stdout)
        assert data["success"] is True
        created = Path(data["path"])
        assert created.parent == tmp_path
        assert created.name.endswith("_create_users.sql")
        assert created.exists()

    def test_new_invalid_name(self, tmp_path: Path) -> None:
        """Test that names with spaces are rejected."""
        result = runner.invoke(
            app, ["--json", "migrations", "-m", str(tmp_path), "new", "two words"]
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "ParseError"

    def test_run_requires_url(self, tmp_path: Path) -> None:
        """Test that run without --url or environment fails clearly."""
        result = runner.invoke(app, ["--json", "migrations", "-m", str(tmp_path), "run"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "DatabaseConnectionError"
        assert DATABASE_URL_ENV in data["message"]

    def test_run_applies(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that run applies migrations from the given directory."""
        seen = {}

        def migrate(url, path, echo=False):
            seen.update(url=url, path=path)
            return [
                MigrationFile(timestamp=1, name="init", path=tmp_path / "1_init.sql", sql=""),
            ]

        monkeypatch.setattr(pipeline, "migrate", migrate)
        result = runner.invoke(
            app,
            ["--json", "migrations", "-m", str(tmp_path), "run", "--url", "postgresql://h/db"],
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert seen == {"url": "postgresql://h/db", "path": tmp_path}
        assert json.loads(result.stdout)["migrations"] == ["1_init.sql"]

    def test_run_table_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that applied migrations are listed in a table without --json."""

        def migrate(url, path, echo=False):
            return [
                MigrationFile(timestamp=1, name="init", path=tmp_path / "1_init.sql", sql=""),
            ]

        monkeypatch.setattr(pipeline, "migrate", migrate)
        result = runner.invoke(app, ["migrations", "run", "--url", "postgresql://h/db"])
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert "Applied 1 migration(s)" in result.stdout
        assert "1_init.sql" in result.stdout

    def test_run_url_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that PGBIND_DATABASE_URL is used when --url is omitted."""
        seen = {}

        def migrate(url, path, echo=False):
            seen["url"] = url
            return []

        monkeypatch.setattr(pipeline, "migrate", migrate)
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://env/db")
        result = runner.invoke(app, ["--json", "migrations", "-m", str(tmp_path), "run"])
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert seen["url"] == "postgresql://env/db"

    def test_run_failure(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a failing migration exits 1 and names the file."""

        def migrate(url, path, echo=False):
            raise MigrationError(tmp_path / "2_bad.sql", "syntax error")

        monkeypatch.setattr(pipeline, "migrate", migrate)
        result = runner.invoke(
            app, ["--json", "migrations", "run", "--url", "postgresql://h/db"]
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "MigrationError"
        assert data["context"]["file"].endswith("2_bad.sql")


class TestGenerateCommands:
    """Test generate commands."""

    def test_generate_defaults(self, generate_calls) -> None:
        """Test that plain generate runs the provisioned workflow with defaults."""
        result = runner.invoke(app, ["--json", "generate"])
        assert result.exit_code == 0, f"Failed with: {result.stdout}"

        kind, args, kwargs = generate_calls[0]
        assert kind == "transient"
        assert args == (Path("migrations"), Path("queries"), Path("generated"))
        assert kwargs["is_async"] is True
        assert kwargs["runtime"] == ContainerRuntime.DOCKER

        data = json.loads(result.stdout)
        assert data["files"] == ["__init__.py", "types.py"]
        assert data["mode"] == "async"

    def test_generate_options(self, generate_calls, tmp_path: Path) -> None:
        """Test --podman, --sync and the path options."""
        result = runner.invoke(
            app,
            [
                "--json",
                "generate",
                "--podman",
                "--sync",
                "--migrations-path",
                str(tmp_path / "m"),
                "--queries-path",
                str(tmp_path / "q"),
                "--destination",
                str(tmp_path / "out"),
            ],
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"

        _, args, kwargs = generate_calls[0]
        assert args == (tmp_path / "m", tmp_path / "q", tmp_path / "out")
        assert kwargs["is_async"] is False
        assert kwargs["runtime"] == ContainerRuntime.PODMAN

    def test_generate_live(self, generate_calls, tmp_path: Path) -> None:
        """Test that live uses the given URL and the group's options."""
        result = runner.invoke(
            app,
            [
                "--json",
                "generate",
                "--sync",
                "--destination",
                str(tmp_path),
                "live",
                "--url",
                "postgresql://h/db",
            ],
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"

        kind, args, kwargs = generate_calls[0]
        assert kind == "live"
        assert args == ("postgresql://h/db", Path("queries"), tmp_path)
        assert kwargs["is_async"] is False
        assert len(generate_calls) == 1

    def test_generate_live_requires_url(self, generate_calls) -> None:
        """Test that live without a URL fails before generating."""
        result = runner.invoke(app, ["--json", "generate", "live"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "DatabaseConnectionError"
        assert generate_calls == []

    def test_generate_failure_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that errors are reported as JSON with exit code 1."""

        def failing(*args, **kwargs):
            raise ProvisioningError("Container runtime 'docker' was not found on PATH")

        monkeypatch.setattr(pipeline, "generate_transient", failing)
        result = runner.invoke(app, ["--json", "generate"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "ProvisioningError"
        assert "not found on PATH" in data["message"]

    def test_generate_failure_panel(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that errors are shown in a panel without --json."""

        def failing(*args, **kwargs):
            raise ProvisioningError("runtime missing")

        monkeypatch.setattr(pipeline, "generate_transient", failing)
        result = runner.invoke(app, ["generate"])
        assert result.exit_code == 1
        assert "Error" in result.stdout
        assert "runtime missing" in result.stdout
