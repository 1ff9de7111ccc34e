"""CLI context shared between the global callback and the commands."""

from dataclasses import dataclass, field
from pathlib import Path

from pgbind.config import DATABASE_URL_ENV, ContainerRuntime, get_database_url
from pgbind.exceptions import DatabaseConnectionError


@dataclass
class GenerateOptions:
    """Options of the ``generate`` group, read by its ``live`` subcommand."""

    migrations_path: Path = Path("migrations")
    queries_path: Path = Path("queries")
    destination: Path = Path("generated")
    runtime: ContainerRuntime = ContainerRuntime.DOCKER
    is_async: bool = True


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Holds output preferences and the options of whichever command group
    is being invoked.
    """

    verbose: bool
    json_output: bool
    echo: bool = False
    migrations_path: Path = Path("migrations")
    generate: GenerateOptions = field(default_factory=GenerateOptions)

    def require_url(self, url: str | None) -> str:
        """Resolve the database URL from the option or the environment.

        Raises:
            DatabaseConnectionError: If neither provides a URL
        """
        resolved = get_database_url(url)
        if not resolved:
            raise DatabaseConnectionError(
                f"No database URL given. Pass --url or set {DATABASE_URL_ENV}.",
                {"env": DATABASE_URL_ENV},
            )
        return resolved
