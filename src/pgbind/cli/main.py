"""pgbind CLI - Main entry point."""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

import pgbind
from pgbind.cli.context import CLIContext

app = typer.Typer(
    name="pgbind",
    help="pgbind - typed Python bindings generated from annotated PostgreSQL queries",
    no_args_is_help=True,
)


def configure_logging(verbose: bool, json_output: bool) -> None:
    """Send log records to stderr through rich.

    JSON mode keeps only warnings unless verbose, so stdout stays parseable.
    """
    if verbose:
        level = logging.DEBUG
    elif json_output:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging",
        ),
    ] = False,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to the log",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(verbose, json_output)
    ctx.obj = CLIContext(verbose=verbose, json_output=json_output, echo=echo)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"pgbind v{pgbind.__version__}")


# Register command groups
from pgbind.cli.commands import generate, migrations  # noqa: E402

app.add_typer(migrations.app, name="migrations")
app.add_typer(generate.app, name="generate")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
