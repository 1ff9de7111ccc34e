"""Output formatting for CLI commands."""

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pgbind.core.types import MigrationFile
from pgbind.exceptions import PgBindError

console = Console()


class OutputFormatter:
    """Prints command results as rich tables or, in JSON mode, as one JSON object."""

    def __init__(self, json_mode: bool = False) -> None:
        self.json_mode = json_mode

    def print_migrations(self, applied: Sequence[MigrationFile]) -> None:
        """Report the migrations a run applied, in the order they ran."""
        message = f"Applied {len(applied)} migration(s)"
        if self.json_mode:
            self._print_json(message, {"migrations": [m.path.name for m in applied]})
            return

        console.print(f"✓ {message}", style="green")
        if applied:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Timestamp", justify="right")
            table.add_column("Name")
            table.add_column("File", style="dim")
            for m in applied:
                table.add_row(str(m.timestamp), m.name, m.path.name)
            console.print(table)

    def print_generated(self, destination: Path, written: Sequence[Path], is_async: bool) -> None:
        """Report the files of a generated package."""
        mode = "async" if is_async else "sync"
        message = f"Generated {len(written)} file(s) in {destination}"
        if self.json_mode:
            self._print_json(
                message,
                {
                    "destination": str(destination),
                    "files": [p.name for p in written],
                    "mode": mode,
                },
            )
            return

        console.print(f"✓ {message} ({mode} bindings)", style="green")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Module")
        table.add_column("Path", style="dim")
        for path in written:
            table.add_row(path.stem, str(path))
        console.print(table)

    def print_created(self, path: Path) -> None:
        """Report a newly written migration file."""
        message = f"Created migration {path.name}"
        if self.json_mode:
            self._print_json(message, {"path": str(path)})
        else:
            console.print(f"✓ {message}", style="green")
            console.print(f"  {path}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print an error; pgbind errors also show their context."""
        if self.json_mode:
            if isinstance(error, PgBindError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": type(error).__name__, "message": str(error)}, indent=2))
            return

        error_text = str(error)
        if isinstance(error, PgBindError) and error.context:
            context = "\n".join(f"{k}: {v}" for k, v in error.context.items() if v is not None)
            error_text = f"{error_text}\n\n{context}"
        console.print(Panel(Text(error_text), title="[red]Error[/red]", border_style="red"))

    @staticmethod
    def _print_json(message: str, details: dict[str, Any]) -> None:
        print(json.dumps({"success": True, "message": message, **details}, default=str, indent=2))
