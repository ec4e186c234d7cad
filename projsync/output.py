"""Console output helpers built on rich."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-facing output for the CLI and the sync engine."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit machine readable JSON instead of text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def info(self, message: str) -> None:
        """Print an informational message (suppressed in quiet/json mode)."""
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        """Print a success message."""
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def warning(self, message: str) -> None:
        """Print a warning to stderr."""
        self.err_console.print(f"[yellow]Warning:[/yellow] {message}", highlight=False)

    def error(self, message: str) -> None:
        """Print an error to stderr."""
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print(self, message: str = "") -> None:
        """Print a plain line unless quiet."""
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def output_json(self, data: Any) -> None:
        """Print data as indented JSON."""
        print(json.dumps(data, indent=2))

    def output_table(
        self, title: str, columns: list[str], rows: list[list[str]]
    ) -> None:
        """Print rows as a rich table."""
        if self.quiet:
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)
