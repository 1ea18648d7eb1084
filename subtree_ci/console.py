"""Console output shared by the CI helpers."""

from rich.console import Console
from rich.markup import escape

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


def log_info(message: str) -> None:
    """Print an informational line prefixed with ``ci:``."""
    console.print(f"[dim]ci:[/dim] {escape(message)}")


def log_error(message: str) -> None:
    """Print an error line prefixed with ``ci: error:`` on stderr."""
    err_console.print(f"[red]ci: error:[/red] {escape(message)}")
