"""User-facing output: classified, colored status lines on the terminal."""

from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

_theme = Theme(
    {
        "status.info": "blue",
        "status.success": "green",
        "status.warning": "yellow",
        "status.error": "bold red",
        "status.hint": "cyan",
    }
)

console = Console(theme=_theme, highlight=False)
error_console = Console(theme=_theme, stderr=True, highlight=False)


def print_status(message: str, prefix: Optional[str] = None) -> None:
    """Print an [INFO] line to stdout.

    Status messages are always visible and describe progress of the
    current operation (e.g. "Creating Podman network").
    """
    label = prefix or "[INFO]"
    console.print(f"[status.info]{escape(label)}[/] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[status.success]\\[SUCCESS][/] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[status.warning]\\[WARNING][/] {escape(message)}")


def print_error(message: str) -> None:
    """Print an [ERROR] line to stderr."""
    error_console.print(f"[status.error]\\[ERROR][/] {escape(message)}")


def print_remediation(lines: Iterable[str]) -> None:
    """Print indented remediation hints after an error."""
    for line in lines:
        error_console.print(f"  [status.hint]{escape(line)}[/]")


def print_details(lines: Iterable[str], indent: str = "  - ") -> None:
    for line in lines:
        console.print(f"{indent}{escape(line)}")
