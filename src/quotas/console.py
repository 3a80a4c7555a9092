"""Terminal output for the quotas CLI.

Status lines, tables and highlighted YAML/JSON go to stdout through
``console``; errors and validation violations go to stderr through
``err_console`` so that ``quotas render apply --stdout`` stays pipeable.
Anything that originates in a values file is passed through ``escape``
before it reaches Rich markup.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping, Sequence

    from quotas.models import RenderedQuota
    from quotas.validation import Violation

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.spinner import Spinner
from rich.syntax import Syntax
from rich.table import Table
from rich.theme import Theme

QUOTAS_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "bold red",
        "heading": "bold magenta",
        "muted": "dim",
        "namespace": "bold blue",
        "quota": "bold green",
        "env": "yellow",
        "path": "dim cyan",
        "command": "bold yellow",
    }
)


console = Console(theme=QUOTAS_THEME)
err_console = Console(theme=QUOTAS_THEME, stderr=True)


def _status_line(target: Console, style: str, prefix: str, message: str) -> None:
    target.print(f"[{style}]{prefix}[/{style}] {message}")


def print_success(message: str, prefix: str = "✓") -> None:
    _status_line(console, "success", prefix, message)


def print_error(message: str, prefix: str = "✗") -> None:
    """Errors always go to stderr."""
    _status_line(err_console, "error", prefix, message)


def print_warning(message: str, prefix: str = "⚠") -> None:
    _status_line(console, "warning", prefix, message)


def print_info(message: str, prefix: str = "•") -> None:
    _status_line(console, "info", prefix, message)


def print_header(title: str) -> None:
    console.print(f"\n[heading]{title}[/heading]")
    console.print(f"[muted]{'─' * len(title)}[/muted]")


def print_key_value(key: str, value: str, indent: int = 0) -> None:
    console.print(f"{'  ' * indent}[muted]{key}:[/muted] {value}")


def print_hint(message: str) -> None:
    console.print(f"  [muted]Hint:[/muted] [dim]{message}[/dim]")


def format_env(name: str) -> str:
    return f"[env]{escape(name)}[/env]"


def format_path(path: str) -> str:
    return f"[path]{escape(path)}[/path]"


def format_command(cmd: str) -> str:
    return f"[command]{escape(cmd)}[/command]"


def format_limits(limits: Mapping[str, str]) -> str:
    """``pods=30, requests.cpu=4`` in declaration order."""
    return ", ".join(f"{escape(k)}={escape(v)}" for k, v in limits.items())


def create_table(title: str | None = None, show_header: bool = True) -> Table:
    return Table(
        title=title,
        show_header=show_header,
        header_style="bold",
        border_style="muted",
        title_style="heading",
    )


def print_quota_table(quotas: Sequence[RenderedQuota]) -> None:
    """One row per rendered quota, numbered by declaration index."""
    table = create_table()
    table.add_column("#", justify="right", style="muted")
    table.add_column("Namespace", style="namespace")
    table.add_column("ResourceQuota", style="quota")
    table.add_column("Hard limits")

    for index, quota in enumerate(quotas):
        table.add_row(
            str(index),
            escape(quota.target_namespace),
            escape(quota.derived_name),
            format_limits(quota.limits),
        )

    console.print(table)


def print_env_list(envs: Sequence[tuple[str, str, bool]]) -> None:
    """Rows of (environment, values file, whether the file exists)."""
    table = create_table()
    table.add_column("Environment", style="env")
    table.add_column("Values file", style="path")
    table.add_column("Found", justify="center", width=6)

    for env_name, values_file, found in envs:
        table.add_row(
            escape(env_name),
            escape(values_file),
            "[success]✓[/success]" if found else "[error]✗[/error]",
        )

    console.print(table)


def print_stored_list(stored: Sequence[tuple[str, str | None, str]]) -> None:
    """Rows of (environment, git ref, location) for stored baselines."""
    table = create_table()
    table.add_column("Environment", style="env")
    table.add_column("Git ref")
    table.add_column("Location", style="path")

    for env_name, git_ref, location in stored:
        table.add_row(
            escape(env_name),
            escape(git_ref) if git_ref else "[muted]-[/muted]",
            escape(location),
        )

    console.print(table)


def print_violations(violations: Sequence[Violation]) -> None:
    for violation in violations:
        err_console.print(
            f"  [muted]•[/muted] [bold]{escape(violation.field)}[/bold]: "
            f"{escape(violation.message)}"
        )


def _print_syntax(content: str, lexer: str, title: str | None) -> None:
    syntax = Syntax(content, lexer, theme="monokai", line_numbers=False)
    console.print(Panel(syntax, title=title, border_style="muted") if title else syntax)


def print_yaml(content: str, title: str | None = None) -> None:
    _print_syntax(content, "yaml", title)


def print_json(content: str, title: str | None = None) -> None:
    _print_syntax(content, "json", title)


_DIFF_STYLES = (("+++", None), ("---", None), ("+", "green"), ("-", "red"), ("@@", "cyan"))


def print_diff(diff_lines: Sequence[str]) -> None:
    """Unified diff lines, additions green and removals red.

    File headers (``+++``/``---``), including the NEW/REMOVED markers for
    whole manifests, stay unstyled.
    """
    for line in diff_lines:
        text = escape(line.rstrip("\n"))
        style = next((s for marker, s in _DIFF_STYLES if line.startswith(marker)), None)
        console.print(f"[{style}]{text}[/{style}]" if style else text)


def print_summary(success: int, errors: int) -> None:
    console.print()
    if errors == 0:
        console.print(f"[success]✓ All done![/success] {success} successful")
        return
    console.print(
        f"[warning]Finished with errors[/warning]: "
        f"[success]{success} successful[/success], "
        f"[error]{errors} errors[/error]"
    )


class StatusUpdater:
    """Handle yielded by ``status`` to change the spinner text."""

    def __init__(self, initial_message: str):
        self.message = initial_message
        self.spinner = Spinner("dots", text=f" {initial_message}", style="cyan")

    def update(self, message: str) -> None:
        self.message = message
        self.spinner.update(text=f" {message}")


@contextmanager
def status(message: str) -> Generator[StatusUpdater]:
    """Show a transient spinner while the block runs.

        with status("Rendering dev...") as s:
            ...
            s.update("Writing dev...")
    """
    updater = StatusUpdater(message)
    with Live(updater.spinner, console=console, refresh_per_second=10, transient=True):
        yield updater
