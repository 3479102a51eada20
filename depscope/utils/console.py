"""
Terminal output for depscope commands, built on Rich.

Everything a user is meant to read goes through this module: status
lines, tables, the upgrade confirmation prompt. Diagnostics belong to
:mod:`depscope.utils.logger`.

Colour is off when ``NO_COLOR`` or ``CI`` is set, or when stdout is not a
terminal. The console is created lazily and cached; call
:func:`reconfigure_console` after changing the environment.
"""

from __future__ import annotations

import os
import sys
import threading
from typing import Any, Callable, Dict, List, Optional

from rich.table import Table
from rich.theme import Theme
from rich.console import Console

DEPSCOPE_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "dim": "dim",
        "highlight": "bold magenta",
    }
)

#: Rich colour per severity / risk label.
LABEL_COLORS: Dict[str, str] = {
    "major": "red",
    "minor": "yellow",
    "patch": "green",
    "prerelease": "magenta",
    "up-to-date": "green",
    "unknown": "dim",
    "error": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "green",
    "critical": "bold red",
    "unchecked": "magenta",
}

RowStyler = Callable[[Dict[str, Any]], Optional[str]]

_console: Optional[Console] = None
_console_lock = threading.Lock()


def _should_use_color() -> bool:
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    try:
        return bool(isatty and isatty())
    except OSError:
        return False


def _get_console() -> Console:
    global _console

    with _console_lock:
        if _console is None:
            color = _should_use_color()
            _console = Console(theme=DEPSCOPE_THEME, no_color=not color, highlight=color)
        return _console


def reconfigure_console() -> None:
    """Forget the cached console; the next output re-reads the environment."""
    global _console
    with _console_lock:
        _console = None


def get_raw_console() -> Console:
    return _get_console()


def _status(style: str, prefix: str, message: str) -> None:
    _get_console().print(f"{prefix} {message}", style=style)


def print_success(message: str, *, prefix: str = "[OK]") -> None:
    _status("success", prefix, message)


def print_error(message: str, *, prefix: str = "[ERROR]") -> None:
    _status("error", prefix, message)


def print_warning(message: str, *, prefix: str = "[WARNING]") -> None:
    _status("warning", prefix, message)


def print_table(
    data: List[Dict[str, Any]],
    *,
    headers: Optional[List[str]] = None,
    title: Optional[str] = None,
    caption: Optional[str] = None,
    column_styles: Optional[Dict[str, Dict[str, Any]]] = None,
    row_styler: Optional[RowStyler] = None,
    show_row_lines: bool = False,
) -> None:
    """Print rows (dicts keyed by column header) as a table.

    Args:
        data: Rows; nothing is printed when empty.
        headers: Column order, defaulting to the first row's keys.
        title: Title above the table.
        caption: Caption below the table.
        column_styles: Header → Rich column options (``style``,
            ``justify``, ``no_wrap``, ``width``, ``overflow``).
        row_styler: Returns an optional style for each row.
        show_row_lines: Separate rows with rules.
    """
    if not data:
        return

    columns = headers or list(data[0])
    options = column_styles or {}

    table = Table(
        title=title,
        caption=caption,
        header_style="bold",
        show_lines=show_row_lines,
    )
    for column in columns:
        opts = {"justify": "default", "no_wrap": False, "overflow": "fold"}
        opts.update(options.get(column, {}))
        table.add_column(column, **opts)

    for row in data:
        cells = [str(row.get(column, "")) for column in columns]
        table.add_row(*cells, style=row_styler(row) if row_styler else None)

    _get_console().print(table)


_ANSWERS = {"y": True, "yes": True, "n": False, "no": False}


def confirm(message: str, *, default: bool = False) -> bool:
    """Ask a yes/no question on the terminal.

    Anything other than y/yes/n/no (including an empty answer) means
    ``default``. Ctrl+C and end of input mean no.
    """
    console = _get_console()
    choices = "[Y/n]" if default else "[y/N]"
    console.print(f"{message} {choices}: ", end="", style="info", markup=False)

    try:
        answer = input()
    except (KeyboardInterrupt, EOFError):
        console.print()
        return False

    return _ANSWERS.get(answer.strip().lower(), default)


def colorize_label(label: str) -> str:
    """Wrap a severity or risk label in its Rich colour markup."""
    color = LABEL_COLORS.get(label.lower())
    if color is None:
        return label
    return f"[{color}]{label}[/{color}]"
