"""Rich Console factory and theme for worldvar output.

Consoles render into a StringIO buffer so renderers can return plain
strings. Outside a terminal (tests, pipes) Rich drops color codes itself.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

WV_THEME = Theme(
    {
        "wv.ok": "bold green",
        "wv.error": "bold red",
        "wv.warning": "bold yellow",
        "wv.op": "bold cyan",
        "wv.key": "dim",
        "wv.path": "bold blue",
        "wv.kind": "magenta",
        "wv.status.reconciled": "green",
        "wv.status.unconfirmed": "yellow",
        "wv.status.rolled_back": "red",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=WV_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Rich style for a cycle status; empty for unknown statuses."""
    style = f"wv.status.{status}"
    return style if style in WV_THEME.styles else ""
