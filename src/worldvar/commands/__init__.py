"""Subcommand modules for worldvar.

register_commands() imports lazily so ``worldvar --help`` stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register every standalone command on the root group."""
    from worldvar.commands.apply import apply
    from worldvar.commands.get import get
    from worldvar.commands.parse import parse
    from worldvar.commands.seed import seed

    cli.add_command(parse)
    cli.add_command(apply)
    cli.add_command(get)
    cli.add_command(seed)
