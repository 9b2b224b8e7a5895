"""Command: parse text into commands without touching the store."""

from __future__ import annotations

from typing import TYPE_CHECKING, TextIO

import click

from worldvar.commands._base import WorldVarCommand

if TYPE_CHECKING:
    from worldvar.commands._context import AppContext


@click.command(
    cls=WorldVarCommand,
    examples="""\
  worldvar parse reply.txt
  echo "ADD('MC.gold', 5)" | worldvar parse
  worldvar --json parse reply.txt""",
)
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_obj
def parse(app: AppContext, source: TextIO) -> None:
    """Show the commands and diagnostics found in SOURCE (default: stdin)."""
    from worldvar.services.parser import CommandParser
    from worldvar.services.result import ServiceResult

    batch = CommandParser(app.settings.parser).parse(source.read())
    app.emit(
        ServiceResult(
            ok=True,
            op="parse",
            data={
                "statement_count": batch.statement_count,
                "parsed_count": batch.parsed_count,
                "commands": [
                    cmd.model_dump(mode="json", exclude={"source"}) for cmd in batch.commands
                ],
                "diagnostics": [d.model_dump() for d in batch.diagnostics],
            },
        )
    )
