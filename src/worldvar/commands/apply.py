"""Command: parse text and reconcile its commands into the store."""

from __future__ import annotations

from typing import TYPE_CHECKING, TextIO

import click

from worldvar.commands._base import WorldVarCommand
from worldvar.domain.types import Scope

if TYPE_CHECKING:
    from worldvar.commands._context import AppContext


@click.command(
    cls=WorldVarCommand,
    examples="""\
  worldvar apply reply.txt
  worldvar apply --scope global reply.txt
  echo "_.set('MC.weather', 'rain')" | worldvar --json apply""",
)
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--scope",
    type=click.Choice([s.value for s in Scope]),
    default=None,
    help="Store scope to write (default: [store].scope).",
)
@click.pass_obj
def apply(app: AppContext, source: TextIO, scope: str | None) -> None:
    """Apply the commands in SOURCE (default: stdin) to the store."""
    from worldvar.domain.state import Selector

    text = source.read()
    selector = Selector(scope=Scope(scope)) if scope else None
    app.emit(app.run(lambda engine: engine.apply_text(text), selector=selector))
