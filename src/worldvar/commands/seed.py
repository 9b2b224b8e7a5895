"""Command: load a JSON document into the store."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import click

from worldvar.commands._base import WorldVarCommand

if TYPE_CHECKING:
    from worldvar.commands._context import AppContext
    from worldvar.services.reconcile import ReconciliationEngine
    from worldvar.services.result import ServiceResult


@click.command(
    cls=WorldVarCommand,
    examples="""\
  worldvar seed world.json
  worldvar --json seed world.json""",
)
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def seed(app: AppContext, source: str) -> None:
    """Write each top-level key of the JSON object in SOURCE to the store."""
    from worldvar.services.result import ServiceError, ServiceResult

    try:
        with open(source, encoding="utf-8") as fh:
            document = json.load(fh)
    except ValueError as exc:
        app.emit(
            ServiceResult(
                ok=False,
                op="seed",
                error=ServiceError(code="INVALID_JSON", message=f"{source}: {exc}"),
            )
        )
        return
    if not isinstance(document, dict):
        app.emit(
            ServiceResult(
                ok=False,
                op="seed",
                error=ServiceError(code="INVALID_JSON", message="Seed file must hold an object"),
            )
        )
        return

    async def write(engine: ReconciliationEngine) -> ServiceResult:
        result = await engine.set_variables(document, reason="seed")
        return result.model_copy(update={"op": "seed"})

    app.emit(app.run(write))
