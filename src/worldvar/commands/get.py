"""Command: read a value from the store."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from worldvar.commands._base import WorldVarCommand
from worldvar.domain.types import Scope

if TYPE_CHECKING:
    from worldvar.commands._context import AppContext
    from worldvar.services.reconcile import ReconciliationEngine
    from worldvar.services.result import ServiceResult


@click.command(
    cls=WorldVarCommand,
    examples="""\
  worldvar get MC.gold
  worldvar -q get MC.weather
  worldvar --json get""",
)
@click.argument("path", required=False, default="")
@click.option(
    "--scope",
    type=click.Choice([s.value for s in Scope]),
    default=None,
    help="Store scope to read (default: [store].scope).",
)
@click.pass_obj
def get(app: AppContext, path: str, scope: str | None) -> None:
    """Print the value at PATH, or the whole tree when PATH is omitted."""
    from worldvar.domain.errors import PathError
    from worldvar.domain.state import Selector
    from worldvar.services.result import ServiceError, ServiceResult

    async def read(engine: ReconciliationEngine) -> ServiceResult:
        if not path:
            return ServiceResult(ok=True, op="get", data={"path": "", "value": engine.cache.tree()})
        try:
            found = engine.cache.contains(path)
        except PathError as exc:
            return ServiceResult(ok=False, op="get", error=ServiceError.from_exception(exc))
        if not found:
            return ServiceResult(
                ok=False,
                op="get",
                error=ServiceError(code="NOT_FOUND", message=f"No value at {path!r}"),
            )
        return ServiceResult(ok=True, op="get", data={"path": path, "value": engine.get(path)})

    selector = Selector(scope=Scope(scope)) if scope else None
    app.emit(app.run(read, selector=selector))
