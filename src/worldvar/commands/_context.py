"""AppContext — shared Click context for all commands.

Created once by the root CLI group and handed to subcommands via
``@click.pass_obj``. Builds the engine on demand, so ``--help`` and
``--version`` never open the store, and centralises result emission
(stdout/stderr routing and exit codes).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import click

from worldvar.config.models import WorldVarConfig
from worldvar.output.formatters import format_result

if TYPE_CHECKING:
    from worldvar.config.settings import WorldVarSettings
    from worldvar.domain.state import Selector
    from worldvar.plugins.event_bus import EventBus
    from worldvar.services.reconcile import ReconciliationEngine
    from worldvar.services.result import ServiceResult

EngineOperation = Callable[["ReconciliationEngine"], Awaitable["ServiceResult"]]


class AppContext:
    """Shared context flowing through Click's command hierarchy."""

    def __init__(self, settings: WorldVarSettings) -> None:
        self.settings = settings

        from worldvar.config.logging import configure_logging

        configure_logging(
            verbose=settings.verbose, log_json=settings.log_json, quiet=settings.quiet
        )

        if settings.verbose:
            from worldvar.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def config(self) -> WorldVarConfig:
        s = self.settings
        return WorldVarConfig(
            parser=s.parser,
            sync=s.sync,
            availability=s.availability,
            store=s.store,
            plugins=s.plugins,
        )

    def _event_bus(self) -> EventBus:
        from worldvar.plugins import EventBus, PluginManager

        pm = PluginManager()
        local_dir = self.settings.project_root / self.settings.plugins.local_dir
        pm.discover_and_load(local_dir=local_dir, settings=self.settings.plugins.settings)
        return EventBus(pm, sync=self.settings.sync_dispatch)

    def run(self, operation: EngineOperation, *, selector: Selector | None = None) -> ServiceResult:
        """Open the store, initialise an engine, and run *operation* on it.

        An initialisation failure is returned instead of running *operation*.
        """
        from worldvar.infrastructure.database import SqlAuthority, init_database
        from worldvar.services.reconcile import ReconciliationEngine

        db_engine = init_database(self.settings.store_path)
        event_bus = self._event_bus()

        async def main() -> ServiceResult:
            engine = ReconciliationEngine(
                SqlAuthority(db_engine),
                config=self.config,
                selector=selector,
                event_bus=event_bus,
            )
            try:
                init = await engine.initialize()
                if not init.ok:
                    return init
                return await operation(engine)
            finally:
                await engine.close()

        try:
            return asyncio.run(main())
        finally:
            event_bus.shutdown()
            db_engine.dispose()

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: stdout. Warnings go to stderr so piped output stays clean.
        * Failure: stderr, then exit code 1.
        """
        output = format_result(
            result,
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        if result.ok:
            click.echo(output)
            if not self.settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
