"""Output-mode selection for ServiceResult.

``--json`` gets the model dump; ``--quiet`` a one-liner; everything else
goes through the Rich renderers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from worldvar.output.renderers import render_quiet, render_result

if TYPE_CHECKING:
    from worldvar.services.result import ServiceResult


def format_result(
    result: ServiceResult,
    *,
    json_output: bool = False,
    quiet: bool = False,
    verbose: bool = False,
) -> str:
    """Format a ServiceResult for display."""
    if json_output:
        return result.model_dump_json(indent=2)
    if quiet:
        return render_quiet(result)
    return render_result(result, verbose=verbose)
