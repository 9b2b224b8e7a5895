"""CommandExecutor — apply typed commands to a working tree.

Each command either succeeds and mutates the tree once, or fails and leaves
the tree exactly as it was. A failed command never stops the rest of a
batch; the failure travels back as an :class:`ExecutionResult` carrying a
:class:`CommandError`.
"""

from __future__ import annotations

import logging
import math
import operator
from collections.abc import Callable, Iterable
from typing import Any

from worldvar.domain.commands import (
    AppendCommand,
    ArithmeticCommand,
    BaseCommand,
    ClearCommand,
    CommandError,
    ExecutionResult,
    InitCommand,
    RemoveCommand,
    SetCommand,
    ToggleCommand,
)
from worldvar.domain.errors import PathError, TypeMismatchError, WorldVarError
from worldvar.domain.paths import MISSING, get_at, set_at
from worldvar.domain.types import CommandKind
from worldvar.domain.values import (
    ValueKind,
    VariableTree,
    clone_value,
    cleared,
    is_metadata_key,
    is_number,
    kind_of,
    normalize_number,
    values_equal,
)

logger = logging.getLogger(__name__)

_ARITHMETIC: dict[CommandKind, Callable[[float, float], float]] = {
    CommandKind.ADD: operator.add,
    CommandKind.SUB: operator.sub,
    CommandKind.MUL: operator.mul,
    CommandKind.DIV: operator.truediv,
}


def _present(value: Any) -> Any:
    return None if value is MISSING else value


class CommandExecutor:
    """Stateless interpreter for the command AST."""

    def execute(self, tree: VariableTree, command: BaseCommand) -> ExecutionResult:
        """Apply *command* to *tree* in place.

        Returns a successful result with old and new values, or a failed one
        whose ``error.code`` is the domain error code.
        """
        segments = command.segments
        current = get_at(tree, segments)
        try:
            new_value = self._compute(command, current)
            set_at(tree, segments, clone_value(new_value))
        except WorldVarError as exc:
            logger.debug("%s %s failed: %s", command.kind, command.path, exc.message)
            return ExecutionResult(
                success=False,
                command=command,
                old_value=_present(current),
                error=CommandError(code=exc.code, message=exc.message),
            )

        return ExecutionResult(
            success=True,
            command=command,
            old_value=_present(current),
            new_value=new_value,
        )

    def execute_all(
        self, tree: VariableTree, commands: Iterable[BaseCommand]
    ) -> list[ExecutionResult]:
        """Run *commands* in order against the same tree."""
        return [self.execute(tree, command) for command in commands]

    def _compute(self, command: BaseCommand, current: Any) -> Any:
        """Return the value to store at the command's path."""
        match command:
            case SetCommand(value=value) | InitCommand(value=value):
                return value
            case ArithmeticCommand():
                return self._arithmetic(command, current)
            case AppendCommand(value=value):
                return self._append(current, value)
            case RemoveCommand(has_target=True, target=target):
                if current is MISSING or kind_of(current) is not ValueKind.ARRAY:
                    raise TypeMismatchError(
                        f"REMOVE needs an array at {command.path!r}", path=command.path
                    )
                return [item for item in current if not values_equal(item, target)]
            case RemoveCommand() | ClearCommand():
                return cleared(_present(current))
            case ToggleCommand():
                if not isinstance(current, bool):
                    raise TypeMismatchError(
                        f"TOGGLE needs a bool at {command.path!r}, found {_describe(current)}",
                        path=command.path,
                    )
                return not current
            case _:
                msg = f"Unsupported command {command.kind}"
                raise TypeMismatchError(msg, path=command.path)

    @staticmethod
    def _arithmetic(command: ArithmeticCommand, current: Any) -> int | float:
        if is_metadata_key(command.segments[-1]):
            raise PathError(
                f"{command.kind} cannot target metadata key {command.path!r}",
                path=command.path,
            )
        if not is_number(current):
            raise TypeMismatchError(
                f"{command.kind} needs a number at {command.path!r}, found {_describe(current)}",
                path=command.path,
            )
        if command.kind == CommandKind.DIV and command.operand == 0:
            raise TypeMismatchError("Division by zero", path=command.path)
        try:
            result = _ARITHMETIC[command.kind](current, command.operand)
            finite = math.isfinite(result)
        except ArithmeticError as exc:
            raise TypeMismatchError(
                f"{command.kind} at {command.path!r} is out of range: {exc}", path=command.path
            ) from exc
        if not finite:
            raise TypeMismatchError(
                f"{command.kind} at {command.path!r} produced {result}", path=command.path
            )
        return normalize_number(result)

    @staticmethod
    def _append(current: Any, value: Any) -> Any:
        if isinstance(current, list):
            return [*current, value]
        if isinstance(current, str):
            if not isinstance(value, str):
                raise TypeMismatchError(
                    f"APPEND to text needs text, got {_describe(value)}"
                )
            return current + value
        raise TypeMismatchError(f"APPEND needs an array or text, found {_describe(current)}")


def _describe(value: Any) -> str:
    if value is MISSING:
        return "nothing"
    try:
        return str(kind_of(value))
    except TypeError:
        return type(value).__name__
