"""Typed command AST produced by the parser and consumed by the executor.

Commands form a discriminated union on ``kind``. The executor never looks at
the raw statement text again; ``source`` is carried for diagnostics only.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, JsonValue, field_validator

from worldvar.domain.errors import PathError
from worldvar.domain.paths import split_path
from worldvar.domain.types import CommandKind


class BaseCommand(BaseModel):
    """Fields shared by every command variant."""

    model_config = {"frozen": True}

    kind: CommandKind
    path: str
    comment: str | None = None
    source: str = ""

    @field_validator("path")
    @classmethod
    def _path_not_empty(cls, value: str) -> str:
        try:
            return ".".join(split_path(value))
        except PathError as exc:
            raise ValueError(exc.message) from exc

    @property
    def segments(self) -> tuple[str, ...]:
        return split_path(self.path)


class SetCommand(BaseCommand):
    """Overwrite the value at ``path``."""

    kind: Literal[CommandKind.SET] = CommandKind.SET
    value: JsonValue = None


class InitCommand(BaseCommand):
    """Write ``value`` at ``path``; same effect as SET."""

    kind: Literal[CommandKind.INIT] = CommandKind.INIT
    value: JsonValue = None


class ArithmeticCommand(BaseCommand):
    """ADD / SUB / MUL / DIV a numeric operand into the value at ``path``."""

    kind: Literal[CommandKind.ADD, CommandKind.SUB, CommandKind.MUL, CommandKind.DIV]
    operand: float = Field(allow_inf_nan=False)


class AppendCommand(BaseCommand):
    """Push onto an array or concatenate onto text."""

    kind: Literal[CommandKind.APPEND] = CommandKind.APPEND
    value: JsonValue = None


class RemoveCommand(BaseCommand):
    """Filter ``target`` out of an array; without a target, behaves as CLEAR."""

    kind: Literal[CommandKind.REMOVE] = CommandKind.REMOVE
    target: JsonValue = None
    has_target: bool = False


class ClearCommand(BaseCommand):
    """Reset the value at ``path`` to the empty value of its kind."""

    kind: Literal[CommandKind.CLEAR] = CommandKind.CLEAR


class ToggleCommand(BaseCommand):
    """Flip a boolean."""

    kind: Literal[CommandKind.TOGGLE] = CommandKind.TOGGLE


Command = Annotated[
    SetCommand
    | InitCommand
    | ArithmeticCommand
    | AppendCommand
    | RemoveCommand
    | ClearCommand
    | ToggleCommand,
    Field(discriminator="kind"),
]


class ParseDiagnostic(BaseModel):
    """A statement the parser could not turn into a command."""

    model_config = {"frozen": True}

    fragment: str
    reason: str
    line: int = 0


class CommandBatch(BaseModel):
    """Ordered commands plus parse diagnostics. Diagnostics are never fatal."""

    commands: list[Command] = Field(default_factory=list)
    statement_count: int = 0
    parsed_count: int = 0
    diagnostics: list[ParseDiagnostic] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.commands


class CommandError(BaseModel):
    """Typed failure attached to an :class:`ExecutionResult`."""

    model_config = {"frozen": True}

    code: str
    message: str


class ExecutionResult(BaseModel):
    """Outcome of applying one command to a working tree."""

    model_config = {"frozen": True}

    success: bool
    command: Command
    old_value: Any = None
    new_value: Any = None
    error: CommandError | None = None
