"""CommandParser — turn a free-form text block into a CommandBatch.

The block is scanned line by line into statements. A statement is complete
once braces and brackets balance, no string literal is open, and the text
ends in ``)`` or ``);``. Two call syntaxes are accepted::

    _.set('MC.系统.状态', '运行中')      # namespace.method(...)
    ADD('MC.资源.金币', 50)              # legacy VERB(...)

INVARIANT: Parsing never raises on malformed input. Anything that cannot
become a command is recorded as a :class:`ParseDiagnostic` and skipped.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from worldvar.config.models import ParserConfig
from worldvar.domain.commands import (
    AppendCommand,
    ArithmeticCommand,
    BaseCommand,
    ClearCommand,
    CommandBatch,
    InitCommand,
    ParseDiagnostic,
    RemoveCommand,
    SetCommand,
    ToggleCommand,
)
from worldvar.domain.errors import ParseError
from worldvar.domain.paths import join_path
from worldvar.domain.types import CommandKind
from worldvar.domain.values import is_number

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_NAMESPACE_CALL_RE = re.compile(r"^([A-Za-z_$][\w$]*)\.(\w+)\s*\((.*)\)$", re.DOTALL)
_LEGACY_CALL_RE = re.compile(r"^([A-Za-z_]+)\s*\((.*)\)$", re.DOTALL)
_CALL_HEAD_RE = re.compile(r"^(?:[A-Za-z_$][\w$]*\.)?\w+\s*\(")


@dataclass
class _ScanState:
    """Lexical state carried across lines of one statement."""

    in_string: bool = False
    quote: str = ""
    braces: int = 0
    brackets: int = 0

    @property
    def balanced(self) -> bool:
        return not self.in_string and self.braces <= 0 and self.brackets <= 0

    @property
    def underflow(self) -> bool:
        return self.braces < 0 or self.brackets < 0


def _scan(text: str, state: _ScanState) -> int:
    """Advance *state* over *text*.

    Returns the index where an inline ``//`` comment starts (outside strings
    and JSON literals), or ``-1``.
    """
    i = 0
    while i < len(text):
        char = text[i]
        if state.in_string:
            if char == "\\":
                i += 2
                continue
            if char == state.quote:
                state.in_string = False
        elif char in "'\"":
            state.in_string = True
            state.quote = char
        elif char == "/" and text.startswith("//", i) and not state.braces and not state.brackets:
            return i
        elif char == "{":
            state.braces += 1
        elif char == "}":
            state.braces -= 1
        elif char == "[":
            state.brackets += 1
        elif char == "]":
            state.brackets -= 1
        i += 1
    return -1


def split_arguments(args: str) -> list[str]:
    """Split an argument list on top-level commas.

    Commas inside quotes, ``{}`` or ``[]`` do not split. Empty arguments
    are dropped.

    Examples:
        >>> split_arguments("'a.b', [1, 2], {'k': 'x,y'}")
        ["'a.b'", '[1, 2]', "{'k': 'x,y'}"]
    """
    parts: list[str] = []
    current: list[str] = []
    state = _ScanState()
    i = 0
    while i < len(args):
        char = args[i]
        if state.in_string:
            current.append(char)
            if char == "\\" and i + 1 < len(args):
                current.append(args[i + 1])
                i += 2
                continue
            if char == state.quote:
                state.in_string = False
        elif char in "'\"":
            state.in_string = True
            state.quote = char
            current.append(char)
        elif char == "," and not state.braces and not state.brackets:
            parts.append("".join(current).strip())
            current = []
        else:
            if char == "{":
                state.braces += 1
            elif char == "}":
                state.braces -= 1
            elif char == "[":
                state.brackets += 1
            elif char == "]":
                state.brackets -= 1
            current.append(char)
        i += 1
    parts.append("".join(current).strip())
    return [p for p in parts if p]


def _unquote(literal: str) -> str:
    quote = literal[0]
    if quote == '"':
        try:
            decoded = json.loads(literal)
        except ValueError:
            decoded = None
        if isinstance(decoded, str):
            return decoded
    body = literal[1:-1]
    return body.replace("\\" + quote, quote).replace("\\\\", "\\")


def _finite(number: Any, literal: str) -> int | float:
    try:
        finite = math.isfinite(number)
    except OverflowError:
        finite = False
    if not finite:
        msg = f"Number out of range: {literal[:40]}"
        raise ParseError(msg)
    return number


def _json_number(literal: str) -> int | float:
    number = float(literal) if any(c in literal for c in ".eE") else int(literal)
    try:
        return _finite(number, literal)
    except ParseError as exc:
        raise ValueError(exc.message) from exc


def _json_constant(name: str) -> Any:
    msg = f"{name} is not a JSON value"
    raise ValueError(msg)


def _loads(text: str) -> Any:
    return json.loads(
        text, parse_float=_json_number, parse_int=_json_number, parse_constant=_json_constant
    )


def parse_value(literal: str) -> Any:
    """Parse one argument literal into a tree value.

    ``null``/``true``/``false`` map to None/bool, numeric literals to int or
    float, quoted literals to text. ``{...}``/``[...]`` are parsed as strict
    JSON, then once more with single quotes normalised to double quotes;
    if both fail the literal is kept as text.

    Raises :class:`ParseError` for a numeric literal outside the float range.
    """
    text = literal.strip()
    if text == "null":
        return None
    if text == "true":
        return True
    if text == "false":
        return False
    if _NUMBER_RE.match(text):
        try:
            number = float(text) if "." in text else int(text)
        except ValueError as exc:
            msg = f"Number out of range: {text[:40]}"
            raise ParseError(msg) from exc
        return _finite(number, text)
    if len(text) >= 2 and text[0] in "'\"" and text[-1] == text[0]:
        return _unquote(text)
    if (text.startswith("{") and text.endswith("}")) or (text.startswith("[") and text.endswith("]")):
        try:
            return _loads(text)
        except ValueError:
            pass
        try:
            return _loads(text.replace("'", '"'))
        except ValueError:
            logger.debug("JSON literal kept as text: %.100s", text)
    return text


def _to_operand(value: Any, verb: str) -> float:
    operand: float | None = None
    try:
        if is_number(value):
            operand = float(value)
        elif isinstance(value, str):
            operand = float(value.strip())
    except (ValueError, OverflowError):
        operand = None
    if operand is None or not math.isfinite(operand):
        msg = f"{verb} needs a finite numeric operand, got {value!r:.60}"
        raise ParseError(msg)
    return operand


def _to_path(value: Any) -> str:
    if not isinstance(value, str):
        msg = f"Path must be text, got {value!r}"
        raise ParseError(msg)
    return value


def _check_arity(verb: str, args: list[Any], low: int, high: int) -> None:
    if not low <= len(args) <= high:
        expected = str(low) if low == high else f"{low}-{high}"
        msg = f"{verb} takes {expected} argument(s), got {len(args)}"
        raise ParseError(msg)


_Builder = Callable[[list[Any], dict[str, Any]], BaseCommand]


# ── namespace.method(...) ────────────────────────────────────────────


def _ns_set(args: list[Any], common: dict[str, Any]) -> BaseCommand:
    # set(path, value) or set(path, old, value): the last argument wins.
    _check_arity("set", args, 2, 3)
    return SetCommand(path=_to_path(args[0]), value=args[-1], **common)


def _ns_assign(args: list[Any], common: dict[str, Any]) -> BaseCommand:
    _check_arity("assign", args, 3, 3)
    key = args[1] if isinstance(args[1], str) else json.dumps(args[1], ensure_ascii=False)
    return SetCommand(path=join_path(_to_path(args[0]), key), value=args[2], **common)


def _ns_add(args: list[Any], common: dict[str, Any]) -> BaseCommand:
    _check_arity("add", args, 1, 2)
    delta = _to_operand(args[1], "add") if len(args) == 2 else 1.0
    return ArithmeticCommand(
        kind=CommandKind.ADD, path=_to_path(args[0]), operand=delta, **common
    )


def _ns_remove(args: list[Any], common: dict[str, Any]) -> BaseCommand:
    _check_arity("remove", args, 1, 2)
    path = _to_path(args[0])
    if len(args) == 2:
        return RemoveCommand(path=path, target=args[1], has_target=True, **common)
    return ClearCommand(path=path, **common)


_NAMESPACE_METHODS: dict[str, _Builder] = {
    "set": _ns_set,
    "assign": _ns_assign,
    "add": _ns_add,
    "remove": _ns_remove,
}


# ── legacy VERB(...) ─────────────────────────────────────────────────


def _legacy(verb: CommandKind) -> _Builder:
    def build(args: list[Any], common: dict[str, Any]) -> BaseCommand:
        match verb:
            case CommandKind.SET | CommandKind.INIT | CommandKind.APPEND:
                _check_arity(verb, args, 2, 2)
                model = {
                    CommandKind.SET: SetCommand,
                    CommandKind.INIT: InitCommand,
                    CommandKind.APPEND: AppendCommand,
                }[verb]
                return model(path=_to_path(args[0]), value=args[1], **common)
            case CommandKind.ADD | CommandKind.SUB | CommandKind.MUL | CommandKind.DIV:
                _check_arity(verb, args, 2, 2)
                return ArithmeticCommand(
                    kind=verb,
                    path=_to_path(args[0]),
                    operand=_to_operand(args[1], verb),
                    **common,
                )
            case CommandKind.REMOVE:
                _check_arity(verb, args, 1, 2)
                if len(args) == 2:
                    return RemoveCommand(
                        path=_to_path(args[0]), target=args[1], has_target=True, **common
                    )
                return RemoveCommand(path=_to_path(args[0]), **common)
            case CommandKind.CLEAR:
                _check_arity(verb, args, 1, 1)
                return ClearCommand(path=_to_path(args[0]), **common)
            case CommandKind.TOGGLE:
                _check_arity(verb, args, 1, 1)
                return ToggleCommand(path=_to_path(args[0]), **common)

    return build


_LEGACY_VERBS: dict[str, _Builder] = {str(kind): _legacy(kind) for kind in CommandKind}


class CommandParser:
    """Parse embedded mutation statements out of generator text.

    Usage::

        batch = CommandParser().parse(response_text)
        for command in batch.commands:
            ...
    """

    def __init__(self, config: ParserConfig | None = None) -> None:
        self._config = config or ParserConfig()
        tag = re.escape(self._config.sentinel_tag)
        self._block_re = re.compile(rf"<{tag}>(.*?)</{tag}>", re.IGNORECASE | re.DOTALL)

    def extract_block(self, text: str) -> str | None:
        """Return the content of the last sentinel block in *text*, if any."""
        if not text:
            return None
        matches = self._block_re.findall(text)
        if not matches:
            return None
        return matches[-1].strip()

    def parse(self, text: str) -> CommandBatch:
        """Parse *text* into a batch, honouring the sentinel block if present."""
        block = self.extract_block(text)
        if block is None:
            if self._config.require_tag:
                logger.debug("No <%s> block found", self._config.sentinel_tag)
                return CommandBatch()
            block = text or ""
        return self.parse_statements(block)

    def parse_statements(self, content: str) -> CommandBatch:
        """Parse a block that holds only statements and comments."""
        batch = CommandBatch()
        buffer: list[str] = []
        start_line = 0
        comment: str | None = None
        state = _ScanState()

        def flush(reason: str | None = None) -> None:
            nonlocal buffer, comment, state
            statement = "\n".join(buffer).strip()
            buffer = []
            state = _ScanState()
            pending, comment = comment, None
            if not statement:
                return
            batch.statement_count += 1
            try:
                if reason is not None:
                    raise ParseError(reason)
                batch.commands.append(self._parse_statement(statement, pending))
            except ParseError as exc:
                logger.debug("Skipping statement at line %d: %s", start_line, exc.message)
                batch.diagnostics.append(
                    ParseDiagnostic(fragment=statement, reason=exc.message, line=start_line)
                )

        for lineno, raw in enumerate(content.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            if line.startswith("//") and not state.in_string:
                if comment is None or not buffer:
                    comment = line[2:].strip() or None
                continue

            if buffer and _CALL_HEAD_RE.match(line):
                head_ok = _CALL_HEAD_RE.match(buffer[0]) is not None
                if not head_ok or state.balanced:
                    carried = comment
                    flush("Incomplete statement")
                    comment = carried

            if not buffer:
                start_line = lineno
            cut = _scan(line, state)
            if cut >= 0:
                inline = line[cut + 2 :].strip()
                line = line[:cut].rstrip()
                if inline and comment is None:
                    comment = inline
            if line:
                buffer.append(line)

            joined = "\n".join(buffer).rstrip()
            if state.balanced and joined.endswith((")", ");")):
                flush("Unbalanced delimiters" if state.underflow else None)

        if buffer:
            flush()

        batch.parsed_count = len(batch.commands)
        return batch

    def _parse_statement(self, statement: str, comment: str | None) -> BaseCommand:
        """Parse one complete statement. Raises :class:`ParseError`."""
        clean = statement.strip()
        if clean.endswith(";"):
            clean = clean[:-1].rstrip()

        builder: _Builder | None = None
        match = _NAMESPACE_CALL_RE.match(clean)
        if match:
            namespace, method, args_text = match.groups()
            if namespace not in self._config.namespaces:
                msg = f"Unknown namespace {namespace!r}"
                raise ParseError(msg)
            builder = _NAMESPACE_METHODS.get(method.lower())
            if builder is None:
                msg = f"Unknown method {namespace}.{method}"
                raise ParseError(msg)
        else:
            match = _LEGACY_CALL_RE.match(clean)
            if not match:
                msg = "Not a command statement"
                raise ParseError(msg)
            verb, args_text = match.groups()
            builder = _LEGACY_VERBS.get(verb.upper())
            if builder is None:
                msg = f"Unknown verb {verb!r}"
                raise ParseError(msg)

        args = [parse_value(arg) for arg in split_arguments(args_text)]
        if not args:
            msg = "Missing path argument"
            raise ParseError(msg)
        try:
            return builder(args, {"comment": comment, "source": statement})
        except ValidationError as exc:
            reason = exc.errors()[0].get("msg", str(exc))
            raise ParseError(reason) from exc
