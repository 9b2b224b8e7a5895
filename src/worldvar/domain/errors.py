"""Error taxonomy for parsing, execution, and reconciliation.

Each error carries a stable ``code`` so service results can surface it
without leaking exception types across the service boundary.
"""

from __future__ import annotations

from typing import Any


class WorldVarError(Exception):
    """Base class for all worldvar errors."""

    code = "WORLDVAR_ERROR"
    retryable = False

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ParseError(WorldVarError):
    """Malformed statement, unknown verb, or unbalanced delimiters."""

    code = "PARSE_ERROR"


class TypeMismatchError(WorldVarError):
    """Operator applied to an incompatible current value or operand."""

    code = "TYPE_MISMATCH"


class PathError(WorldVarError):
    """Path cannot be addressed: scalar intermediate or metadata target."""

    code = "PATH_ERROR"


class IntegrityViolation(WorldVarError):
    """The authority's post-commit tree failed the anti-corruption guard."""

    code = "INTEGRITY_VIOLATION"
    retryable = True


class AvailabilityTimeout(WorldVarError):
    """The authority never became reachable within the bound."""

    code = "AVAILABILITY_TIMEOUT"
    retryable = True


class AuthorityError(WorldVarError):
    """The authority rejected or failed a read or write."""

    code = "AUTHORITY_ERROR"
    retryable = True
