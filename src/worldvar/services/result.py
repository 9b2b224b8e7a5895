"""ServiceResult and ServiceError — the contract every service returns.

Expected failures (integrity violations, unreachable authority, failed
pushes) are reported here instead of raised. The CLI and any embedding
application consume this type.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from worldvar.domain.errors import WorldVarError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: WorldVarError) -> ServiceError:
        """Build an error payload from a domain exception."""
        detail = {**exc.detail, "retryable": exc.retryable}
        return cls(code=exc.code, message=exc.message, detail=detail)


class ServiceResult(BaseModel):
    """Universal return type for service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"submit"``).
        data: Operation-specific payload.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @property
    def retryable(self) -> bool:
        """True when the failure is transient and the caller may retry."""
        return bool(self.error and self.error.detail.get("retryable"))
