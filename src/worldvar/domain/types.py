"""Classification enums shared across the domain and service layers."""

from __future__ import annotations

from enum import StrEnum


class CommandKind(StrEnum):
    """Mutation verbs understood by the executor."""

    SET = "SET"
    INIT = "INIT"
    ADD = "ADD"
    SUB = "SUB"
    MUL = "MUL"
    DIV = "DIV"
    APPEND = "APPEND"
    REMOVE = "REMOVE"
    CLEAR = "CLEAR"
    TOGGLE = "TOGGLE"


class CyclePhase(StrEnum):
    """Reconciliation cycle state machine."""

    IDLE = "idle"
    COMMITTING = "committing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"
    UNCONFIRMED = "unconfirmed"


class AvailabilityStatus(StrEnum):
    """Reachability of the state authority."""

    UNKNOWN = "unknown"
    WAITING = "waiting"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class Scope(StrEnum):
    """Authority storage scopes a selector can address."""

    MESSAGE = "message"
    CHAT = "chat"
    CHARACTER = "character"
    GLOBAL = "global"
