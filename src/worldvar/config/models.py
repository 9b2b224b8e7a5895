"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults are baked here, ``worldvar.toml`` only holds
overrides. A fresh project needs no config file at all.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from worldvar.domain.types import Scope


class ParserConfig(BaseModel):
    """[parser] section."""

    model_config = {"frozen": True}

    namespaces: list[str] = Field(default_factory=lambda: ["_"])
    sentinel_tag: str = "UpdateVariable"
    require_tag: bool = False


class SyncConfig(BaseModel):
    """[sync] section — reconciliation and integrity guard."""

    model_config = {"frozen": True}

    confirm_timeout: float = 0.5
    required_namespaces: list[str] = Field(default_factory=lambda: ["MC"])
    min_key_retention: float = Field(default=0.5, ge=0.0, le=1.0)
    ensure_namespaces: bool = True


class AvailabilityConfig(BaseModel):
    """[availability] section — authority wait and retry policy."""

    model_config = {"frozen": True}

    max_wait: float = 3.0
    poll_interval: float = 0.1
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = 0.5
    stable_wait: float = 5.0
    stable_interval: float = 0.2


class StoreConfig(BaseModel):
    """[store] section — the SQLite-backed authority used by the CLI."""

    model_config = {"frozen": True}

    path: str = ".worldvar/worldvar.db"
    scope: Scope = Scope.CHAT


class PluginsConfig(BaseModel):
    """[plugins] section — per-plugin settings tables."""

    model_config = {"frozen": True}

    local_dir: str = ".worldvar/plugins"
    settings: dict[str, dict[str, Any]] = Field(default_factory=dict)


class WorldVarConfig(BaseModel):
    """Root configuration composing all sections (the full worldvar.toml schema)."""

    model_config = {"frozen": True}

    parser: ParserConfig = Field(default_factory=ParserConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    availability: AvailabilityConfig = Field(default_factory=AvailabilityConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
