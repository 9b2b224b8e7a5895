"""Shared pytest fixtures for worldvar tests."""

from __future__ import annotations

import copy
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from worldvar.config.models import AvailabilityConfig, SyncConfig, WorldVarConfig
from worldvar.infrastructure.authority import MemoryAuthority
from worldvar.services.reconcile import ReconciliationEngine

WORLD: dict[str, Any] = {
    "MC": {
        "系统": {"状态": "待机"},
        "资源": {"金币": 100},
        "开关": 1,
        "背包": ["剑", "盾"],
        "在线": True,
    },
    "世界": {"天气": "晴"},
}


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def world() -> dict[str, Any]:
    """A fresh copy of the sample variable tree."""
    return copy.deepcopy(WORLD)


@pytest.fixture
def fast_config() -> WorldVarConfig:
    """Config with short timeouts so engine tests finish quickly."""
    return WorldVarConfig(
        sync=SyncConfig(confirm_timeout=0.2),
        availability=AvailabilityConfig(
            max_wait=0.05,
            poll_interval=0.01,
            base_delay=0.0,
            stable_wait=0.1,
            stable_interval=0.01,
        ),
    )


@pytest.fixture
def authority(world: dict[str, Any]) -> MemoryAuthority:
    return MemoryAuthority(world)


@pytest.fixture
def make_engine(
    fast_config: WorldVarConfig,
) -> Callable[..., ReconciliationEngine]:
    """Factory building an engine over a given authority with fast timeouts."""

    def factory(authority: MemoryAuthority, **kwargs: Any) -> ReconciliationEngine:
        kwargs.setdefault("config", fast_config)
        return ReconciliationEngine(authority, selector=authority.selector, **kwargs)

    return factory


@pytest.fixture
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run the CLI from an empty temp directory with no config overrides.

    Use via ``@pytest.mark.usefixtures("_isolated_project")``.
    """
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("WORLDVAR_"):
            monkeypatch.delenv(name, raising=False)
