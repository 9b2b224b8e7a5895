"""Config file discovery and loading.

Walk-up finder locates worldvar.toml, the same way git finds .git/.
Supports the WORLDVAR_CONFIG env var and the --config CLI flag.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from worldvar.config.models import WorldVarConfig

CONFIG_FILENAME = "worldvar.toml"
CONFIG_ENV_VAR = "WORLDVAR_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for worldvar.toml.

    WORLDVAR_CONFIG takes precedence; if it points at a missing file the
    result is None rather than a fallback search.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None, cwd: Path | None = None) -> WorldVarConfig:
    """Load and validate config from a TOML file.

    Returns the default config when no file is found.
    """
    if path is None:
        path = find_config(cwd)
    if path is None:
        return WorldVarConfig()

    data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
    return WorldVarConfig.model_validate(data)
