"""
Engine configuration.

Each setting resolves in order:
1. Explicit argument
2. Environment variable (PATHWAY_*)
3. Default
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


DEFAULT_MODULES_DIR = "modules"
DEFAULT_TICK_MS = 7 * 24 * 60 * 60 * 1000  # one week
DEFAULT_WORKERS = 4
DEFAULT_SEED = 0
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass
class EngineConfig:
    """Settings shared by the CLI, the engine facade and the default registry."""

    modules_dir: Path
    tick_ms: int = DEFAULT_TICK_MS
    workers: int = DEFAULT_WORKERS
    seed: int = DEFAULT_SEED
    log_level: str = DEFAULT_LOG_LEVEL


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_config(
    modules_dir: Optional[Union[str, Path]] = None,
    tick_ms: Optional[int] = None,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
    log_level: Optional[str] = None,
) -> EngineConfig:
    """Build an EngineConfig from arguments, environment and defaults."""
    if modules_dir is None:
        modules_dir = os.environ.get("PATHWAY_MODULES_DIR") or DEFAULT_MODULES_DIR

    return EngineConfig(
        modules_dir=Path(modules_dir),
        tick_ms=tick_ms if tick_ms is not None else _env_int("PATHWAY_TICK_MS", DEFAULT_TICK_MS),
        workers=workers if workers is not None else _env_int("PATHWAY_WORKERS", DEFAULT_WORKERS),
        seed=seed if seed is not None else _env_int("PATHWAY_SEED", DEFAULT_SEED),
        log_level=(log_level or os.environ.get("PATHWAY_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
