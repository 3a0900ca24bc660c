"""
encore.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for platform identity and engine tuning (vote
milestone interval, page sizes, score point overrides).  Secrets and the
database URL stay in the environment (``.env``).

Usage::

    from encore.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.platform_name)          # "Encore Dev"
    print(cfg.vote_milestone_interval)  # 10
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EncoreConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    platform_name: str

    # API
    api_port: int

    # Engine tuning
    vote_milestone_interval: int = 10
    default_page_size: int = 20
    max_page_size: int = 100

    # Per-action point overrides, keyed by ScoreAction value
    score_points: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> EncoreConfig:
    """Read *path* and return an :class:`EncoreConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return EncoreConfig(
        platform_name=raw["platform_name"],
        api_port=int(raw["api_port"]),
        vote_milestone_interval=int(raw.get("vote_milestone_interval", 10)),
        default_page_size=int(raw.get("default_page_size", 20)),
        max_page_size=int(raw.get("max_page_size", 100)),
        score_points={
            str(k): int(v) for k, v in (raw.get("score_points") or {}).items()
        },
    )
