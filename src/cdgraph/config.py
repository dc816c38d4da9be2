"""Configuration management for cdgraph."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from cdgraph.exceptions import ConfigError

CDGRAPH_DIR = ".cdgraph"
CONFIG_FILE = "config.json"


class ExtractorConfig(BaseModel):
    """Contract extraction configuration."""

    max_workers: int = Field(default=4, ge=1)
    store_names: list[str] = Field(
        default_factory=lambda: [
            "store",
            "state",
            "session",
            "session_state",
            "shared",
            "context",
            "ctx",
            "cache",
        ]
    )
    python_extensions: list[str] = Field(default_factory=lambda: [".py", ".pyi"])
    script_extensions: list[str] = Field(
        default_factory=lambda: [".js", ".jsx", ".ts", ".tsx", ".mjs"]
    )


class MatcherConfig(BaseModel):
    """Cross-snapshot identity matching thresholds.

    The defaults have not been tuned against real review data yet.
    """

    acceptance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    min_margin: float = Field(default=0.1, ge=0.0, le=1.0)
    name_weight: float = Field(default=2.0, gt=0.0)


class PropagationConfig(BaseModel):
    """Blast radius traversal limits."""

    max_node_visits: int = Field(default=100_000, ge=1)


class RankerConfig(BaseModel):
    """Narrative ranking configuration."""

    top_k: int = Field(default=3, ge=0)


class GitConfig(BaseModel):
    """How the git glue retrieves change data."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.2, ge=0.0)
    timeout: int = 30


class EngineConfig(BaseModel):
    """Full engine configuration."""

    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    ranker: RankerConfig = Field(default_factory=RankerConfig)
    git: GitConfig = Field(default_factory=GitConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .cdgraph directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / CDGRAPH_DIR).is_dir():
            return current
        current = current.parent
    if (current / CDGRAPH_DIR).is_dir():
        return current
    return None


def get_cdgraph_dir(root: Path) -> Path:
    """Get the .cdgraph directory for a project root."""
    return root / CDGRAPH_DIR


def load_config(root: Path) -> EngineConfig:
    """Load configuration from .cdgraph/config.json, or defaults."""
    config_path = get_cdgraph_dir(root) / CONFIG_FILE
    if not config_path.exists():
        return EngineConfig()
    try:
        data = json.loads(config_path.read_text())
        return EngineConfig(**data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Invalid config at {config_path}: {e}") from e


def save_config(root: Path, config: EngineConfig) -> None:
    """Save configuration to .cdgraph/config.json."""
    cd_dir = get_cdgraph_dir(root)
    cd_dir.mkdir(parents=True, exist_ok=True)
    config_path = cd_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: EngineConfig, key: str, value: Any) -> EngineConfig:
    """Set a nested config value using dot notation (e.g., 'matcher.min_margin')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        return EngineConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {e}") from e
