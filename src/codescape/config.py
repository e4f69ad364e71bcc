"""Configuration management for codescape."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from codescape.exceptions import ConfigError

CODESCAPE_DIR = ".codescape"
CONFIG_FILE = "config.json"

Direction = Literal["LR", "RL", "TB", "BT"]


class LayoutConfig(BaseModel):
    """Full-graph layout configuration."""

    direction: Direction = "LR"
    column_gap: float = 40.0
    layer_margin: float = 80.0
    min_node_sep: float = 30.0
    node_sep_ratio: float = 0.25
    crossing_passes: int = 8
    grid_columns: int = 4
    grid_col_width: float = 280.0
    grid_row_height: float = 90.0
    grid_row_offset: float = 60.0


class MergeConfig(BaseModel):
    """Incremental expansion placement configuration."""

    horizontal_gap: float = 60.0
    vertical_gap: float = 20.0
    max_placement_attempts: int = 50


class BridgeConfig(BaseModel):
    """Editor bridge and request timeouts."""

    expand_timeout_ms: int = 10_000
    references_timeout_ms: int = 5_000
    symbols_timeout_ms: int = 3_000
    snippet_context_lines: int = 5
    max_snippet_lines: int = 200


class ScanConfig(BaseModel):
    """Which files count as project files when building fragments."""

    exclude_dirs: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            ".git",
            "env",
            "venv",
            ".venv",
            "__pycache__",
            "site-packages",
            "dist",
            "build",
            ".tox",
            ".eggs",
            ".mypy_cache",
            "target",
            "vendor",
        ]
    )
    call_depth: int = 3
    max_file_size_kb: int = 500


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .codescape directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / CODESCAPE_DIR).is_dir():
            return current
        current = current.parent
    if (current / CODESCAPE_DIR).is_dir():
        return current
    return None


def get_codescape_dir(root: Path) -> Path:
    """Get the .codescape directory for a project root."""
    return root / CODESCAPE_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .codescape/config.json."""
    config_path = get_codescape_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid config at {config_path}: {e}") from e
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .codescape/config.json."""
    cs_dir = get_codescape_dir(root)
    cs_dir.mkdir(parents=True, exist_ok=True)
    config_path = cs_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'merge.vertical_gap')."""
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
        return ProjectConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e
