"""Configuration management for checkview.

Storage
-------
~/.checkview/config.yaml holds the user's default display toggles:

    mounts: true        # include "Overview of Mounts"
    stats: false        # include "CRIU dump statistics"
    ps_tree: false      # include "Process tree"
    max_depth: 512      # process tree depth ceiling
    crit_binary: crit   # CRIU image tool (or CHECKVIEW_CRIT env var)

Command-line flags can only switch a toggle on; the file sets the defaults.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from checkview.errors import ConfigError

# Standard paths
CHECKVIEW_DIR = Path.home() / ".checkview"
CONFIG_PATH = CHECKVIEW_DIR / "config.yaml"

DEFAULT_MAX_DEPTH = 512
# Serializing a tree recurses once per level
MAX_DEPTH_LIMIT = 900
DEFAULT_CRIT_BINARY = "crit"


@dataclass(frozen=True)
class TreeOptions:
    """Which enrichment branches to add to each checkpoint tree."""

    mounts: bool = False
    stats: bool = False
    ps_tree: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH

    @property
    def needs_images(self) -> bool:
        """Whether CRIU images must be extracted from the archive."""
        return self.stats or self.ps_tree


@dataclass
class ViewConfig:
    """checkview configuration."""

    mounts: bool = False
    stats: bool = False
    ps_tree: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH
    crit_binary: str = DEFAULT_CRIT_BINARY

    @classmethod
    def load(cls, config_path: Path | None = None) -> "ViewConfig":
        """Load configuration from file and environment."""
        path = config_path or CONFIG_PATH
        config = cls()

        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"failed to parse {path}", path) from e
            if not isinstance(data, dict):
                raise ConfigError(f"{path} is not a mapping", path)
            try:
                config = cls._from_dict(data)
            except ValueError as e:
                raise ConfigError(f"invalid value in {path}: {e}", path) from e

        # Environment overrides file config
        if env_crit := os.environ.get("CHECKVIEW_CRIT"):
            config.crit_binary = env_crit

        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "ViewConfig":
        """Create config from dictionary, ignoring unknown keys.

        Raises:
            ValueError: A known key has a value of the wrong type or range.
        """
        valid_fields = {f.name for f in fields(cls)}
        return cls(**{k: check_value(k, v) for k, v in data.items() if k in valid_fields})

    def save(self, config_path: Path | None = None) -> Path:
        """Save non-default values to the config file.

        Returns:
            Path to saved config file
        """
        path = config_path or CONFIG_PATH
        path.parent.mkdir(parents=True, exist_ok=True)

        defaults = ViewConfig()
        data = {
            key: value
            for key, value in self.to_dict().items()
            if getattr(defaults, key) != value
        }

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False)
        return path

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "mounts": self.mounts,
            "stats": self.stats,
            "ps_tree": self.ps_tree,
            "max_depth": self.max_depth,
            "crit_binary": self.crit_binary,
        }

    def tree_options(
        self,
        mounts: bool = False,
        stats: bool = False,
        ps_tree: bool = False,
        show_all: bool = False,
        max_depth: int | None = None,
    ) -> TreeOptions:
        """Merge command-line flags over the configured defaults."""
        return TreeOptions(
            mounts=show_all or mounts or self.mounts,
            stats=show_all or stats or self.stats,
            ps_tree=show_all or ps_tree or self.ps_tree,
            max_depth=max_depth if max_depth is not None else self.max_depth,
        )


def coerce_value(key: str, raw: str) -> Any:
    """Convert a command-line string to the type of a config field.

    Raises:
        KeyError: Unknown config key.
        ValueError: Value cannot be converted.
    """
    field_types = {f.name: f.type for f in fields(ViewConfig)}
    if key not in field_types:
        raise KeyError(key)

    field_type = field_types[key]
    if field_type in (bool, "bool"):
        lowered = raw.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
        raise ValueError(f"expected a boolean for {key}, got '{raw}'")
    if field_type in (int, "int"):
        return check_value(key, int(raw))
    return check_value(key, raw)


def check_value(key: str, value: Any) -> Any:
    """Check a typed value against its config field.

    Raises:
        KeyError: Unknown config key.
        ValueError: Wrong type, or max_depth outside 1..MAX_DEPTH_LIMIT.
    """
    field_types = {f.name: f.type for f in fields(ViewConfig)}
    if key not in field_types:
        raise KeyError(key)

    field_type = field_types[key]
    if field_type in (bool, "bool"):
        if not isinstance(value, bool):
            raise ValueError(f"expected a boolean for {key}, got {value!r}")
    elif field_type in (int, "int"):
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected an integer for {key}, got {value!r}")
        if not 1 <= value <= MAX_DEPTH_LIMIT:
            raise ValueError(f"{key} must be between 1 and {MAX_DEPTH_LIMIT}")
    elif not isinstance(value, str) or not value:
        raise ValueError(f"expected a non-empty string for {key}, got {value!r}")
    return value
