"""Workspace configuration for spanguard."""

from rules.config import (
    ConfigError,
    SpanguardConfig,
    load_config,
    resolve_plan_dir,
)

__all__ = [
    "ConfigError",
    "SpanguardConfig",
    "load_config",
    "resolve_plan_dir",
]
