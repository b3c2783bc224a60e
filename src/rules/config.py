from __future__ import annotations

from pathlib import Path

import tomllib
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from utils import JS_EXTENSIONS

CONFIG_FILENAME = "spanguard.toml"
DEFAULT_SECRET_ENV = "SPANGUARD_SECRET"


class ContextConfig(BaseModel):
    """Defaults for context windows."""

    model_config = ConfigDict(extra="forbid")

    padding: int = Field(
        default=512,
        ge=0,
        description="Characters of padding on each side of a target span",
    )


class TokensConfig(BaseModel):
    """Continuation token settings."""

    model_config = ConfigDict(extra="forbid")

    ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="Seconds a continuation token stays valid",
    )
    secret_env: str = Field(
        default=DEFAULT_SECRET_ENV,
        description="Environment variable holding the token signing secret",
    )


class GraphConfig(BaseModel):
    """Call graph query defaults."""

    model_config = ConfigDict(extra="forbid")

    dead_code_include_exported: bool = Field(
        default=False,
        description="Report exported functions with no inbound calls as dead code",
    )
    hot_paths_limit: int = Field(
        default=10,
        gt=0,
        description="Number of most-called functions listed by hot-paths",
    )


class RiskConfig(BaseModel):
    """Thresholds for export usage risk tiers."""

    model_config = ConfigDict(extra="forbid")

    medium_threshold: int = Field(
        default=5,
        ge=0,
        description="Usage above this count is MEDIUM risk",
    )
    high_threshold: int = Field(
        default=20,
        ge=0,
        description="Usage above this count is HIGH risk",
    )

    @model_validator(mode="after")
    def _ordered(self) -> RiskConfig:
        if self.high_threshold < self.medium_threshold:
            msg = "risk.high_threshold must not be lower than risk.medium_threshold"
            raise ValueError(msg)
        return self


class SpanguardConfig(BaseModel):
    """Configuration for spanguard workspace operations."""

    model_config = ConfigDict(extra="forbid")

    include: list[str] = Field(
        default_factory=list,
        description="Glob patterns for files to include (empty = all JS/TS files)",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns for files to exclude",
    )
    nested_gitignore: bool = Field(
        default=False,
        description=(
            "Enable nested .gitignore composition (default: false for root-only)"
        ),
    )
    extensions: list[str] = Field(
        default_factory=lambda: list(JS_EXTENSIONS),
        description="File suffixes scanned in the workspace",
    )
    plan_dir: str = Field(
        default=".spanguard",
        description="Directory for plan artifacts, relative to the workspace root",
    )
    context: ContextConfig = Field(default_factory=ContextConfig)
    tokens: TokensConfig = Field(default_factory=TokensConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        """Accept ``ts`` or ``.ts``; reject suffixes no parser handles."""
        normalized: list[str] = []
        for ext in v:
            suffix = ext if ext.startswith(".") else f".{ext}"
            if suffix not in JS_EXTENSIONS:
                msg = (
                    f"Unsupported extension '{ext}'. "
                    f"Valid extensions: {', '.join(JS_EXTENSIONS)}"
                )
                raise ValueError(msg)
            normalized.append(suffix)
        return normalized


class ConfigError(Exception):
    """Raised when config file exists but cannot be parsed."""


def resolve_plan_dir(root: Path, plan_dir: str) -> Path:
    """Resolve a config-provided plan_dir safely within the workspace root.

    Absolute paths, home-relative paths and paths that escape the root are
    rejected.
    """
    if not plan_dir:
        msg = "plan_dir must be a non-empty relative path"
        raise ConfigError(msg)

    plan_path = Path(plan_dir)
    if plan_dir.startswith("~") or plan_path.is_absolute():
        msg = "plan_dir must be a relative path within the workspace root"
        raise ConfigError(msg)

    try:
        resolved_root = root.resolve()
        resolved_plan = (resolved_root / plan_path).resolve()
    except OSError as exc:
        msg = f"Failed to resolve plan_dir '{plan_dir}': {exc}"
        raise ConfigError(msg) from exc

    try:
        resolved_plan.relative_to(resolved_root)
    except ValueError as exc:
        msg = f"plan_dir '{plan_dir}' escapes the workspace root"
        raise ConfigError(msg) from exc

    return resolved_plan


def load_config(root: Path) -> SpanguardConfig:
    """Load configuration from spanguard.toml if it exists."""
    config_path = Path(root) / CONFIG_FILENAME

    if not config_path.is_file():
        return SpanguardConfig()

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return SpanguardConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_SECRET_ENV",
    "ConfigError",
    "ContextConfig",
    "GraphConfig",
    "RiskConfig",
    "SpanguardConfig",
    "TokensConfig",
    "load_config",
    "resolve_plan_dir",
]
