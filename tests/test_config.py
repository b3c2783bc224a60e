from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from rules.config import ConfigError, SpanguardConfig, load_config, resolve_plan_dir

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(repo_root: Path, toml_content: str) -> None:
    (repo_root / "spanguard.toml").write_text(toml_content, encoding="utf-8")


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config == SpanguardConfig()
    assert config.context.padding == 512
    assert config.tokens.ttl_seconds == 3600
    assert config.plan_dir == ".spanguard"
    assert ".ts" in config.extensions


def test_unknown_top_level_key_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "bogus_key = true")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_unknown_section_key_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[tokens]
ttl = 10
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_toml_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "exclude = [")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path)


def test_risk_thresholds_must_be_ordered(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[risk]
medium_threshold = 30
high_threshold = 10
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_valid_config_accepted(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
exclude = ["dist/**"]
extensions = ["js", ".ts"]

[context]
padding = 40

[graph]
hot_paths_limit = 3
""".strip(),
    )

    config = load_config(tmp_path)

    assert config.exclude == ["dist/**"]
    assert config.extensions == [".js", ".ts"]
    assert config.context.padding == 40
    assert config.graph.hot_paths_limit == 3


def test_unsupported_extension_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, 'extensions = [".py"]')

    with pytest.raises(ConfigError, match="Unsupported extension"):
        load_config(tmp_path)


def test_resolve_plan_dir_stays_inside_root(tmp_path: Path) -> None:
    assert resolve_plan_dir(tmp_path, ".spanguard") == (tmp_path / ".spanguard").resolve()

    for bad in ("", "/abs", "~/plans", "../outside"):
        with pytest.raises(ConfigError):
            resolve_plan_dir(tmp_path, bad)
