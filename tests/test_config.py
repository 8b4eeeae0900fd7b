"""Tests for layered configuration loading."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

import pytest

from context_hound.config import (
    DEFAULT_EXCLUDE_GLOBS,
    AppConfig,
    default_config_template,
    env_overrides,
    load_app_config,
    merge_config,
)


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = load_app_config(tmp_path, environ={})
    assert config.source is None
    assert config.scan.threshold == 60
    assert config.scan.concurrency == 8
    assert config.scan.cache is True
    assert config.scan.exclude == list(DEFAULT_EXCLUDE_GLOBS)
    assert config.formats == ["human"]


def test_precedence_file_then_env_then_cli(tmp_path: Path) -> None:
    (tmp_path / ".hound.toml").write_text(
        'threshold = 40\nfail_on = "high"\nconcurrency = 2\n', encoding="utf-8"
    )
    config = load_app_config(
        tmp_path,
        environ={"HOUND_THRESHOLD": "50", "HOUND_CONCURRENCY": "4"},
        cli_overrides={"threshold": 70, "fail_on": None},
    )
    assert config.scan.threshold == 70
    assert config.scan.concurrency == 4
    assert config.scan.fail_on == "high"
    assert config.source == str(tmp_path.resolve() / ".hound.toml")


def test_hound_toml_is_second_choice(tmp_path: Path) -> None:
    (tmp_path / "hound.toml").write_text("threshold = 10\n", encoding="utf-8")
    assert load_app_config(tmp_path, environ={}).scan.threshold == 10


def test_pyproject_tool_section(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "demo"\n\n[tool.hound]\nthreshold = 25\nexclude_rules = ["INJ-*"]\n',
        encoding="utf-8",
    )
    config = load_app_config(tmp_path, environ={})
    assert config.scan.threshold == 25
    assert config.scan.exclude_rules == ["INJ-*"]


def test_pyproject_without_tool_section_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n', encoding="utf-8")
    config = load_app_config(tmp_path, environ={})
    assert config.source is None


def test_env_var_selects_config_file(tmp_path: Path) -> None:
    custom = tmp_path / "ci" / "hound-ci.toml"
    custom.parent.mkdir()
    custom.write_text("threshold = 15\n", encoding="utf-8")
    config = load_app_config(tmp_path, environ={"HOUND_CONFIG": "ci/hound-ci.toml"})
    assert config.scan.threshold == 15


def test_invalid_file_warns_and_falls_back(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    (tmp_path / ".hound.toml").write_text("threshold = 500\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="context_hound.config"):
        config = load_app_config(tmp_path, environ={})
    assert config.scan.threshold == 60
    assert config.source is None
    assert "threshold must be between 0 and 100" in caplog.text


def test_strict_mode_raises_on_invalid_file(tmp_path: Path) -> None:
    (tmp_path / ".hound.toml").write_text("threshhold = 5\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Unknown config keys: threshhold"):
        load_app_config(tmp_path, environ={}, strict=True)


def test_broken_toml_raises_in_strict_mode(tmp_path: Path) -> None:
    (tmp_path / ".hound.toml").write_text("threshold = = 1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid TOML"):
        load_app_config(tmp_path, environ={}, strict=True)


def test_missing_explicit_config_raises_in_strict_mode(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        load_app_config(tmp_path, Path("nope.toml"), environ={}, strict=True)


def test_bad_env_values_are_dropped() -> None:
    overrides = env_overrides(
        {
            "HOUND_THRESHOLD": "high",
            "HOUND_FAIL_ON": "catastrophic",
            "HOUND_MIN_CONFIDENCE": "HIGH",
            "HOUND_VERBOSE": "yes",
        }
    )
    assert overrides == {"min_confidence": "high", "verbose": True}


def test_cli_values_are_validated() -> None:
    with pytest.raises(ValueError, match="concurrency must be >= 1"):
        merge_config(AppConfig(), {}, {}, {"concurrency": 0})
    with pytest.raises(ValueError, match="formats must be one of"):
        merge_config(AppConfig(), {}, {}, {"formats": ["html"]})


def test_starter_template_is_valid_config(tmp_path: Path) -> None:
    template = default_config_template()
    tomllib.loads(template)
    (tmp_path / ".hound.toml").write_text(template, encoding="utf-8")
    config = load_app_config(tmp_path, environ={}, strict=True)
    assert config.scan.threshold == 60
    assert "tests/fixtures/**" in config.scan.exclude


def test_to_dict_is_flat() -> None:
    payload = AppConfig().to_dict()
    assert payload["threshold"] == 60
    assert payload["formats"] == ["human"]
    assert "scan" not in payload
