"""Configuration loading for context-hound.

Precedence, later wins: built-in defaults, the project config file, ``HOUND_*``
environment variables, then CLI options. Each layer is a flat mapping of
``AppConfig`` field names; ``merge_config`` applies them in order and
validates the result once.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (".hound.toml", "hound.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("hound", "context-hound")
CONFIG_ENV_VAR = "HOUND_CONFIG"
CACHE_FILENAME = ".hound-cache.json"

OUTPUT_FORMATS = ("human", "json", "jsonl", "sarif", "markdown", "github-annotations")
FAIL_ON_LEVELS = ("medium", "high", "critical")
CONFIDENCE_LEVELS = ("low", "medium", "high")
TRUTHY = {"1", "true", "yes"}

DEFAULT_INCLUDE_GLOBS: tuple[str, ...] = (
    "**/*.prompt",
    "**/*.prompt.*",
    "**/*.md",
    "**/*.txt",
    "**/*.yaml",
    "**/*.yml",
    "**/*.json",
    "**/*.ts",
    "**/*.js",
    "**/*.py",
)

DEFAULT_EXCLUDE_GLOBS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/coverage/**",
    "**/.venv/**",
    "**/__pycache__/**",
    "**/*.min.js",
    "**/*.lock",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
    f"**/{CACHE_FILENAME}",
)


@dataclass(slots=True)
class ScanConfig:
    """Settings consumed by the scan engine."""

    include: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_GLOBS))
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_GLOBS))
    threshold: int = 60
    fail_on: str | None = None
    max_findings: int | None = None
    exclude_rules: list[str] = field(default_factory=list)
    include_rules: list[str] = field(default_factory=list)
    min_confidence: str | None = None
    fail_file_threshold: int | None = None
    concurrency: int = 8
    cache: bool = True
    plugins: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "include": list(self.include),
            "exclude": list(self.exclude),
            "threshold": self.threshold,
            "fail_on": self.fail_on,
            "max_findings": self.max_findings,
            "exclude_rules": list(self.exclude_rules),
            "include_rules": list(self.include_rules),
            "min_confidence": self.min_confidence,
            "fail_file_threshold": self.fail_file_threshold,
            "concurrency": self.concurrency,
            "cache": self.cache,
            "plugins": list(self.plugins),
        }


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from every layer."""

    scan: ScanConfig = field(default_factory=ScanConfig)
    formats: list[str] = field(default_factory=lambda: ["human"])
    out: str | None = None
    verbose: bool = False
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.scan.to_dict(),
            "formats": list(self.formats),
            "out": self.out,
            "verbose": self.verbose,
            "source": self.source,
        }


_SCAN_KEYS = frozenset(item.name for item in fields(ScanConfig))
_APP_KEYS = frozenset({"formats", "out", "verbose"})
KNOWN_KEYS = _SCAN_KEYS | _APP_KEYS


def load_app_config(
    cwd: Path,
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
    strict: bool = False,
) -> AppConfig:
    """Resolve the effective configuration for a scan rooted at ``cwd``.

    A broken config file is reported as a warning and ignored unless
    ``strict`` is set, in which case the ``ValueError`` propagates.
    """
    env = os.environ if environ is None else environ
    try:
        file_mapping, source = find_config_mapping(cwd, config_path, environ=env)
        _from_mapping(file_mapping)
    except ValueError as exc:
        if strict:
            raise
        logger.warning("Ignoring configuration: %s", exc)
        file_mapping, source = {}, None

    config = merge_config(AppConfig(), file_mapping, env_overrides(env), cli_overrides or {})
    config.source = source
    return config


def find_config_mapping(
    cwd: Path,
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[dict[str, Any], str | None]:
    """Locate and read the project config file, returning its mapping and path."""
    cwd = cwd.resolve()
    explicit = config_path
    if explicit is None and environ and environ.get(CONFIG_ENV_VAR):
        explicit = Path(environ[CONFIG_ENV_VAR])

    if explicit is not None:
        resolved = explicit if explicit.is_absolute() else (cwd / explicit)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        return _extract_config_mapping(_load_toml(resolved), source_path=resolved), str(resolved)

    for filename in CONFIG_FILENAMES:
        resolved = cwd / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return mapping, str(resolved)

    pyproject_path = cwd / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return mapping, str(pyproject_path)

    return {}, None


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``HOUND_*`` environment variables into a config layer.

    Unparsable values are dropped with a warning rather than failing the run.
    """
    overrides: dict[str, Any] = {}

    raw_threshold = environ.get("HOUND_THRESHOLD")
    if raw_threshold:
        try:
            overrides["threshold"] = int(raw_threshold, 10)
        except ValueError:
            logger.warning("Ignoring HOUND_THRESHOLD=%r: not an integer", raw_threshold)

    raw_fail_on = environ.get("HOUND_FAIL_ON")
    if raw_fail_on:
        if raw_fail_on.lower() in FAIL_ON_LEVELS:
            overrides["fail_on"] = raw_fail_on.lower()
        else:
            logger.warning("Ignoring HOUND_FAIL_ON=%r", raw_fail_on)

    raw_confidence = environ.get("HOUND_MIN_CONFIDENCE")
    if raw_confidence:
        if raw_confidence.lower() in CONFIDENCE_LEVELS:
            overrides["min_confidence"] = raw_confidence.lower()
        else:
            logger.warning("Ignoring HOUND_MIN_CONFIDENCE=%r", raw_confidence)

    raw_verbose = environ.get("HOUND_VERBOSE")
    if raw_verbose:
        overrides["verbose"] = raw_verbose.lower() in TRUTHY

    raw_concurrency = environ.get("HOUND_CONCURRENCY")
    if raw_concurrency:
        try:
            overrides["concurrency"] = int(raw_concurrency, 10)
        except ValueError:
            logger.warning("Ignoring HOUND_CONCURRENCY=%r: not an integer", raw_concurrency)

    return overrides


def merge_config(
    defaults: AppConfig,
    file_mapping: Mapping[str, Any],
    env_mapping: Mapping[str, Any],
    cli_mapping: Mapping[str, Any],
) -> AppConfig:
    """Merge config layers in order; ``None`` values leave the key unset."""
    merged = defaults.to_dict()
    merged.pop("source", None)
    for layer in (file_mapping, env_mapping, cli_mapping):
        for key, value in layer.items():
            if value is not None:
                merged[key] = value
    config = _from_mapping(merged)
    config.source = defaults.source
    return config


def default_config_template() -> str:
    """Return a starter ``.hound.toml``."""
    include = ", ".join(f'"{item}"' for item in DEFAULT_INCLUDE_GLOBS)
    return "\n".join(
        [
            "# context-hound configuration",
            f"include = [{include}]",
            'exclude = ["**/node_modules/**", "**/dist/**", "**/.git/**", "tests/fixtures/**"]',
            "threshold = 60",
            '# fail_on = "high"',
            "# fail_file_threshold = 50",
            "# max_findings = 200",
            '# min_confidence = "medium"',
            "concurrency = 8",
            "cache = true",
            'formats = ["human"]',
            '# out = "hound-report"',
            "",
            '# exclude_rules = ["INJ-002", "TOOL-*"]',
            "# include_rules = []",
            '# plugins = ["hound_plugins/my_rules.py"]',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ValueError(f"Could not read config file {path}: {exc}") from exc
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    section = _find_pyproject_tool_section(loaded)
    if source_path.name == PYPROJECT_FILENAME:
        return section if section is not None else {}
    return section if section is not None else loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: Mapping[str, Any]) -> AppConfig:
    unknown = sorted(key for key in mapping if key not in KNOWN_KEYS and key != "source")
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    defaults = ScanConfig()
    threshold = _as_int(mapping.get("threshold", defaults.threshold), "threshold")
    if not 0 <= threshold <= 100:
        raise ValueError("threshold must be between 0 and 100")
    concurrency = _as_int(mapping.get("concurrency", defaults.concurrency), "concurrency")
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    scan = ScanConfig(
        include=_as_str_list(mapping.get("include"), "include") or list(DEFAULT_INCLUDE_GLOBS),
        exclude=_as_str_list_or_default(mapping.get("exclude"), "exclude", DEFAULT_EXCLUDE_GLOBS),
        threshold=threshold,
        fail_on=_as_optional_choice(mapping.get("fail_on"), FAIL_ON_LEVELS, "fail_on"),
        max_findings=_as_optional_positive_int(mapping.get("max_findings"), "max_findings"),
        exclude_rules=_as_str_list(mapping.get("exclude_rules"), "exclude_rules"),
        include_rules=_as_str_list(mapping.get("include_rules"), "include_rules"),
        min_confidence=_as_optional_choice(
            mapping.get("min_confidence"), CONFIDENCE_LEVELS, "min_confidence"
        ),
        fail_file_threshold=_as_optional_positive_int(
            mapping.get("fail_file_threshold"), "fail_file_threshold"
        ),
        concurrency=concurrency,
        cache=_as_bool(mapping.get("cache", defaults.cache), "cache"),
        plugins=_as_str_list(mapping.get("plugins"), "plugins"),
    )

    formats = _as_str_list(mapping.get("formats"), "formats") or ["human"]
    for item in formats:
        _as_choice(item, OUTPUT_FORMATS, "formats")

    out = mapping.get("out")
    if out is not None and not isinstance(out, str):
        raise ValueError("out must be a string")

    return AppConfig(
        scan=scan,
        formats=[item.lower() for item in formats],
        out=out,
        verbose=_as_bool(mapping.get("verbose", False), "verbose"),
    )


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list | tuple):
        raise ValueError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str_list_or_default(value: Any, field_name: str, default: tuple[str, ...]) -> list[str]:
    if value is None:
        return list(default)
    return _as_str_list(value, field_name)


def _as_choice(raw: Any, allowed: tuple[str, ...], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        raise ValueError(f"{field_name} must be one of: {', '.join(allowed)}")
    return value


def _as_optional_choice(raw: Any, allowed: tuple[str, ...], field_name: str) -> str | None:
    if raw is None:
        return None
    return _as_choice(raw, allowed, field_name)


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_optional_positive_int(raw: Any, field_name: str) -> int | None:
    if raw is None:
        return None
    value = _as_int(raw, field_name)
    if value < 1:
        raise ValueError(f"{field_name} must be >= 1")
    return value


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return raw
