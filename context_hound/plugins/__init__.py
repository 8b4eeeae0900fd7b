"""Loading of user-supplied rule modules.

A plugin is a Python file exporting ``RULES`` (one rule or a list/tuple of
rules) or ``RULE``. Plugins are imported with full interpreter privileges;
only load files you trust.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Literal

from context_hound.rules.base import CONFIDENCES, SEVERITIES, Rule

logger = logging.getLogger(__name__)

PluginStatus = Literal["loaded", "failed"]


class PluginError(Exception):
    """A plugin file could not be turned into rules."""


@dataclass(slots=True)
class PluginLoad:
    """Per-plugin load record."""

    path: str
    status: PluginStatus
    reason: str
    rule_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "status": self.status,
            "reason": self.reason,
            "rule_ids": list(self.rule_ids),
        }


def load_plugins(paths: Sequence[str], cwd: str | Path) -> tuple[list[Rule], list[PluginLoad]]:
    """Import every plugin path; a broken plugin is skipped as a whole."""
    rules: list[Rule] = []
    loads: list[PluginLoad] = []
    for raw_path in paths:
        resolved = resolve_plugin_path(raw_path, cwd)
        try:
            plugin_rules = rules_from_module(load_module(resolved))
        except Exception as exc:
            reason = f"{exc.__class__.__name__}: {exc}"
            logger.warning("Skipping plugin %s: %s", resolved, reason)
            loads.append(PluginLoad(path=str(resolved), status="failed", reason=reason))
            continue
        rules.extend(plugin_rules)
        loads.append(
            PluginLoad(
                path=str(resolved),
                status="loaded",
                reason=f"{len(plugin_rules)} rule(s)",
                rule_ids=[rule.rule_id for rule in plugin_rules],
            )
        )
    return rules, loads


def resolve_plugin_path(raw_path: str, cwd: str | Path) -> Path:
    path = Path(raw_path)
    return path if path.is_absolute() else (Path(cwd) / path).resolve()


def load_module(path: Path) -> ModuleType:
    """Import a Python file by path under a private module name."""
    if not path.is_file():
        raise PluginError(f"plugin file not found: {path}")
    module_name = f"context_hound_plugin_{abs(hash(str(path)))}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def rules_from_module(module: ModuleType) -> list[Rule]:
    """Extract and shape-check the exported rules of a plugin module."""
    exported = getattr(module, "RULES", None)
    if exported is None:
        exported = getattr(module, "RULE", None)
    if exported is None:
        raise PluginError("module exports neither RULES nor RULE")

    candidates = list(exported) if isinstance(exported, list | tuple) else [exported]
    if not candidates:
        raise PluginError("RULES is empty")
    for index, candidate in enumerate(candidates):
        if not is_rule(candidate):
            raise PluginError(
                f"export #{index} is not a rule (needs rule_id, check, severity, confidence)"
            )
    return candidates


def is_rule(candidate: Any) -> bool:
    """Duck-type check; severity and confidence must be known levels to be scorable."""
    return (
        isinstance(getattr(candidate, "rule_id", None), str)
        and callable(getattr(candidate, "check", None))
        and getattr(candidate, "severity", None) in SEVERITIES
        and getattr(candidate, "confidence", None) in CONFIDENCES
    )
