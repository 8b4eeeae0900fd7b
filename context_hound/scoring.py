"""Rule dispatch, deduplication and score aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from context_hound.config import ScanConfig
from context_hound.extractor import PromptUnit
from context_hound.mitigation import score_mitigations
from context_hound.rules import all_rules, matches_rule_filter
from context_hound.rules.base import Finding, Rule, confidence_rank, rule_to_finding, severity_rank

logger = logging.getLogger(__name__)

ScoreLabel = Literal["low", "medium", "high", "critical"]
DedupKey = tuple[str, str, int]

MAX_REPO_SCORE = 100


@dataclass(slots=True)
class FileResult:
    """Findings and summed risk for a single file."""

    file: str
    findings: list[Finding] = field(default_factory=list)
    file_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "file_score": self.file_score,
            "findings": [finding.to_dict() for finding in self.findings],
        }


@dataclass(slots=True)
class ScanResult:
    """Top-level scan output."""

    repo_score: int
    score_label: ScoreLabel
    files: list[FileResult]
    all_findings: list[Finding]
    threshold: int
    passed: bool
    file_threshold_breached: bool = False
    root: str | None = None

    def display_path(self, file_path: str) -> str:
        """Path relative to the scan root, in POSIX form, for reports."""
        if self.root is None:
            return Path(file_path).as_posix()
        try:
            return Path(file_path).relative_to(self.root).as_posix()
        except ValueError:
            return Path(file_path).as_posix()

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "repo_score": self.repo_score,
            "score_label": self.score_label,
            "threshold": self.threshold,
            "passed": self.passed,
            "file_threshold_breached": self.file_threshold_breached,
            "files": [item.to_dict() for item in self.files],
            "all_findings": [finding.to_dict() for finding in self.all_findings],
        }


def analyze_units(
    units: Sequence[PromptUnit],
    file_path: str,
    config: ScanConfig | None = None,
    plugin_rules: Sequence[Rule] | None = None,
    seen: set[DedupKey] | None = None,
    rules: Sequence[Rule] | None = None,
) -> list[Finding]:
    """Run every active rule over every unit and return deduplicated findings.

    ``seen`` carries dedup keys across files of one scan; a fresh set is used
    when omitted. Rules that raise are logged and contribute nothing.
    """
    effective = config or ScanConfig()
    dedup = seen if seen is not None else set()
    active = active_rules(
        [*(rules if rules is not None else all_rules()), *(plugin_rules or [])], effective
    )

    findings: list[Finding] = []
    for unit in units:
        mitigation = score_mitigations(unit)
        for rule in active:
            try:
                # Generators raise while being consumed, so drain inside the guard.
                matches = list(rule.check(unit, file_path))
            except Exception:
                logger.warning(
                    "Rule %s failed on %s:%d", rule.rule_id, file_path, unit.line_start,
                    exc_info=True,
                )
                continue
            for match in matches:
                key = (rule.rule_id, file_path, match.line_start)
                if key in dedup:
                    continue
                dedup.add(key)
                findings.append(
                    rule_to_finding(rule, match, file_path, mitigation_total=mitigation.total)
                )
    return findings


def active_rules(rules: Iterable[Rule], config: ScanConfig) -> list[Rule]:
    """Filter rules by id patterns and minimum confidence, preserving order."""
    min_rank = confidence_rank(config.min_confidence) if config.min_confidence else None
    selected: list[Rule] = []
    for rule in rules:
        if matches_rule_filter(rule.rule_id, config.exclude_rules):
            continue
        if config.include_rules and not matches_rule_filter(rule.rule_id, config.include_rules):
            continue
        if min_rank is not None and confidence_rank(rule.confidence) < min_rank:
            continue
        selected.append(rule)
    return selected


def score_file(findings: Iterable[Finding]) -> int:
    return sum(finding.risk_points for finding in findings)


def score_label(score: int) -> ScoreLabel:
    if score < 30:
        return "low"
    if score < 60:
        return "medium"
    if score < 80:
        return "high"
    return "critical"


def build_file_result(file_path: str, findings: list[Finding]) -> FileResult:
    return FileResult(file=file_path, findings=findings, file_score=score_file(findings))


def build_scan_result(
    file_results: Iterable[FileResult],
    config: ScanConfig,
    root: str | None = None,
) -> ScanResult:
    """Aggregate per-file results into the repository verdict.

    Files are ordered by path so the result is independent of completion order.
    """
    files = sorted(file_results, key=lambda item: item.file)
    all_findings = [finding for item in files for finding in item.findings]
    repo_score = min(MAX_REPO_SCORE, sum(item.file_score for item in files))

    passed = repo_score < config.threshold
    if config.fail_on is not None and fail_on_violated(all_findings, config.fail_on):
        passed = False

    file_threshold_breached = False
    if config.fail_file_threshold is not None:
        file_threshold_breached = any(
            item.file_score >= config.fail_file_threshold for item in files
        )
        if file_threshold_breached:
            passed = False

    return ScanResult(
        repo_score=repo_score,
        score_label=score_label(repo_score),
        files=files,
        all_findings=all_findings,
        threshold=config.threshold,
        passed=passed,
        file_threshold_breached=file_threshold_breached,
        root=root,
    )


def fail_on_violated(findings: Iterable[Finding], fail_on: str) -> bool:
    """True when any finding is at or above the ``fail_on`` severity."""
    floor = severity_rank(fail_on)
    return any(severity_rank(finding.severity) >= floor for finding in findings)
