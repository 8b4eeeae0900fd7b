"""Base rule protocol, match/finding models and risk-point math."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Literal, Protocol

from context_hound.extractor import PromptUnit

Severity = Literal["low", "medium", "high", "critical"]
Confidence = Literal["low", "medium", "high"]

SEVERITIES: tuple[Severity, ...] = ("low", "medium", "high", "critical")
CONFIDENCES: tuple[Confidence, ...] = ("low", "medium", "high")

SEVERITY_WEIGHTS: dict[str, int] = {
    "low": 5,
    "medium": 15,
    "high": 30,
    "critical": 50,
}

CONFIDENCE_MULTIPLIERS: dict[str, float] = {
    "low": 0.5,
    "medium": 0.75,
    "high": 1.0,
}

MAX_EVIDENCE_CHARS = 200


@dataclass(slots=True)
class RuleMatch:
    """Raw output of one rule against one prompt unit."""

    evidence: str
    line_start: int
    line_end: int


@dataclass(slots=True)
class Finding:
    """A rule match enriched with its mitigation-discounted risk value."""

    rule_id: str
    title: str
    severity: Severity
    confidence: Confidence
    evidence: str
    file: str
    line_start: int
    line_end: int
    remediation: str
    risk_points: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Finding:
        return cls(
            rule_id=str(payload["rule_id"]),
            title=str(payload["title"]),
            severity=payload["severity"],
            confidence=payload["confidence"],
            evidence=str(payload["evidence"]),
            file=str(payload["file"]),
            line_start=int(payload["line_start"]),
            line_end=int(payload["line_end"]),
            remediation=str(payload["remediation"]),
            risk_points=int(payload["risk_points"]),
        )


class Rule(Protocol):
    """Protocol for heuristic prompt-security rules."""

    rule_id: str
    title: str
    severity: Severity
    confidence: Confidence
    category: str
    remediation: str

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        """Evaluate one prompt unit and return raw matches."""


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round()`` uses banker's rounding)."""
    return int(math.floor(value + 0.5))


def base_risk_points(severity: str, confidence: str) -> int:
    """Return undiscounted risk points for a severity/confidence pair."""
    return round_half_up(SEVERITY_WEIGHTS[severity] * CONFIDENCE_MULTIPLIERS[confidence])


def discounted_risk_points(severity: str, confidence: str, mitigation_total: int) -> int:
    """Apply a mitigation percentage to base risk points, never dropping below 1."""
    base = base_risk_points(severity, confidence)
    return max(1, round_half_up(base * (1 - mitigation_total / 100)))


def rule_to_finding(
    rule: Rule,
    match: RuleMatch,
    file_path: str,
    *,
    mitigation_total: int = 0,
) -> Finding:
    """Materialize a finding from a rule match."""
    return Finding(
        rule_id=rule.rule_id,
        title=getattr(rule, "title", rule.rule_id),
        severity=rule.severity,
        confidence=rule.confidence,
        evidence=match.evidence[:MAX_EVIDENCE_CHARS],
        file=file_path,
        line_start=match.line_start,
        line_end=match.line_end,
        remediation=getattr(rule, "remediation", ""),
        risk_points=discounted_risk_points(rule.severity, rule.confidence, mitigation_total),
    )


def match_lines(unit: PromptUnit, pattern: re.Pattern[str]) -> list[RuleMatch]:
    """Return one match per unit line that matches ``pattern``."""
    matches: list[RuleMatch] = []
    for offset, line in enumerate(unit.lines):
        if pattern.search(line):
            matches.append(line_match(unit, offset, line))
    return matches


def line_match(unit: PromptUnit, offset: int, line: str) -> RuleMatch:
    lineno = unit.line_start + offset
    return RuleMatch(evidence=line.strip(), line_start=lineno, line_end=lineno)


def first_line_match(unit: PromptUnit) -> list[RuleMatch]:
    """Anchor a whole-unit match on the unit's first line."""
    return [line_match(unit, 0, unit.lines[0])]


def confidence_rank(confidence: str) -> int:
    return CONFIDENCES.index(confidence)  # type: ignore[arg-type]


def severity_rank(severity: str) -> int:
    return SEVERITIES.index(severity)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class LinePatternRule:
    """Rule that flags every unit line matching a single pattern."""

    rule_id: str
    title: str
    severity: Severity
    confidence: Confidence
    category: str
    remediation: str
    pattern: re.Pattern[str]
    kinds: frozenset[str] | None = None

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if self.kinds is not None and unit.kind not in self.kinds:
            return []
        return match_lines(unit, self.pattern)
