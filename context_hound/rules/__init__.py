"""Rules package."""

from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from context_hound.rules.agentic import AGENTIC_RULES
from context_hound.rules.base import Finding, Rule, RuleMatch
from context_hound.rules.command_injection import COMMAND_INJECTION_RULES
from context_hound.rules.encoding import ENCODING_RULES
from context_hound.rules.exfiltration import EXFILTRATION_RULES
from context_hound.rules.injection import INJECTION_RULES
from context_hound.rules.jailbreak import JAILBREAK_RULES
from context_hound.rules.multimodal import MULTIMODAL_RULES
from context_hound.rules.output_handling import OUTPUT_HANDLING_RULES
from context_hound.rules.rag import RAG_RULES
from context_hound.rules.skills import SKILL_RULES
from context_hound.rules.unsafe_tools import UNSAFE_TOOL_RULES

__all__ = [
    "Finding",
    "Rule",
    "RuleInfo",
    "RuleMatch",
    "all_rules",
    "get_rule",
    "list_rule_info",
    "matches_rule_filter",
]

BUILTIN_SOURCE = "built-in"


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Rule metadata for listing and selection."""

    rule_id: str
    title: str
    severity: str
    confidence: str
    category: str
    source: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def all_rules() -> list[Rule]:
    """Return the built-in rules in registration order."""
    return [
        *INJECTION_RULES,
        *EXFILTRATION_RULES,
        *JAILBREAK_RULES,
        *UNSAFE_TOOL_RULES,
        *COMMAND_INJECTION_RULES,
        *RAG_RULES,
        *ENCODING_RULES,
        *OUTPUT_HANDLING_RULES,
        *AGENTIC_RULES,
        *SKILL_RULES,
        *MULTIMODAL_RULES,
    ]


def get_rule(rule_id: str) -> Rule:
    """Look up a built-in rule by id."""
    for rule in all_rules():
        if rule.rule_id == rule_id:
            return rule
    raise KeyError(f"Unknown rule id: {rule_id}")


def list_rule_info(
    extra_rules: Iterable[Rule] = (), *, extra_source: str = "plugin"
) -> list[RuleInfo]:
    """Return metadata for built-in rules followed by any extra (plugin) rules."""
    info = [_info(rule, BUILTIN_SOURCE) for rule in all_rules()]
    info.extend(_info(rule, extra_source) for rule in extra_rules)
    return info


def matches_rule_filter(rule_id: str, patterns: Sequence[str]) -> bool:
    """Return True when ``rule_id`` matches any pattern.

    A pattern ending in ``*`` is a prefix match (``"INJ-*"``); anything else
    must equal the id exactly.
    """
    for pattern in patterns:
        if pattern.endswith("*"):
            if rule_id.startswith(pattern[:-1]):
                return True
        elif rule_id == pattern:
            return True
    return False


def _info(rule: Rule, source: str) -> RuleInfo:
    return RuleInfo(
        rule_id=rule.rule_id,
        title=str(getattr(rule, "title", "")),
        severity=str(getattr(rule, "severity", "")),
        confidence=str(getattr(rule, "confidence", "")),
        category=str(getattr(rule, "category", "")),
        source=source,
    )
