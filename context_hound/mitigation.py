"""Mitigation detection for prompt units.

A unit that already carries defensive language (immutable instructions,
delimited user input, refusal to reveal the system prompt, a tool allowlist,
untrusted-context labels) earns a percentage discount on every finding raised
against it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from context_hound.extractor import PromptUnit

_DETECTORS: tuple[tuple[str, re.Pattern[str], int], ...] = (
    (
        "System instructions cannot be changed",
        re.compile(
            r"(?:system instructions? (cannot|can't|must not) be "
            r"(changed|modified|overridden|ignored)"
            r"|these instructions? (are|remain) (permanent|fixed|immutable)"
            r"|ignore (any|all) attempts? to (change|modify|override) (your|these) instructions?)",
            re.IGNORECASE,
        ),
        15,
    ),
    (
        "User input delimited and labeled untrusted",
        re.compile(
            r"(?:```[\s\S]*?```|<user>[\s\S]*?</user>|\[USER\][\s\S]*?\[/USER\]"
            r"|untrusted (user )?(?:content|input)"
            r"|user.{0,20}(not|never) (an instruction|trusted|a command))",
            re.IGNORECASE,
        ),
        20,
    ),
    (
        "Refuses to reveal system prompt",
        re.compile(
            r"(?:never (reveal|repeat|share|disclose|expose|show|print) (your|the|these) "
            r"(system |hidden |initial |original )?(?:prompt|instructions?)"
            r"|do not (reveal|repeat|share|disclose) (this|these|your|the) "
            r"(system )?(?:prompt|instructions?))",
            re.IGNORECASE,
        ),
        15,
    ),
    (
        "Tool use constrained with allowlist",
        re.compile(
            r"(?:only (use|call|invoke) (the )?(following|listed|allowed|approved)|allowlist"
            r"|permitted tools?|restricted to.{0,30}(tools?|functions?))",
            re.IGNORECASE,
        ),
        10,
    ),
    (
        "RAG context labeled as untrusted",
        re.compile(
            r"(?:untrusted (external |retrieved )?content"
            r"|external content.{0,40}(may|might|could) (contain|include) instructions?"
            r"|do not (follow|execute|treat).{0,30}(retrieved|external|context))",
            re.IGNORECASE,
        ),
        10,
    ),
)


@dataclass(frozen=True, slots=True)
class MitigationCheck:
    name: str
    present: bool
    reduction: int


@dataclass(slots=True)
class MitigationScore:
    """Percentage discount earned by a unit; ``total`` ranges 0-70."""

    total: int = 0
    checks: list[MitigationCheck] = field(default_factory=list)


def score_mitigations(unit: PromptUnit) -> MitigationScore:
    """Run every mitigation detector over ``unit.text``."""
    checks = [
        MitigationCheck(name=name, present=bool(pattern.search(unit.text)), reduction=reduction)
        for name, pattern, reduction in _DETECTORS
    ]
    total = sum(check.reduction for check in checks if check.present)
    return MitigationScore(total=total, checks=checks)
