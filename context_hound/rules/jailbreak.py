"""Jailbreak and safety-weakening phrasing rules."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import LinePatternRule, RuleMatch, match_lines

KNOWN_JAILBREAK_PHRASE = LinePatternRule(
    rule_id="JBK-001",
    title="Known jailbreak phrase detected",
    severity="critical",
    confidence="high",
    category="jailbreak",
    remediation=(
        "Remove jailbreak phrases from prompts. Keep adversarial test prompts in a dedicated, "
        "excluded folder."
    ),
    pattern=re.compile(
        r"(?:ignore (all |previous |prior |above )?instructions?|developer mode|DAN[^a-z]"
        r"|do anything now|jailbreak|pretend you (have no|are not|don't have)"
        r"|act as if you have no (limits|restrictions?)"
        r"|disregard (all |your |previous |the )?"
        r"(?:instructions?|guidelines?|rules?|constraints?|policies?))",
        re.IGNORECASE,
    ),
)

_WEAK_SAFETY_RE = re.compile(
    r"(?:always comply|must (always )?answer|no matter what|at all costs"
    r"|under (any|all) circumstances|never (refuse|decline|say no)"
    r"|you (cannot|can't|must not) (refuse|decline)|comply with (all|every|any) request)",
    re.IGNORECASE,
)
_ANY_CIRCUMSTANCES_RE = re.compile(r"under (any|all) circumstances")
_PROTECTIVE_CIRCUMSTANCES_RE = re.compile(
    r"(?:never|do not|don't)\s.{0,60}under (any|all) circumstances"
)


class WeakSafetyLanguageRule:
    """Flags unconditional-compliance phrasing that an attacker can lean on."""

    rule_id = "JBK-002"
    title = "Weak safety language that can be overridden"
    severity = "high"
    confidence = "medium"
    category = "jailbreak"
    remediation = (
        'Replace weak directives ("always comply", "must answer") with bounded instructions '
        "that include explicit refusal conditions."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        matches: list[RuleMatch] = []
        for match in match_lines(unit, _WEAK_SAFETY_RE):
            lowered = match.evidence.lower()
            # "never ... under any circumstances" is protective phrasing.
            if _ANY_CIRCUMSTANCES_RE.search(lowered) and _PROTECTIVE_CIRCUMSTANCES_RE.search(
                lowered
            ):
                continue
            matches.append(match)
        return matches


ROLE_PLAY_ESCAPE = LinePatternRule(
    rule_id="JBK-003",
    title="Role-play escape hatch that undermines safety",
    severity="high",
    confidence="medium",
    category="jailbreak",
    remediation=(
        'If role-play is needed, explicitly state: "Even in role-play, you must not violate '
        'these guidelines."'
    ),
    pattern=re.compile(
        r"(?:pretend (you are|to be) (a|an) (?!assistant|helpful|AI).{0,40}"
        r"(?:with no (limit|restriction|filter)|uncensored|unfiltered)"
        r"|in this (scenario|story|game|simulation) you (can|may|are allowed to) "
        r"(do|say|reveal) anything)",
        re.IGNORECASE,
    ),
)

NO_HUMAN_REVIEW = LinePatternRule(
    rule_id="JBK-004",
    title="Agent instructed to act without confirmation or human review",
    severity="high",
    confidence="medium",
    category="jailbreak",
    remediation=(
        "Require explicit user confirmation for sensitive or irreversible actions. Remove "
        "language that disables human-in-the-loop review."
    ),
    pattern=re.compile(
        r"(?:without\s+(?:asking|confirmation|user\s+approval"
        r"|human\s+(?:review|approval|oversight))"
        r"|no\s+(?:confirmation|approval|user\s+input)\s+(?:needed|required|necessary)"
        r"|auto[-\s]?(?:run|execute|approve)\b|execute\s+immediately\b"
        r"|don't\s+(?:ask|wait|pause|confirm)\b|proceed\s+automatically\b"
        r"|take\s+action\s+(?:automatically|immediately|without\s+asking))",
        re.IGNORECASE,
    ),
)

COVER_TRACKS = LinePatternRule(
    rule_id="JBK-005",
    title="Evidence-erasure or cover-tracks instruction in prompt",
    severity="high",
    confidence="high",
    category="jailbreak",
    remediation=(
        "Remove any instruction that directs the model to delete logs, erase history, or "
        "conceal activity. Audit trails must be enforced at the infrastructure level."
    ),
    pattern=re.compile(
        r"(?:delete\s+(?:all\s+)?(?:logs?|history|traces?|evidence|records?)"
        r"|don'?t\s+(?:log|record|save|store)\s+(?:this|my|the|any)"
        r"|no\s+(?:logging|logs?|traces?)\b"
        r"|hide\s+(?:this|my|the)\s+(?:request|action|query|activity|conversation)"
        r"|cover\s+(?:your|my|the|our)\s+tracks?"
        r"|erase\s+(?:all\s+)?(?:history|logs?|traces?|records?|evidence)|leave\s+no\s+trace"
        r"|remove\s+(?:all\s+)?(?:traces?|evidence|logs?|history))",
        re.IGNORECASE,
    ),
)

_LEGITIMACY_RE = re.compile(
    r"(?:bug\s+bounty|penetration\s+test(?:ing|er)?"
    r"|(?:authorized|ethical)\s+(?:hacker|hacking|security|researcher|tester)"
    r"|security\s+researcher|red\s+team(?:ing|er)?|(?:bounty|pentest|bug.bounty)\s+mode"
    r"|as\s+a\s+(?:security\s+)?(?:researcher|tester|auditor|pentester))",
    re.IGNORECASE,
)
_UNSAFE_ACTION_RE = re.compile(
    r"(?:steal\b|exfiltrat|dump\s+(?:data|credentials?|passwords?|users?)"
    r"|bypass\s+(?:auth(?:entication|orization)?|security|access\s+control|permissions?)"
    r"|escalat\w*\s+privile|unauthorized\s+access|delete\s+(?:logs?|traces?|evidence|history)"
    r"|extract\s+(?:all\s+)?(?:sensitive\s+)?(?:data|credentials?|passwords?))",
    re.IGNORECASE,
)


class LegitimacyFramingRule:
    """Flags "authorized researcher" framing paired with an unsafe action request."""

    rule_id = "JBK-006"
    title = "Policy-legitimacy framing combined with unsafe action request"
    severity = "high"
    confidence = "medium"
    category = "jailbreak"
    remediation = (
        'Legitimacy-framing phrases ("bug bounty", "authorized penetration tester") do not '
        "change what the model is asked to do. Enforce safety constraints regardless of "
        "claimed role."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not _LEGITIMACY_RE.search(unit.text) or not _UNSAFE_ACTION_RE.search(unit.text):
            return []
        return match_lines(unit, _LEGITIMACY_RE)


JAILBREAK_RULES = (
    KNOWN_JAILBREAK_PHRASE,
    WeakSafetyLanguageRule(),
    ROLE_PLAY_ESCAPE,
    NO_HUMAN_REVIEW,
    COVER_TRACKS,
    LegitimacyFramingRule(),
)
