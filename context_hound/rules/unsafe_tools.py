"""Unsafe tool-use rules."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import LinePatternRule, RuleMatch, first_line_match, line_match

UNBOUNDED_EXECUTION = LinePatternRule(
    rule_id="TOOL-001",
    title="Unbounded tool execution (run any command / browse anywhere)",
    severity="critical",
    confidence="high",
    category="unsafe-tools",
    remediation=(
        'Restrict tool use with an explicit allowlist. State: "You may only use the following '
        'tools: [list]. Do not use any others."'
    ),
    pattern=re.compile(
        r"(?:run (any|all|arbitrary) (command|code|script)"
        r"|execute (any|arbitrary) (command|code|program)"
        r"|browse (anywhere|any (site|url|website))"
        r"|access (any|all) (file|system|resource|endpoint)"
        r"|do anything the user (asks?|requests?|wants?)"
        r"|`[^`]{1,80}`\s*(?:to run|to execute|in the shell|as a command))",
        re.IGNORECASE,
    ),
)

_HAS_TOOLS_RE = re.compile(
    r"(?:you (can|may|should|are able to) (call|use|invoke|execute)|available tools?"
    r"|use the (following )?tools?|function calls?)",
    re.IGNORECASE,
)
_HAS_POLICY_RE = re.compile(
    r"(?:only (use|call|invoke)|allowlist|allowed tools?|permitted tools?"
    r"|do not (use|call) (other|additional|any other)|restrict(ed)? to)",
    re.IGNORECASE,
)
_CODE_EXEC_RE = re.compile(
    r"(?:execute (code|script|program)|run (code|script|program|command)|eval"
    r"|shell (command|exec))",
    re.IGNORECASE,
)
_SANDBOX_RE = re.compile(
    r"(?:sandbox|isolated?|no (file|network|internet|filesystem) access|read.only"
    r"|cannot access (file|network|disk|system))",
    re.IGNORECASE,
)
_STATIC_TOOL_NAME_RE = re.compile(r"""name\s*[:=]\s*['"`][^'"`\s]+['"`]""", re.IGNORECASE)
_DESCRIPTION_FROM_VARIABLE_RE = re.compile(
    r"""(?:description|instructions?)\s*[:=]\s*(?!['"`\d])\s*[a-zA-Z_$][a-zA-Z0-9_$.\[\]'"]*"""
    r"""\s*[,})]""",
    re.IGNORECASE,
)


class MissingToolPolicyRule:
    """Flags prompts that grant tools without an allowlist or usage policy."""

    rule_id = "TOOL-002"
    title = "No tool allowlist or usage policy defined"
    severity = "medium"
    confidence = "low"
    category = "unsafe-tools"
    remediation = (
        'Add a clear tool policy: "You may only call [tool names]. Refuse any request that '
        'requires tools outside this list."'
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if _HAS_TOOLS_RE.search(unit.text) and not _HAS_POLICY_RE.search(unit.text):
            return first_line_match(unit)
        return []


class UnsandboxedExecutionRule:
    """Flags code-execution capabilities described without sandbox constraints."""

    rule_id = "TOOL-003"
    title = "Code execution without sandboxing mention"
    severity = "high"
    confidence = "medium"
    category = "unsafe-tools"
    remediation = (
        "If code execution is needed, explicitly state sandbox constraints and disallow "
        "filesystem/network access unless required."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if _CODE_EXEC_RE.search(unit.text) and not _SANDBOX_RE.search(unit.text):
            return first_line_match(unit)
        return []


class DynamicToolDescriptionRule:
    """Flags tool schemas whose description is populated from a variable."""

    rule_id = "TOOL-004"
    title = "Tool description or schema field sourced from user-controlled variable"
    severity = "critical"
    confidence = "medium"
    category = "unsafe-tools"
    remediation = (
        "Tool descriptions must be static, server-side strings defined in code. Never populate "
        "description, instructions, or system fields in a tool schema from request data."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not _STATIC_TOOL_NAME_RE.search(unit.text):
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _DESCRIPTION_FROM_VARIABLE_RE.search(line)
        ]


UNSAFE_TOOL_RULES = (
    UNBOUNDED_EXECUTION,
    MissingToolPolicyRule(),
    UnsandboxedExecutionRule(),
    DynamicToolDescriptionRule(),
)
