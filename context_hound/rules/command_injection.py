"""Shell command-injection rules for code units."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import RuleMatch, line_match

_EXEC_CALL_RE = re.compile(r"(?:execSync|exec|execFile|spawnSync)\s*\(", re.IGNORECASE)
_TEMPLATE_VAR_RE = re.compile(r"`[^`]*\$\{[^}]+\}[^`]*`")
_TEMPLATE_ASSIGN_RE = re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*`[^`]*\$\{[^}]+\}")
_ASSIGN_LOOKBACK = 5

_DOLLAR_PAREN_FILTER_RE = re.compile(
    r"""includes\s*\(\s*['"`]\$\(\s*['"`]\s*\)|indexOf\s*\(\s*['"`]\$\(\s*['"`]"""
)
_BACKTICK_FILTER_RE = re.compile(
    r"""includes\s*\(\s*['"`]`['"`]\s*\)|indexOf\s*\(\s*['"`]`['"`]"""
)

_GLOB_ASSIGN_RE = re.compile(
    r"(?:const|let|var)\s+(\w+)\s*=\s*(?:glob\.sync|globSync|fs\.readdirSync|readdirSync"
    r"|fg\.sync|globby\.sync)\s*\(",
    re.IGNORECASE,
)
_DERIVED_ASSIGN_RE = re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(\w+)\s*(?:\[|\.)")


class InterpolatedShellCommandRule:
    """Flags exec-style calls built from interpolated template strings.

    Catches both the inline form and a variable assigned from an interpolated
    template up to five lines before the call.
    """

    rule_id = "CMD-001"
    title = "Shell command constructed with unsanitised variable interpolation"
    severity = "critical"
    confidence = "high"
    category = "injection"
    remediation = (
        "Never interpolate variables directly into shell command strings. Use an array-based "
        "spawn API (e.g. child_process.spawn with an args array) so the shell never sees the "
        "variable as part of the command string."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        lines = unit.lines
        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines):
            if not _EXEC_CALL_RE.search(line):
                continue
            if _TEMPLATE_VAR_RE.search(line):
                matches.append(line_match(unit, offset, line))
                continue
            lookback = "\n".join(lines[max(0, offset - _ASSIGN_LOOKBACK) : offset])
            for assigned in _TEMPLATE_ASSIGN_RE.finditer(lookback):
                if re.search(rf"\b{re.escape(assigned.group(1))}\b", line):
                    matches.append(line_match(unit, offset, line))
                    break
        return matches


class PartialSubstitutionFilterRule:
    """Flags denylists that block one command-substitution form but not the other."""

    rule_id = "CMD-002"
    title = "Incomplete command substitution filtering: backtick bypass possible"
    severity = "high"
    confidence = "high"
    category = "injection"
    remediation = (
        "Block all forms of command substitution: $(), backticks, and ${ } in the same "
        "validation. Prefer an allowlist of safe command patterns over a denylist of dangerous "
        "ones."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        blocks_dollar_paren = bool(_DOLLAR_PAREN_FILTER_RE.search(unit.text))
        blocks_backtick = bool(_BACKTICK_FILTER_RE.search(unit.text))
        if blocks_dollar_paren == blocks_backtick:
            return []
        if blocks_dollar_paren:
            evidence = "Filters $() command substitution but not backtick substitution"
        else:
            evidence = "Filters backtick command substitution but not $() substitution"
        return [RuleMatch(evidence=evidence, line_start=unit.line_start, line_end=unit.line_end)]


class GlobPathInShellCommandRule:
    """Flags exec calls that interpolate paths obtained from glob or readdir."""

    rule_id = "CMD-003"
    title = "File path from glob or directory listing used in shell command"
    severity = "high"
    confidence = "medium"
    category = "injection"
    remediation = (
        "Sanitise or validate file paths before using them in shell commands. Use shell-quote "
        "or shlex to escape arguments, or pass paths as array arguments to spawn() to avoid "
        "shell interpretation entirely."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        lines = unit.lines
        tainted: list[str] = []
        for line in lines:
            found = _GLOB_ASSIGN_RE.search(line)
            if found and found.group(1) not in tainted:
                tainted.append(found.group(1))
        for line in lines:
            derived = _DERIVED_ASSIGN_RE.search(line)
            if derived and derived.group(2) in tainted and derived.group(1) not in tainted:
                tainted.append(derived.group(1))
        if not tainted:
            return []

        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines):
            if not _EXEC_CALL_RE.search(line):
                continue
            for name in tainted:
                escaped = re.escape(name)
                if re.search(rf"\$\{{\s*{escaped}\s*\}}", line) or re.search(
                    rf"""["'`]\s*\+\s*{escaped}""", line
                ):
                    matches.append(line_match(unit, offset, line))
                    break
        return matches


COMMAND_INJECTION_RULES = (
    InterpolatedShellCommandRule(),
    PartialSubstitutionFilterRule(),
    GlobPathInShellCommandRule(),
)
