"""Encoding-based smuggling rules."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import RuleMatch, line_match

_PROMPT_CONSTRUCTION_RE = re.compile(
    r"""(?:messages\s*(?:\??\.)?\s*(?:push|append)|role\s*:\s*['"`](?:system|user)"""
    r"""|systemPrompt\s*[=+]|\.prompt\s*[=+]|prompt\s*\+=)""",
    re.IGNORECASE,
)
_BASE64_VARIABLE_RE = re.compile(
    r"""(?:atob|btoa)\s*\(\s*(?!['"`\d])\s*[a-zA-Z_$]""", re.IGNORECASE
)
_BUFFER_DECODE_RE = re.compile(
    r"""Buffer\.from\s*\(\s*(?!['"`\d])\s*[a-zA-Z_$][^,)]*,\s*['"]base64['"]""", re.IGNORECASE
)
_PY_BASE64_VARIABLE_RE = re.compile(
    r"""base64\.b64(?:en|de)code\s*\(\s*(?!['"`\d]|b['"])\s*[a-zA-Z_]"""
)

HIDDEN_CHARS = "\u200b-\u200f\u2028\u2029\u202a-\u202e\u2066-\u2069\ufeff"
_HIDDEN_UNICODE_RE = re.compile(f"[{HIDDEN_CHARS}]")
_HIDDEN_MARKER_RE = re.compile("[\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]")
_INSTRUCTION_WORD_RE = re.compile(
    r"(?:ignore|system|developer|tool|execute|override|instruction|forget|bypass|always|never)\b",
    re.IGNORECASE,
)
HIDDEN_PLACEHOLDER = "\u26af"


class Base64UserInputRule:
    """Flags Base64 encode/decode of a variable where prompts are assembled."""

    rule_id = "ENC-001"
    title = "Base64 encoding of user-controlled variable near prompt construction"
    severity = "medium"
    confidence = "medium"
    category = "injection"
    remediation = (
        "Never use Base64 encoding to sanitise user input before inserting it into a prompt. "
        "LLMs can decode Base64 and may execute embedded instructions. Validate and delimit "
        "input as plaintext instead."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind == "raw":
            return []
        if unit.kind == "code-block" and not _PROMPT_CONSTRUCTION_RE.search(unit.text):
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _BASE64_VARIABLE_RE.search(line)
            or _BUFFER_DECODE_RE.search(line)
            or _PY_BASE64_VARIABLE_RE.search(line)
        ]


class HiddenUnicodeRule:
    """Flags invisible control characters on lines that read like instructions.

    Evidence replaces each invisible character with a visible placeholder so
    reports show where they sit.
    """

    rule_id = "ENC-002"
    title = "Hidden Unicode control characters detected in prompt asset"
    severity = "high"
    confidence = "high"
    category = "injection"
    remediation = (
        "Remove all invisible Unicode control characters (zero-width spaces, bidi overrides) "
        "from prompt source files. Add a Unicode normalization step to your ingestion pipeline "
        "and reject content containing unexpected control characters."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        matches: list[RuleMatch] = []
        for offset, line in enumerate(unit.lines):
            if not _HIDDEN_UNICODE_RE.search(line) or not _INSTRUCTION_WORD_RE.search(line):
                continue
            lineno = unit.line_start + offset
            visible = _HIDDEN_MARKER_RE.sub(HIDDEN_PLACEHOLDER, line.strip())
            matches.append(
                RuleMatch(
                    evidence=f"[hidden Unicode] {visible}", line_start=lineno, line_end=lineno
                )
            )
        return matches


ENCODING_RULES = (
    Base64UserInputRule(),
    HiddenUnicodeRule(),
)
