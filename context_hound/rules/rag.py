"""Retrieval-augmented generation and agent-memory rules."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import LinePatternRule, RuleMatch, line_match, match_lines

_SYSTEM_ROLE_RE = re.compile(r"""role\s*:\s*['"`]system['"`]""", re.IGNORECASE)
_CONTENT_FROM_VARIABLE_RE = re.compile(
    r"""content\s*:\s*(?!['"`\d])\s*[a-zA-Z_$][a-zA-Z0-9_$.\[\]]*""", re.IGNORECASE
)
_ROLE_WINDOW = 4

_INGESTION_LOOP_RE = re.compile(
    r"(?:\.(?:forEach|map|filter|reduce)\s*\(\s*(?:async\s+)?\(?"
    r"(?:doc|chunk|passage|item|record|text)\b"
    r"|for\s+(?:const|let|var)\s+\w+\s+of\s+\w*(?:docs?|chunks?|documents?|passages?|texts?"
    r"|items?)\w*"
    r"|for\s+\w+\s+in\s+\w*(?:docs?|chunks?|documents?|passages?|texts?|items?)\w*)",
    re.IGNORECASE,
)
_POISON_MARKER_RE = re.compile(
    r"(?:system\s*prompt\s*:|always\s+return|never\s+redact|debug\s+mode\s*[=:]\s*true"
    r"|confidential\s+instructions?\s*:|override\s+(?:system|instructions?|constraints?)"
    r"|ignore\s+(?:previous|all)\s+(?:instructions?|rules?|constraints?))",
    re.IGNORECASE,
)

_MEMORY_WRITE_RE = re.compile(
    r"(?:memory\s*(?:\??\.)?\s*(?:add|set|store|save|push|append)\s*\(|saveMemory\s*\("
    r"|storeMemory\s*\(|addMemory\s*\(|conversationStore\s*(?:\??\.)?\s*(?:set|add)\s*\("
    r"|memoryStore\s*(?:\??\.)?\s*(?:add|set)\s*\(|\.remember\s*\()",
    re.IGNORECASE,
)
_USER_INPUT_SOURCE_RE = re.compile(
    r"(?:req\.body|req\.query|req\.params|request\.body|ctx\.body|ctx\.request\.body"
    r"|userInput|userMessage)\b",
    re.IGNORECASE,
)


class RetrievedSystemRoleRule:
    """Flags ``role: "system"`` messages whose content comes from a variable."""

    rule_id = "RAG-001"
    title = "Retrieved content injected as system-role message"
    severity = "high"
    confidence = "high"
    category = "injection"
    remediation = (
        'Never assign retrieved or external content to role: "system". Use role: "tool" or '
        'role: "user" and label it as untrusted context with clear delimiters.'
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        lines = unit.lines
        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines):
            if not _SYSTEM_ROLE_RE.search(line):
                continue
            window = "\n".join(lines[offset : offset + _ROLE_WINDOW])
            if _CONTENT_FROM_VARIABLE_RE.search(window):
                matches.append(line_match(unit, offset, line))
        return matches


class IngestionPoisoningRule:
    """Flags instruction-like markers inside a document ingestion loop."""

    rule_id = "RAG-002"
    title = "Instruction-like phrases in document ingestion pipeline"
    severity = "high"
    confidence = "medium"
    category = "injection"
    remediation = (
        "Filter instruction-like strings from documents at ingestion time, before they are "
        "stored or embedded. Use a phrase denylist and strip or reject documents that match."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not _INGESTION_LOOP_RE.search(unit.text):
            return []
        return match_lines(unit, _POISON_MARKER_RE)


class UserControlledMemoryWriteRule:
    rule_id = "RAG-003"
    title = "Agent memory written directly from user-controlled input"
    severity = "high"
    confidence = "medium"
    category = "injection"
    remediation = (
        "Validate and sanitize all data before writing to memory stores. Store only "
        "structured, explicit facts (name, locale); never store free-form instructions or raw "
        "message content. Require user confirmation before persisting preferences."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block":
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _MEMORY_WRITE_RE.search(line) and _USER_INPUT_SOURCE_RE.search(line)
        ]


RETRIEVED_CONTEXT_PRIORITY = LinePatternRule(
    rule_id="RAG-004",
    title="Prompt instructs model to treat retrieved context as highest priority",
    severity="medium",
    confidence="medium",
    category="injection",
    remediation=(
        "Explicitly state that retrieved context is untrusted data and must not override "
        "developer instructions. Retrieved content should inform, not direct, model behavior."
    ),
    pattern=re.compile(
        r"(?:(?:retrieved|context|documents?|knowledge\s+base|search\s+results?).{0,60}"
        r"(?:highest\s+priority|overrides?|takes?\s+precedence|more\s+important\s+than"
        r"|supersedes?|always\s+follow|must\s+follow)"
        r"|(?:always|must|strictly)\s+follow\s+(?:the\s+)?(?:retrieved|context|documents?"
        r"|knowledge\s+base|search\s+results?))",
        re.IGNORECASE,
    ),
)

RAG_RULES = (
    RetrievedSystemRoleRule(),
    IngestionPoisoningRule(),
    UserControlledMemoryWriteRule(),
    RETRIEVED_CONTEXT_PRIORITY,
)
