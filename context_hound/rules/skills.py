"""Agent skill-file rules.

These only fire on skill definitions: a ``SKILL.md`` file, or markdown kept
under a ``skills/``, ``.openclaw`` or ``clawhub`` tree. Skill bodies are loaded
straight into an agent's context, so phrasing that would merely be risky in a
prompt template is treated as an active attack here.
"""

from __future__ import annotations

import re
from pathlib import PurePath

from context_hound.extractor import PromptUnit
from context_hound.rules.base import LinePatternRule, RuleMatch, line_match


def is_skill_file(file_path: str) -> bool:
    normalized = file_path.replace("\\", "/").lower()
    return (
        PurePath(normalized).name == "skill.md"
        or "/skills/" in normalized
        or ".openclaw" in normalized
        or "clawhub" in normalized
    )


class SkillPatternRule(LinePatternRule):
    """Line pattern rule restricted to skill files."""

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not is_skill_file(file_path):
            return []
        return super().check(unit, file_path)


SELF_AUTHORING = SkillPatternRule(
    rule_id="SKL-001",
    title="Skill instructs agent to write or modify skill files (self-authoring attack)",
    severity="critical",
    confidence="high",
    category="skills",
    remediation=(
        "Skill files must never instruct the agent to create, write or modify other SKILL.md "
        "files. Self-authoring gives a compromised skill persistence across sessions. Remove "
        "any instructions that reference skill file creation or modification."
    ),
    pattern=re.compile(
        r"(?:write|create|save|generate|update|modify|overwrite)\s+(?:a\s+)?(?:new\s+)?"
        r"(?:skill|SKILL\.md)|SKILL\.md.*(?:write|create|save|modify)"
        r"|(?:add|save|write)\s+(?:this|the|a)\s+(?:new\s+)?skill\s+(?:file|to\b)",
        re.IGNORECASE,
    ),
)

REMOTE_SKILL_LOAD = SkillPatternRule(
    rule_id="SKL-002",
    title="Skill instructs agent to fetch or load skills from an external URL",
    severity="critical",
    confidence="high",
    category="skills",
    remediation=(
        "Skills must never load content from remote URLs at runtime; the remote file can "
        "change after installation. Only use static, locally stored skills from pinned, "
        "trusted sources."
    ),
    pattern=re.compile(
        r"(?:fetch|download|load|import|curl|wget|get)\s+(?:(?:the\s+)?skill|skills|SKILL\.md)"
        r"\s+from\s+(?:https?://|github\.com|raw\.github|clawhub)"
        r"|https?://\S+SKILL\.md|extraDirs['\":\s]+https?://",
        re.IGNORECASE,
    ),
)

SKILL_INJECTION = SkillPatternRule(
    rule_id="SKL-003",
    title="Prompt injection in skill body targeting agent core instructions",
    severity="critical",
    confidence="high",
    category="skills",
    remediation=(
        "The skill contains instruction-override phrasing aimed at the agent's identity or "
        "safety rules. Quarantine the skill and audit the skills directory for similar payloads."
    ),
    pattern=re.compile(
        r"ignore\s+(?:all\s+)?(?:previous|above|prior|your)\s+instructions?"
        r"|disregard\s+(?:your\s+)?(?:system\s+prompt|instructions?|rules?|guidelines?|identity)"
        r"|forget\s+(?:everything|all|your)\s+(?:above|before|prior|training)"
        r"|you\s+are\s+now\s+(?:a\s+)?"
        r"(?:different|new|another|unrestricted|unconstrained|jailbroken|free|DAN)\b"
        r"|new\s+instructions?\s+override"
        r"|override\s+(?:all\s+)?(?:previous|system|core)\s+instructions?",
        re.IGNORECASE,
    ),
)

_COMMAND_DISPATCH_RE = re.compile(r"command-dispatch\s*:\s*tool\b", re.IGNORECASE)
_RAW_ARG_MODE_RE = re.compile(r"command-arg-mode\s*:\s*raw\b", re.IGNORECASE)


class RawCommandDispatchRule:
    """Flags skills that route user arguments straight to a tool."""

    rule_id = "SKL-004"
    title = "Skill frontmatter uses command-dispatch: tool with raw argument mode"
    severity = "high"
    confidence = "high"
    category = "skills"
    remediation = (
        "command-dispatch: tool with command-arg-mode: raw forwards unvalidated user input to "
        "a tool without any model reasoning. Scope command-tool to a sandboxed, minimal tool "
        "and validate arguments before dispatch."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not is_skill_file(file_path) or not _COMMAND_DISPATCH_RE.search(unit.text):
            return []
        raw_args = _RAW_ARG_MODE_RE.search(unit.text) is not None
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _COMMAND_DISPATCH_RE.search(line) or (raw_args and _RAW_ARG_MODE_RE.search(line))
        ]


SENSITIVE_PATH_ACCESS = SkillPatternRule(
    rule_id="SKL-005",
    title="Skill body instructs agent to access sensitive filesystem paths",
    severity="high",
    confidence="high",
    category="skills",
    remediation=(
        "The skill asks for credentials or system files (~/.ssh, ~/.env, /etc/passwd), a "
        "data exfiltration pattern. Remove the skill and audit the agent workspace."
    ),
    pattern=re.compile(
        r"~/\.(?:ssh|env|aws|config|gnupg|netrc|bash_history|zsh_history|npmrc|pypirc|docker)\b"
        r"|/etc/(?:passwd|shadow|hosts|sudoers|crontab)\b|\.\.[/\\]\.\.[/\\]"
        r"|(?:read|open|cat|get|fetch|access|load)\s+(?:the\s+)?(?:file\s+at\s+)?"
        r"~/\.(?:ssh|env|aws)",
        re.IGNORECASE,
    ),
)

PRIVILEGE_CLAIM = SkillPatternRule(
    rule_id="SKL-006",
    title="Skill claims elevated privileges or instructs agent to bypass other skills",
    severity="high",
    confidence="medium",
    category="skills",
    remediation=(
        "No skill has authority over other installed skills; trust comes from workspace "
        "configuration only. Treat the skill as potentially malicious and remove it."
    ),
    pattern=re.compile(
        r"(?:override|disable|bypass|ignore|supersede)\s+(?:all\s+)?(?:other\s+)?"
        r"(?:skills?|restrictions?|safety\s+rules?|guardrails?)\b"
        r"|this\s+skill\s+(?:has|grants?|gives?)\s+"
        r"(?:elevated|full|unrestricted|admin|root|system)\s+(?:access|permissions?|privileges?)"
        r"|you\s+(?:now\s+)?have\s+(?:full|unrestricted|elevated|root|admin)\s+"
        r"(?:access|permissions?|control)\s+over",
        re.IGNORECASE,
    ),
)

_CREDENTIAL_KEY_RE = re.compile(
    r"^\s*(?:api[_-]?key|secret[_-]?key|access[_-]?token|auth[_-]?token|api[_-]?token"
    r"|password|bearer|private[_-]?key|client[_-]?secret)\s*:",
    re.IGNORECASE,
)
_CREDENTIAL_VALUE_RE = re.compile(
    r""":\s*['"]?(?!\s*$)(?!\$\{)(?!\$[A-Z_])(?!\{\{)[a-zA-Z0-9+/=\-_]{16,}['"]?\s*$"""
)


class FrontmatterCredentialRule:
    """Flags literal secrets in a skill's YAML frontmatter block."""

    rule_id = "SKL-007"
    title = "Hardcoded credential value in YAML frontmatter field"
    severity = "critical"
    confidence = "medium"
    category = "skills"
    remediation = (
        "Never hardcode API keys or tokens in SKILL.md frontmatter; shared skills expose them "
        "publicly. Reference environment variables ($MY_API_KEY) or agent configuration instead."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if not is_skill_file(file_path):
            return []
        lines = unit.lines
        if not lines or lines[0].strip() != "---":
            return []
        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines[1:], start=1):
            if line.strip() == "---":
                break
            if _CREDENTIAL_KEY_RE.search(line) and _CREDENTIAL_VALUE_RE.search(line):
                matches.append(line_match(unit, offset, line))
        return matches


SKILL_RULES = (
    SELF_AUTHORING,
    REMOTE_SKILL_LOAD,
    SKILL_INJECTION,
    RawCommandDispatchRule(),
    SENSITIVE_PATH_ACCESS,
    PRIVILEGE_CLAIM,
    FrontmatterCredentialRule(),
)
