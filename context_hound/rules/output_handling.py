"""Rules for unsafe handling of model output in application code."""

from __future__ import annotations

import re
from pathlib import Path

from context_hound.extractor import PromptUnit
from context_hound.rules.base import RuleMatch, line_match

_OUTPUT_NAME_RE = re.compile(
    r"(?:content|message|output|completion|response|result|text|body|answer|reply)\b",
    re.IGNORECASE,
)
_JSON_PARSE_RE = re.compile(
    r"""JSON\.parse\s*\(\s*(?!['"`{\[]|\d)\s*[a-zA-Z_$][a-zA-Z0-9_$.\[\]'"]*\s*[)]""",
    re.IGNORECASE,
)
_JSON_LOADS_RE = re.compile(
    r"""json\.loads\s*\(\s*(?!['"`{\[]|\d)\s*[a-z_][a-z0-9_$.\[\]'"]*\s*[)]""", re.IGNORECASE
)
_SCHEMA_VALIDATOR_RE = re.compile(
    r"(?:(?<!JSON)\.parse\s*\(|\.safeParse\s*\(|\.validate\s*\(|ajv\b|new\s+Ajv|Joi\s*\."
    r"|z\s*\.\s*(?:object|string|number|array|boolean|enum|union|infer)\b|yup\s*\."
    r"|pydantic|marshmallow|cerberus|voluptuous|jsonschema\.validate|TypeAdapter"
    r"|model_validate)",
    re.IGNORECASE,
)

_MARKDOWN_RENDER_RE = re.compile(
    r"(?:marked\.parse\s*\(|marked\s*[.(]|markdownIt\s*[.(]|new\s+MarkdownIt|showdown"
    r"|micromark\s*\(|dangerouslySetInnerHTML\s*=\s*\{\s*\{?\s*__html\s*:)",
    re.IGNORECASE,
)
_SANITIZER_RE = re.compile(
    r"(?:DOMPurify|sanitize\s*\(|createDOMPurify|bleach\.clean)", re.IGNORECASE
)
_LITERAL_ARGUMENT_RE = re.compile(r"""^\s*['"`]""")

_EXEC_SINK_RE = re.compile(
    r"(?:\beval\s*\(|new\s+Function\s*\(|(?:exec|execSync|execFile)\s*\("
    r"|db\s*(?:\??\.)?\s*(?:query|execute|run)\s*\(|connection\s*(?:\??\.)?\s*query\s*\("
    r"|pool\s*(?:\??\.)?\s*query\s*\(|cursor\.execute\s*\()",
    re.IGNORECASE,
)
_PY_EXEC_SINK_RE = re.compile(r"\b(?:eval|exec)\s*\(", re.IGNORECASE)
_MODEL_OUTPUT_ARG_RE = re.compile(
    r"(?:llm|ai|gpt|claude|model|completion|response|output|result|answer|generated"
    r"|message\.content|choices\[)",
    re.IGNORECASE,
)


class UnvalidatedJsonOutputRule:
    """Flags JSON parsing of model output in files with no schema validator."""

    rule_id = "OUT-001"
    title = "LLM JSON output parsed without schema validation"
    severity = "critical"
    confidence = "medium"
    category = "injection"
    remediation = (
        "Always validate JSON parsed from LLM output using a schema library (Zod, AJV, Joi, "
        "Yup, Pydantic) before accessing properties or driving application logic. Never trust "
        "the model to conform to the requested schema."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or _SCHEMA_VALIDATOR_RE.search(unit.text):
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if (_JSON_PARSE_RE.search(line) or _JSON_LOADS_RE.search(line))
            and _OUTPUT_NAME_RE.search(line)
        ]


class UnsanitizedMarkdownRenderRule:
    """Flags Markdown/HTML rendering of variables in files with no sanitizer."""

    rule_id = "OUT-002"
    title = "LLM output rendered via Markdown or HTML without sanitization"
    severity = "critical"
    confidence = "medium"
    category = "exfiltration"
    remediation = (
        "Pipe all LLM-generated Markdown or HTML through DOMPurify (or equivalent) before "
        "rendering. Configure it to strip remote image sources and script tags to prevent data "
        "exfiltration via injected tracking pixels."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        text = unit.text
        if unit.kind != "code-block" or not _MARKDOWN_RENDER_RE.search(text):
            return []
        if _SANITIZER_RE.search(text):
            return []
        matches: list[RuleMatch] = []
        for offset, line in enumerate(unit.lines):
            call = _MARKDOWN_RENDER_RE.search(line)
            if call is None or _LITERAL_ARGUMENT_RE.match(line[call.end() :]):
                continue
            matches.append(line_match(unit, offset, line))
        return matches


class OutputExecutionSinkRule:
    rule_id = "OUT-003"
    title = "LLM output used directly in exec(), eval(), or database query"
    severity = "critical"
    confidence = "high"
    category = "injection"
    remediation = (
        "Never execute LLM output as code or SQL. Parse the response into a strict schema "
        "first, then use parameterised queries or a dedicated command parser. Treat all model "
        "output as untrusted user input."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block":
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _EXEC_SINK_RE.search(line) and _MODEL_OUTPUT_ARG_RE.search(line)
        ]


class PythonEvalOutputRule:
    """Python-only variant of OUT-003 for ``eval``/``exec`` builtins."""

    rule_id = "OUT-004"
    title = "Python eval() or exec() called with LLM-generated output"
    severity = "critical"
    confidence = "high"
    category = "injection"
    remediation = (
        "Never pass LLM-generated output to eval() or exec() in Python. Parse the response into "
        "a validated schema (e.g. Pydantic) first, then execute only predefined, constrained "
        "operations. Treat all model output as untrusted user input."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or Path(file_path).suffix.lower() != ".py":
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _PY_EXEC_SINK_RE.search(line) and _MODEL_OUTPUT_ARG_RE.search(line)
        ]


OUTPUT_HANDLING_RULES = (
    UnvalidatedJsonOutputRule(),
    UnsanitizedMarkdownRenderRule(),
    OutputExecutionSinkRule(),
    PythonEvalOutputRule(),
)
