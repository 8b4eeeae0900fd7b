"""Prompt-unit extraction from source files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

PromptKind = Literal["raw", "template-string", "object-field", "chat-message", "code-block"]

PROMPT_KEY_RE = re.compile(
    r"""(?:^|["'])(?:system|prompt|instructions?|messages?|role|content|context|directive)"""
    r"""(?:["']|\s*:)""",
    re.IGNORECASE,
)
ROLE_CONTENT_RE = re.compile(
    r"""\{\s*["']?role["']?\s*:\s*["'][^"']+["']\s*,\s*["']?content["']?\s*:""",
    re.IGNORECASE,
)
SYSTEM_PHRASE_RE = re.compile(
    r"(?:you are|your (role|task|job|purpose) is|do not|don't|never|always|must|system:"
    r"|instructions?:|you must|as an? (ai|assistant|bot))",
    re.IGNORECASE,
)

# Whole-file triggers: several rules correlate lines across the file (sanitised
# a few lines earlier, validator imported elsewhere), so the file is exposed once
# as a code-block when any of these appear.
CODE_BLOCK_TRIGGERS = (
    re.compile(r"""(?:execSync|execFile|spawnSync)\s*\(|(?:exec|spawn)\s*\(\s*[`"']""", re.I),
    re.compile(r"messages\s*(?:\??\.)?\s*push\s*\(\s*\{", re.I),
    re.compile(
        r"""(?:atob|btoa)\s*\(|\.toString\s*\(\s*['"]base64['"]\s*\)"""
        r"""|Buffer\.from\s*\([^)]+,\s*['"]base64['"]""",
        re.I,
    ),
    re.compile(r"JSON\.parse\s*\(", re.I),
    re.compile(
        r"(?:marked\s*[.(]|marked\.parse\s*\(|markdownIt\s*[.(]|new\s+MarkdownIt"
        r"|dangerouslySetInnerHTML\s*=)",
        re.I,
    ),
)

_JVM_TRIGGER = r"ChatLanguageModel|OpenAiChatModel|AnthropicChatModel|langchain4j|spring\.ai"
_SHELL_TRIGGER = r"curl.{0,60}api\.openai\.com|curl.{0,60}api\.anthropic\.com"
_NATIVE_TRIGGER = r"llama_|openai_|curl.{0,40}openai"

LLM_TRIGGERS: dict[str, re.Pattern[str]] = {
    ext: re.compile(pattern, re.IGNORECASE)
    for ext, pattern in {
        ".py": (
            r"from openai import|import openai|from anthropic import|import anthropic|langchain"
            r"|litellm|google\.generativeai|\.chat\.completions\.create|\.messages\.create"
            r"|ChatOpenAI|ChatAnthropic"
        ),
        ".go": r"""go-openai|openai\.NewClient|anthropic\.NewClient""",
        ".rs": r"async_openai|openai::Client|use openai|anthropic::Client",
        ".java": _JVM_TRIGGER,
        ".kt": _JVM_TRIGGER,
        ".kts": _JVM_TRIGGER,
        ".cs": r"OpenAIClient|AzureOpenAIClient|IChatCompletionService|SemanticKernel|ChatClient",
        ".php": r"OpenAI::client|->chat->completions|Anthropic::|use OpenAI",
        ".swift": r"OpenAI\(token:|OpenAIKit|Anthropic\.",
        ".rb": r"OpenAI::Client\.new|ruby-openai|Anthropic::Client",
        ".sh": _SHELL_TRIGGER,
        ".bash": _SHELL_TRIGGER,
        ".vue": r"openai|anthropic|\.chat\.completions|\.messages\.create|ChatOpenAI|langchain",
        ".c": _NATIVE_TRIGGER,
        ".cpp": _NATIVE_TRIGGER,
        ".cc": _NATIVE_TRIGGER,
        ".h": _NATIVE_TRIGGER,
        ".hs": r"openai-hs|anthropic-hs",
    }.items()
}

JS_EXTENSIONS = frozenset({".ts", ".js", ".tsx", ".jsx"})
STRUCTURED_EXTENSIONS = frozenset({".json", ".yaml", ".yml"})

MIN_RAW_LENGTH = 50
STRUCTURED_WINDOW = 20
CHAT_MESSAGE_WINDOW = 5
OBJECT_FIELD_WINDOW = 15
MAX_TEMPLATE_LINES = 200


@dataclass(frozen=True, slots=True)
class PromptUnit:
    """A span of file text treated as LLM-facing instruction content.

    Line numbers are 1-based and inclusive.
    """

    text: str
    line_start: int
    line_end: int
    kind: PromptKind

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


def llm_trigger_for(extension: str) -> re.Pattern[str] | None:
    """Return the LLM-library trigger pattern for a file extension, if any."""
    return LLM_TRIGGERS.get(extension.lower())


def extract_prompts(file_path: str | Path) -> list[PromptUnit]:
    """Read a file and classify its content into prompt units.

    Unreadable or non-UTF-8 files yield no units.
    """
    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []
    return extract_from_text(content, path.suffix)


def extract_from_text(content: str, extension: str) -> list[PromptUnit]:
    """Classify already-read content using extension-driven heuristics."""
    ext = extension.lower()
    if ext in STRUCTURED_EXTENSIONS:
        return extract_from_structured(content)
    if ext in JS_EXTENSIONS or ext in LLM_TRIGGERS:
        return extract_from_code(content, ext)
    return extract_from_raw(content)


def extract_from_raw(content: str) -> list[PromptUnit]:
    if len(content) <= MIN_RAW_LENGTH and not SYSTEM_PHRASE_RE.search(content):
        return []
    lines = content.split("\n")
    return [PromptUnit(text=content, line_start=1, line_end=len(lines), kind="raw")]


def extract_from_structured(content: str) -> list[PromptUnit]:
    lines = content.split("\n")
    units: list[PromptUnit] = []
    for index, line in enumerate(lines):
        if PROMPT_KEY_RE.search(line):
            units.append(_window(lines, index, STRUCTURED_WINDOW, "object-field"))
    return units


def extract_from_code(content: str, extension: str) -> list[PromptUnit]:
    lines = content.split("\n")
    units = _template_literals(lines)

    for index, line in enumerate(lines):
        if ROLE_CONTENT_RE.search(line):
            units.append(_window(lines, index, CHAT_MESSAGE_WINDOW, "chat-message"))
        elif PROMPT_KEY_RE.search(line):
            units.append(_window(lines, index, OBJECT_FIELD_WINDOW, "object-field"))

    if _needs_code_block(content, extension):
        units.append(
            PromptUnit(text=content, line_start=1, line_end=len(lines), kind="code-block")
        )
    return units


def _template_literals(lines: list[str]) -> list[PromptUnit]:
    units: list[PromptUnit] = []
    inside = False
    start = 0
    buffer: list[str] = []

    for index, line in enumerate(lines):
        odd_backticks = line.count("`") % 2 == 1
        if not inside:
            if odd_backticks:
                inside = True
                start = index
                buffer = [line]
            continue

        buffer.append(line)
        if odd_backticks:
            text = "\n".join(buffer)
            if SYSTEM_PHRASE_RE.search(text) or PROMPT_KEY_RE.search(text):
                units.append(
                    PromptUnit(
                        text=text,
                        line_start=start + 1,
                        line_end=index + 1,
                        kind="template-string",
                    )
                )
            inside = False
            buffer = []
        elif len(buffer) > MAX_TEMPLATE_LINES:
            inside = False
            buffer = []
    return units


def _needs_code_block(content: str, extension: str) -> bool:
    if any(pattern.search(content) for pattern in CODE_BLOCK_TRIGGERS):
        return True
    trigger = llm_trigger_for(extension)
    return trigger is not None and trigger.search(content) is not None


def _window(lines: list[str], index: int, extra: int, kind: PromptKind) -> PromptUnit:
    end = min(index + extra, len(lines) - 1)
    return PromptUnit(
        text="\n".join(lines[index : end + 1]),
        line_start=index + 1,
        line_end=end + 1,
        kind=kind,
    )
