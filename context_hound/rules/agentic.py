"""Autonomous-agent rules: tool arguments, loop guards, memory and planning."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import LinePatternRule, RuleMatch, line_match

_CODE_ONLY = frozenset({"code-block"})

SYSTEM_PROMPT_TOOL_ARGUMENT = LinePatternRule(
    rule_id="AGT-001",
    title="Tool call parameter receives system-prompt content",
    severity="critical",
    confidence="high",
    category="agentic",
    remediation=(
        "Never pass raw system-prompt or instructions fields as tool call arguments. Sanitise "
        "and bound the data before it reaches any tool parameter, and validate tool inputs "
        "against a strict schema."
    ),
    pattern=re.compile(
        r"""(?:tool_call|function_call)\s*[({].*?(?:["'](?:system|instructions?)["']\s*:\s*"""
        r"""|arguments?\s*:\s*["'][^"']*(?:system|instructions?))""",
        re.IGNORECASE,
    ),
)

_LOOP_GUARD_RE = re.compile(
    r"(?:max_iterations|max_steps|max_turns|timeout|recursion_limit)\s*[=:]", re.IGNORECASE
)
_AGENT_LOOP_RE = re.compile(
    r"(?:while\s*(?:True|true|\(true\))|agent\.run\s*\(|AgentExecutor|\.invoke\s*\("
    r"|run_until_done|agent_loop)",
    re.IGNORECASE,
)


class UnboundedAgentLoopRule:
    """Flags agent loops in code with no iteration or timeout bound.

    Reports only the first loop line of a unit.
    """

    rule_id = "AGT-002"
    title = "Agent loop with no iteration or timeout guard"
    severity = "high"
    confidence = "medium"
    category = "agentic"
    remediation = (
        "Add a finite bound on agent loops: set max_iterations, max_steps, max_turns, timeout, "
        "or recursion_limit in your agent config or system prompt to prevent unbounded "
        "execution."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or _LOOP_GUARD_RE.search(unit.text):
            return []
        for offset, line in enumerate(unit.lines):
            if _AGENT_LOOP_RE.search(line):
                return [line_match(unit, offset, line)]
        return []


UNVALIDATED_MEMORY_WRITE = LinePatternRule(
    rule_id="AGT-003",
    title="Agent memory written from unvalidated LLM output",
    severity="high",
    confidence="high",
    category="agentic",
    remediation=(
        "Validate and sanitise LLM output before writing to agent memory or vector stores. "
        "Never pass raw model responses directly to memory.save(), memory.add(), or "
        "vectorstore.upsert() without schema validation."
    ),
    pattern=re.compile(
        r"(?:memory\.(?:save|add|append)|vectorstore\.upsert|vector_store\.upsert"
        r"|memory_store\.(?:set|add|write))\s*\(\s*(?:response|output|result|completion"
        r"|llm_output|model_output|answer|generated)",
        re.IGNORECASE,
    ),
    kinds=_CODE_ONLY,
)

PLAN_INJECTION = LinePatternRule(
    rule_id="AGT-004",
    title="Plan injection: user input interpolated into agent planning prompt",
    severity="high",
    confidence="medium",
    category="agentic",
    remediation=(
        "Wrap user input in a trust-boundary delimiter before including it in agent planning "
        "prompts. Use a structured object field (not string concatenation) and label user "
        "content as untrusted data, not instructions."
    ),
    pattern=re.compile(
        r"""(?:plan|task|goal|objective|agent_instructions?)\s*[=+:]\s*[`"']?[^`"'\n]*"""
        r"""\$\{?\s*(?:user(?:Input|Query|Message|Request)|request|query|input)\s*\}?""",
        re.IGNORECASE,
    ),
)

AGENTIC_RULES = (
    SYSTEM_PROMPT_TOOL_ARGUMENT,
    UnboundedAgentLoopRule(),
    UNVALIDATED_MEMORY_WRITE,
    PLAN_INJECTION,
)
