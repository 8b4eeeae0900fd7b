"""Tests for prompt-unit extraction."""

from __future__ import annotations

from pathlib import Path

from context_hound.extractor import extract_from_text, extract_prompts, llm_trigger_for


def test_short_raw_text_without_instruction_phrase_is_ignored() -> None:
    assert extract_from_text("hello there", ".txt") == []


def test_long_plain_text_file_is_one_raw_unit(tmp_path: Path) -> None:
    content = "Release notes for the quarterly build.\nFixed the flaky upload retry.\n"
    assert len(content) > 50
    path = tmp_path / "notes.txt"
    path.write_text(content, encoding="utf-8")

    units = extract_prompts(path)
    assert len(units) == 1
    assert units[0].kind == "raw"
    assert units[0].text == content
    assert (units[0].line_start, units[0].line_end) == (1, 3)


def test_short_raw_text_with_instruction_phrase_is_one_unit() -> None:
    units = extract_from_text("You are a bot.\nBe nice.", ".md")
    assert len(units) == 1
    assert units[0].kind == "raw"
    assert (units[0].line_start, units[0].line_end) == (1, 2)


def test_structured_file_yields_object_field_windows() -> None:
    content = "name: bot\nsystem: You are helpful\nother: x"
    units = extract_from_text(content, ".yaml")
    assert len(units) == 1
    assert units[0].kind == "object-field"
    assert units[0].line_start == 2
    assert units[0].line_end == 3
    assert units[0].text.startswith("system: You are helpful")


def test_template_literal_spanning_lines_is_extracted() -> None:
    content = "\n".join(
        [
            "import x from 'y';",
            "const p = `You are a helpful bot.",
            "Answer: ${q}`;",
            "export default p;",
        ]
    )
    units = extract_from_text(content, ".ts")
    assert [unit.kind for unit in units] == ["template-string"]
    assert (units[0].line_start, units[0].line_end) == (2, 3)


def test_role_content_line_is_a_chat_message() -> None:
    content = 'const messages = [{ role: "system", content: "Be brief" }];'
    units = extract_from_text(content, ".js")
    assert "chat-message" in {unit.kind for unit in units}


def test_llm_library_import_exposes_whole_file_as_code_block() -> None:
    content = "import openai\n\nclient = openai.OpenAI()\nprint('done')"
    units = extract_from_text(content, ".py")
    code_blocks = [unit for unit in units if unit.kind == "code-block"]
    assert len(code_blocks) == 1
    assert (code_blocks[0].line_start, code_blocks[0].line_end) == (1, 4)


def test_plain_python_without_trigger_has_no_code_block() -> None:
    units = extract_from_text("def add(a, b):\n    return a + b\n", ".py")
    assert all(unit.kind != "code-block" for unit in units)


def test_exec_call_triggers_code_block_for_js() -> None:
    units = extract_from_text("execSync(`ls ${dir}`);", ".js")
    assert units[-1].kind == "code-block"


def test_unterminated_template_is_abandoned_after_limit() -> None:
    lines = ["const p = `You are a bot"] + ["filler"] * 250 + ["done`;"]
    units = extract_from_text("\n".join(lines), ".ts")
    assert all(unit.kind != "template-string" for unit in units)


def test_extract_prompts_reads_file(tmp_path: Path) -> None:
    prompt = tmp_path / "system.prompt"
    prompt.write_text("You are a customer support assistant for Acme.\n", encoding="utf-8")
    units = extract_prompts(prompt)
    assert len(units) == 1
    assert units[0].kind == "raw"


def test_extract_prompts_skips_undecodable_and_missing_files(tmp_path: Path) -> None:
    binary = tmp_path / "blob.txt"
    binary.write_bytes(b"\xff\xfe\x00\x80 you are")
    assert extract_prompts(binary) == []
    assert extract_prompts(tmp_path / "missing.txt") == []


def test_llm_trigger_lookup_is_case_insensitive() -> None:
    assert llm_trigger_for(".PY") is not None
    assert llm_trigger_for(".md") is None
