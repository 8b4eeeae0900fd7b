"""Tests for report renderers."""

from __future__ import annotations

import json

import click

from context_hound.config import ScanConfig
from context_hound.output import (
    github_step_summary,
    render_github_annotations,
    render_human,
    render_json,
    render_jsonl,
    render_markdown,
    render_sarif,
)
from context_hound.rules.base import Finding
from context_hound.scoring import ScanResult, build_file_result, build_scan_result


def _finding(
    rule_id: str, severity: str, line: int, file: str = "/repo/prompts/a.md"
) -> Finding:
    return Finding(
        rule_id=rule_id,
        title=f"Title for {rule_id}",
        severity=severity,  # type: ignore[arg-type]
        confidence="high",
        evidence="ignore previous `instructions`",
        file=file,
        line_start=line,
        line_end=line,
        remediation="Do the safe thing.",
        risk_points=30,
    )


def _result(*findings: Finding, threshold: int = 60) -> ScanResult:
    by_file: dict[str, list[Finding]] = {}
    for finding in findings:
        by_file.setdefault(finding.file, []).append(finding)
    files = [build_file_result(path, items) for path, items in by_file.items()]
    return build_scan_result(files, ScanConfig(threshold=threshold), root="/repo")


def test_human_report_lists_findings_and_verdict() -> None:
    result = _result(_finding("JBK-001", "critical", 3))
    text = click.unstyle(render_human(result))
    assert "prompts/a.md (file score: 30)" in text
    assert "[CRITICAL] JBK-001: Title for JBK-001" in text
    assert "File: prompts/a.md:3" in text
    assert "Repo Risk Score: 30/100 (MEDIUM)" in text
    assert "Remediation:" not in text
    assert text.rstrip().endswith("PASSED: score below threshold.")


def test_human_report_verbose_and_failed() -> None:
    result = _result(_finding("JBK-001", "critical", 3), threshold=10)
    text = click.unstyle(render_human(result, verbose=True))
    assert "Remediation: Do the safe thing." in text
    assert "FAILED" in text


def test_human_report_without_findings() -> None:
    text = click.unstyle(render_human(_result()))
    assert "No findings. All clear." in text


def test_json_report_is_stable_and_has_meta() -> None:
    result = _result(_finding("INJ-001", "high", 2))
    payload = json.loads(render_json(result))
    assert payload["repo_score"] == 30
    assert payload["score_label"] == "medium"
    assert payload["passed"] is True
    assert payload["files"][0]["findings"][0]["rule_id"] == "INJ-001"
    assert payload["meta"]["generated_at"].endswith("Z")
    assert list(payload) == sorted(payload)


def test_jsonl_has_one_object_per_line_without_trailing_newline() -> None:
    result = _result(_finding("INJ-001", "high", 2), _finding("INJ-002", "medium", 4))
    text = render_jsonl(result)
    assert not text.endswith("\n")
    rows = [json.loads(line) for line in text.split("\n")]
    assert [row["rule_id"] for row in rows] == ["INJ-001", "INJ-002"]
    assert render_jsonl(_result()) == ""


def test_sarif_has_one_descriptor_per_rule_and_relative_uris() -> None:
    result = _result(
        _finding("INJ-001", "high", 2),
        _finding("INJ-001", "high", 9),
        _finding("RAG-004", "medium", 4),
        _finding("INJ-002", "low", 5),
    )
    log = json.loads(render_sarif(result))
    run = log["runs"][0]
    assert log["version"] == "2.1.0"
    descriptors = run["tool"]["driver"]["rules"]
    assert [rule["id"] for rule in descriptors] == ["INJ-001", "RAG-004", "INJ-002"]
    assert [item["level"] for item in run["results"]] == ["error", "error", "warning", "note"]
    location = run["results"][0]["locations"][0]["physicalLocation"]
    assert location["artifactLocation"]["uri"] == "prompts/a.md"
    assert location["region"] == {"startLine": 2, "endLine": 2}


def test_markdown_report_has_summary_and_details() -> None:
    result = _result(_finding("EXF-001", "critical", 7))
    text = render_markdown(result)
    assert "| critical | 1 |" in text
    assert "### `prompts/a.md`" in text
    assert "| EXF-001 | critical | 7 | Title for EXF-001 |" in text
    assert "**Evidence:** `ignore previous 'instructions'`" in text
    assert "PASSED" in text.splitlines()[0]


def test_github_annotations_escape_properties_and_data() -> None:
    finding = _finding("INJ-001", "medium", 2, file="/repo/odd,name:1.md")
    finding.title = "50% risk\nsecond line"
    text = render_github_annotations(_result(finding))
    assert text == (
        "::warning file=odd%2Cname%3A1.md,line=2,endLine=2,title=INJ-001"
        "::50%25 risk%0Asecond line [MEDIUM]"
    )


def test_step_summary_states_verdict() -> None:
    summary = github_step_summary(_result(_finding("JBK-001", "critical", 1), threshold=5))
    assert summary.startswith("## ContextHound Scan Summary")
    assert "FAILED" in summary
