"""Output rendering."""

from __future__ import annotations

import json
from collections import Counter
from datetime import UTC, datetime
from typing import Any

import click

from context_hound import __version__
from context_hound.rules.base import SEVERITIES, Finding
from context_hound.scoring import ScanResult

TOOL_NAME = "ContextHound"
INFORMATION_URI = "https://github.com/IulianVOStrut/ContextHound"
SARIF_SCHEMA = (
    "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
)

# Most severe first, for tallies and tables.
SEVERITY_ORDER = tuple(reversed(SEVERITIES))

_SEVERITY_STYLE: dict[str, dict[str, Any]] = {
    "critical": {"fg": "red", "bold": True},
    "high": {"fg": "red"},
    "medium": {"fg": "yellow"},
    "low": {"fg": "cyan"},
}
_LABEL_STYLE: dict[str, dict[str, Any]] = {
    "critical": {"fg": "red", "bold": True},
    "high": {"fg": "red"},
    "medium": {"fg": "yellow"},
    "low": {"fg": "green"},
}


def render_human(result: ScanResult, verbose: bool = False) -> str:
    """Render a colorized, per-file console report."""
    title = click.style(f"=== {TOOL_NAME} Prompt Audit ===", fg="magenta", bold=True)
    lines: list[str] = [title, ""]

    if not result.all_findings:
        lines.append(click.style("No findings. All clear.", fg="green", bold=True))
    for file_result in result.files:
        if not file_result.findings:
            continue
        lines.append(
            click.style(result.display_path(file_result.file), bold=True)
            + click.style(f" (file score: {file_result.file_score})", dim=True)
        )
        for finding in file_result.findings:
            lines.extend(_human_finding(result, finding, verbose))

    label_style = _LABEL_STYLE[result.score_label]
    lines.append("-" * 60)
    lines.append(
        click.style("Repo Risk Score: ", bold=True)
        + click.style(f"{result.repo_score}/100 ({result.score_label.upper()})", **label_style)
    )
    lines.append(click.style("Threshold: ", bold=True) + str(result.threshold))
    lines.append(click.style("Total findings: ", bold=True) + str(len(result.all_findings)))

    counts = severity_counts(result.all_findings)
    tallies = [
        click.style(f"{severity}: {counts[severity]}", **_SEVERITY_STYLE[severity])
        for severity in SEVERITY_ORDER
        if counts[severity]
    ]
    if tallies:
        lines.append(click.style("By severity: ", bold=True) + "  ".join(tallies))
    if result.file_threshold_breached:
        lines.append(click.style("A file met or exceeded the per-file threshold.", fg="red"))
    lines.append("")

    if result.passed:
        lines.append(click.style("PASSED", fg="green", bold=True) + ": score below threshold.")
    else:
        lines.append(click.style("FAILED", fg="red", bold=True) + ": scan did not pass the gate.")
    return "\n".join(lines)


def _human_finding(result: ScanResult, finding: Finding, verbose: bool) -> list[str]:
    style = _SEVERITY_STYLE[finding.severity]
    lines = [
        "  "
        + click.style(f"[{finding.severity.upper()}]", **style)
        + " "
        + click.style(finding.rule_id, bold=True)
        + f": {finding.title}",
        f"    {click.style('File:', dim=True)} "
        f"{result.display_path(finding.file)}:{finding.line_start}",
        f"    {click.style('Evidence:', dim=True)} {click.style(finding.evidence, fg='cyan')}",
    ]
    if verbose:
        lines.append(f"    {click.style('Confidence:', dim=True)} {finding.confidence}")
        lines.append(f"    {click.style('Risk points:', dim=True)} {finding.risk_points}")
        lines.append(f"    {click.style('Remediation:', dim=True)} {finding.remediation}")
    lines.append("")
    return lines


def render_json(result: ScanResult) -> str:
    """Render stable JSON output for CI and automation."""
    return json.dumps(build_json_payload(result), indent=2, sort_keys=True)


def build_json_payload(result: ScanResult) -> dict[str, Any]:
    payload = result.to_dict()
    payload["meta"] = {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "version": __version__,
    }
    return payload


def render_jsonl(result: ScanResult) -> str:
    """One JSON object per finding, no trailing newline."""
    return "\n".join(
        json.dumps(finding.to_dict(), sort_keys=True) for finding in result.all_findings
    )


def render_sarif(result: ScanResult) -> str:
    """Render a SARIF 2.1.0 log with one rule descriptor per distinct rule id."""
    descriptors: dict[str, dict[str, Any]] = {}
    for finding in result.all_findings:
        if finding.rule_id in descriptors:
            continue
        descriptors[finding.rule_id] = {
            "id": finding.rule_id,
            "name": finding.rule_id,
            "shortDescription": {"text": finding.title},
            "fullDescription": {"text": f"{finding.title}. {finding.remediation}"},
            "properties": {
                "tags": ["security", "prompt-injection"],
                "precision": finding.confidence,
                "problem.severity": finding.severity,
            },
        }

    results = [
        {
            "ruleId": finding.rule_id,
            "level": sarif_level(finding.severity),
            "message": {"text": f"{finding.title}: {finding.evidence}"},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {
                            "uri": result.display_path(finding.file),
                            "uriBaseId": "%SRCROOT%",
                        },
                        "region": {"startLine": finding.line_start, "endLine": finding.line_end},
                    }
                }
            ],
        }
        for finding in result.all_findings
    ]

    log = {
        "version": "2.1.0",
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": __version__,
                        "informationUri": INFORMATION_URI,
                        "rules": list(descriptors.values()),
                    }
                },
                "results": results,
            }
        ],
    }
    return json.dumps(log, indent=2)


def sarif_level(severity: str) -> str:
    if severity in {"critical", "high"}:
        return "error"
    if severity == "medium":
        return "warning"
    return "note"


def render_markdown(result: ScanResult) -> str:
    """Render a Markdown report suitable for PR comments or step summaries."""
    status = "PASSED-brightgreen" if result.passed else "FAILED-red"
    alt = "PASSED" if result.passed else "FAILED"
    lines = [
        f"# {TOOL_NAME} Scan Report ![{alt}](https://img.shields.io/badge/{TOOL_NAME}-{status})",
        "",
        f"**Score:** {result.repo_score}/100 ({result.score_label.upper()})  ",
        f"**Threshold:** {result.threshold}  ",
        f"**Total findings:** {len(result.all_findings)}",
        "",
        "## Severity Summary",
        "",
        *_severity_table(result.all_findings),
        "",
    ]

    files = [item for item in result.files if item.findings]
    if files:
        lines.extend(["## Findings by File", ""])
    for file_result in files:
        lines.append(f"### `{result.display_path(file_result.file)}`")
        lines.append(f"*File score: {file_result.file_score}*")
        lines.append("")
        lines.append("| Rule | Severity | Line | Title |")
        lines.append("|------|----------|------|-------|")
        for finding in file_result.findings:
            lines.append(
                f"| {finding.rule_id} | {finding.severity} | {finding.line_start} | "
                f"{_table_cell(finding.title)} |"
            )
        lines.append("")
        for finding in file_result.findings:
            lines.extend(
                [
                    "<details>",
                    f"<summary><strong>{finding.rule_id}</strong>: {finding.title}</summary>",
                    "",
                    f"**Evidence:** {_inline_code(finding.evidence)}",
                    "",
                    f"**Remediation:** {finding.remediation}",
                    "",
                    "</details>",
                    "",
                ]
            )
    return "\n".join(lines)


def render_github_annotations(result: ScanResult) -> str:
    """Render GitHub Actions workflow commands, one per finding."""
    lines: list[str] = []
    for finding in result.all_findings:
        level = annotation_level(finding.severity)
        properties = ",".join(
            [
                f"file={_escape_property(result.display_path(finding.file))}",
                f"line={finding.line_start}",
                f"endLine={finding.line_end}",
                f"title={_escape_property(finding.rule_id)}",
            ]
        )
        message = _escape_data(f"{finding.title} [{finding.severity.upper()}]")
        lines.append(f"::{level} {properties}::{message}")
    return "\n".join(lines)


def annotation_level(severity: str) -> str:
    if severity in {"critical", "high"}:
        return "error"
    if severity == "medium":
        return "warning"
    return "notice"


def github_step_summary(result: ScanResult) -> str:
    """Markdown block appended to ``$GITHUB_STEP_SUMMARY``."""
    verdict = "PASSED" if result.passed else "FAILED"
    return "\n".join(
        [
            f"## {TOOL_NAME} Scan Summary",
            "",
            f"**Score:** {result.repo_score}/100 ({result.score_label.upper()}): {verdict}",
            "",
            *_severity_table(result.all_findings),
        ]
    )


def severity_counts(findings: list[Finding]) -> Counter[str]:
    return Counter(finding.severity for finding in findings)


def _severity_table(findings: list[Finding]) -> list[str]:
    counts = severity_counts(findings)
    rows = ["| Severity | Count |", "|----------|-------|"]
    rows.extend(f"| {severity} | {counts[severity]} |" for severity in SEVERITY_ORDER)
    return rows


def _table_cell(text: str) -> str:
    return text.replace("|", "\\|")


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(":", "%3A").replace(",", "%2C")


def _inline_code(text: str) -> str:
    return "`" + text.replace("`", "'") + "`"
