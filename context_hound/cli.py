"""CLI entrypoint for context-hound."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any

import typer

from context_hound import __version__
from context_hound.config import (
    CONFIG_FILENAMES,
    AppConfig,
    default_config_template,
    load_app_config,
)
from context_hound.output import (
    github_step_summary,
    render_github_annotations,
    render_human,
    render_json,
    render_jsonl,
    render_markdown,
    render_sarif,
)
from context_hound.pipeline import run_scan
from context_hound.plugins import load_plugins
from context_hound.rules import all_rules, list_rule_info
from context_hound.rules.base import Finding
from context_hound.scoring import ScanResult, active_rules, fail_on_violated
from context_hound.watch import FileDelta, watch

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_ERROR = 1
EXIT_THRESHOLD = 2
EXIT_FAIL_ON = 3

# File-backed formats: (suffix, default filename when --out is not given).
FILE_OUTPUTS = {
    "json": (".json", "hound-results.json"),
    "sarif": (".sarif", "results.sarif"),
    "markdown": (".md", "hound-report.md"),
}
FORMAT_ALIASES = {"console": "human"}

app = typer.Typer(
    name="hound",
    no_args_is_help=True,
    help="Scan a source tree for prompt-injection and LLM security risks.",
)


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Log debug output to stderr.")] = False,
) -> None:
    """Root command callback."""
    _ = version
    configure_logging(debug)


@app.command("scan")
def scan_command(
    directory: Annotated[Path, typer.Option("--dir", help="Directory to scan.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[
        str | None,
        typer.Option(
            help="Comma-separated formats: human,json,jsonl,sarif,markdown,github-annotations.",
            show_default="human",
        ),
    ] = None,
    out: Annotated[str | None, typer.Option(help="Base path for file-backed reports.")] = None,
    threshold: Annotated[
        int | None, typer.Option(help="Fail when the repo score reaches this value.")
    ] = None,
    fail_on: Annotated[
        str | None, typer.Option(help="Fail on any finding at this severity or above.")
    ] = None,
    max_findings: Annotated[
        int | None, typer.Option(help="Stop scanning new files after this many findings.")
    ] = None,
    fail_file_threshold: Annotated[
        int | None, typer.Option(help="Fail when any single file score reaches this value.")
    ] = None,
    concurrency: Annotated[int | None, typer.Option(help="Files scanned in parallel.")] = None,
    min_confidence: Annotated[
        str | None, typer.Option(help="Skip rules below this confidence: low|medium|high.")
    ] = None,
    exclude_rule: Annotated[
        list[str] | None, typer.Option(help="Rule id or prefix* to skip (repeatable).")
    ] = None,
    include_rule: Annotated[
        list[str] | None, typer.Option(help="Only run matching rule ids (repeatable).")
    ] = None,
    plugin: Annotated[
        list[str] | None, typer.Option(help="Plugin rule module path (repeatable).")
    ] = None,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Ignore the scan cache.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show finding details.")] = False,
    watch_mode: Annotated[
        bool, typer.Option("--watch", help="Re-scan whenever matching files change.")
    ] = False,
) -> None:
    """Scan a directory and gate on the resulting risk score."""
    root = directory.resolve()
    if not root.is_dir():
        raise typer.BadParameter(f"Not a directory: {directory}", param_hint="--dir")

    overrides: dict[str, Any] = {
        "threshold": threshold,
        "fail_on": fail_on,
        "max_findings": max_findings,
        "fail_file_threshold": fail_file_threshold,
        "concurrency": concurrency,
        "min_confidence": min_confidence,
        "exclude_rules": exclude_rule or None,
        "include_rules": include_rule or None,
        "plugins": plugin or None,
        "cache": False if no_cache else None,
        "verbose": True if verbose else None,
        "formats": _parse_formats(format) if format else None,
        "out": out,
    }
    app_config = _load_config_or_raise(root, config_file, cli_overrides=overrides)
    if app_config.verbose:
        logging.getLogger("context_hound").setLevel(logging.DEBUG)
        typer.echo(f"Scanning: {root}", err=True)

    if watch_mode:
        _run_watch(root, app_config)
        return

    stream_jsonl = "jsonl" in app_config.formats and not app_config.out
    on_finding = _echo_jsonl if stream_jsonl else None

    try:
        result = run_scan(root, app_config.scan, on_finding=on_finding)
    except Exception as exc:
        logger.debug("Scan failed", exc_info=True)
        typer.echo(f"Error during scan: {exc}", err=True)
        raise typer.Exit(code=EXIT_ERROR) from exc

    _emit_reports(result, app_config, root)
    raise typer.Exit(code=exit_code_for(result, app_config))


@app.command("rules")
def rules_command(
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    plugin: Annotated[
        list[str] | None, typer.Option(help="Plugin rule module path (repeatable).")
    ] = None,
    directory: Annotated[Path, typer.Option("--dir", help="Base for relative paths.")] = Path("."),
) -> None:
    """List built-in rules and any plugin rules."""
    output_format = _human_or_json(format)
    plugin_rules, _ = load_plugins(plugin or [], directory.resolve())
    info = list_rule_info(plugin_rules)

    if output_format == "json":
        typer.echo(json.dumps([item.to_dict() for item in info], indent=2))
        return

    header = f"{'ID':<10}{'SEV':<10}{'CONF':<8}{'CATEGORY':<16}TITLE"
    lines = [header, "-" * len(header)]
    for item in info:
        suffix = "" if item.source == "built-in" else f" ({item.source})"
        lines.append(
            f"{item.rule_id:<10}{item.severity:<10}{item.confidence:<8}{item.category:<16}"
            f"{item.title}{suffix}"
        )
    lines.extend(["", f"Total: {len(info)} rules"])
    typer.echo("\n".join(lines))


@app.command("init")
def init_command(
    directory: Annotated[Path, typer.Option("--dir", help="Project directory.")] = Path("."),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter .hound.toml."""
    out_path = directory.resolve() / CONFIG_FILENAMES[0]
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config")
def config_command(
    directory: Annotated[Path, typer.Option("--dir", help="Project directory.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    validate: Annotated[
        bool, typer.Option("--validate", help="Fail on an invalid config file.")
    ] = False,
) -> None:
    """Show the resolved configuration."""
    output_format = _human_or_json(format)
    root = directory.resolve()
    if validate:
        try:
            app_config = load_app_config(root, config_file, strict=True)
        except ValueError as exc:
            typer.echo(f"Config is invalid: {exc}", err=True)
            raise typer.Exit(code=EXIT_ERROR) from exc
    else:
        app_config = _load_config_or_raise(root, config_file)

    payload = app_config.to_dict()
    plugin_rules, _ = load_plugins(app_config.scan.plugins, root)
    payload["active_rule_ids"] = [
        rule.rule_id for rule in active_rules([*all_rules(), *plugin_rules], app_config.scan)
    ]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Resolved configuration:", f"- source: {payload['source'] or 'defaults'}"]
    for key in sorted(payload):
        if key not in {"source", "active_rule_ids"}:
            lines.append(f"- {key}: {payload[key]}")
    lines.append(f"- active_rule_ids: {payload['active_rule_ids']}")
    if validate:
        lines.insert(0, "Config is valid.")
    typer.echo("\n".join(lines))


@app.command("plugins")
def plugins_command(
    directory: Annotated[Path, typer.Option("--dir", help="Project directory.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    plugin: Annotated[
        list[str] | None, typer.Option(help="Plugin rule module path (repeatable).")
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Report load status for configured and --plugin rule modules."""
    output_format = _human_or_json(format)
    root = directory.resolve()
    app_config = _load_config_or_raise(root, config_file)
    paths = [*app_config.scan.plugins, *(plugin or [])]
    _, loads = load_plugins(paths, root)

    if output_format == "json":
        typer.echo(json.dumps([item.to_dict() for item in loads], indent=2))
    elif not loads:
        typer.echo("No plugins configured.")
    else:
        lines = []
        for item in loads:
            lines.append(f"- {item.path} [{item.status}] {item.reason}")
            if item.rule_ids:
                lines.append(f"  rules: {', '.join(item.rule_ids)}")
        typer.echo("\n".join(lines))

    if any(item.status == "failed" for item in loads):
        raise typer.Exit(code=EXIT_ERROR)


def main() -> None:
    """Console script entrypoint."""
    app()


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("context_hound").setLevel(logging.DEBUG if debug else logging.WARNING)


def exit_code_for(result: ScanResult, app_config: AppConfig) -> int:
    """0 passed, 3 fail_on violation, 2 any other gate failure."""
    if result.passed:
        return EXIT_PASSED
    fail_on = app_config.scan.fail_on
    if fail_on is not None and fail_on_violated(result.all_findings, fail_on):
        return EXIT_FAIL_ON
    return EXIT_THRESHOLD


def report_path(out: str | None, root: Path, output_format: str) -> Path:
    suffix, default_name = FILE_OUTPUTS[output_format]
    if out is None:
        return root / default_name
    return Path(out if out.endswith(suffix) else f"{out}{suffix}")


def _emit_reports(result: ScanResult, app_config: AppConfig, root: Path) -> None:
    formats = app_config.formats
    if "human" in formats:
        typer.echo(render_human(result, verbose=app_config.verbose))

    renderers = {"json": render_json, "sarif": render_sarif, "markdown": render_markdown}
    for output_format, renderer in renderers.items():
        if output_format not in formats:
            continue
        path = report_path(app_config.out, root, output_format)
        path.write_text(renderer(result), encoding="utf-8")
        typer.echo(f"{output_format.upper()} report written to: {path}", err=True)

    if "github-annotations" in formats:
        annotations = render_github_annotations(result)
        if annotations:
            typer.echo(annotations)
        summary_path = os.environ.get("GITHUB_STEP_SUMMARY")
        if summary_path:
            with open(summary_path, "a", encoding="utf-8") as summary:
                summary.write("\n" + github_step_summary(result) + "\n")

    # Without --out, jsonl was already streamed as each file finished.
    if "jsonl" in formats and app_config.out:
        out = app_config.out
        path = Path(out if out.endswith(".jsonl") else f"{out}.jsonl")
        path.write_text(render_jsonl(result), encoding="utf-8")
        typer.echo(f"JSONL report written to: {path}", err=True)


def _echo_jsonl(finding: Finding) -> None:
    typer.echo(json.dumps(finding.to_dict(), sort_keys=True))


def _run_watch(root: Path, app_config: AppConfig) -> None:
    def on_report(result: ScanResult, deltas: list[FileDelta]) -> None:
        typer.echo(render_human(result, verbose=app_config.verbose))
        for delta in deltas:
            label = result.display_path(delta.file)
            if delta.new:
                typer.echo(f"  {label}: +{delta.new} new finding(s)")
            if delta.resolved:
                typer.echo(f"  {label}: -{delta.resolved} resolved finding(s)")
        typer.echo("\n[watching for changes... Ctrl+C to exit]\n")

    try:
        watch(root, app_config.scan, on_report)
    except KeyboardInterrupt:
        typer.echo("Stopped watching.")


def _parse_formats(raw: str) -> list[str]:
    formats: list[str] = []
    for item in raw.split(","):
        name = item.strip().lower()
        if name:
            formats.append(FORMAT_ALIASES.get(name, name))
    return formats


def _human_or_json(raw: str) -> str:
    output_format = raw.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _load_config_or_raise(
    root: Path,
    config_file: Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    try:
        return load_app_config(root, config_file, cli_overrides=cli_overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc
