"""Scan orchestration: discovery, cached per-file analysis and aggregation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from context_hound.cache import ScanCache, stat_mtime
from context_hound.config import CACHE_FILENAME, ScanConfig
from context_hound.discover import discover_files, load_ignore_patterns
from context_hound.extractor import extract_prompts
from context_hound.limiter import ConcurrencyLimiter
from context_hound.plugins import load_plugins
from context_hound.rules import all_rules
from context_hound.rules.base import Finding, Rule
from context_hound.scoring import (
    DedupKey,
    FileResult,
    ScanResult,
    active_rules,
    analyze_units,
    build_file_result,
    build_scan_result,
)

logger = logging.getLogger(__name__)

FindingCallback = Callable[[Finding], None]


@dataclass(slots=True)
class _ScanState:
    seen: set[DedupKey] = field(default_factory=set)
    total_findings: int = 0
    stopped: bool = False


def run_scan(
    cwd: str | Path,
    config: ScanConfig,
    on_finding: FindingCallback | None = None,
    rules: Sequence[Rule] | None = None,
) -> ScanResult:
    """Synchronous entry point; runs :func:`run_scan_async` on a fresh event loop."""
    return asyncio.run(run_scan_async(cwd, config, on_finding=on_finding, rules=rules))


async def run_scan_async(
    cwd: str | Path,
    config: ScanConfig,
    on_finding: FindingCallback | None = None,
    rules: Sequence[Rule] | None = None,
) -> ScanResult:
    """Scan every selected file under ``cwd`` and aggregate the verdict.

    ``rules`` replaces the built-in rule set; plugins named in
    ``config.plugins`` are appended to it. ``on_finding`` fires once per
    finding as each file completes, cached findings included.
    """
    root = Path(cwd).resolve()
    ignore_patterns = await asyncio.to_thread(load_ignore_patterns, root)
    exclude = [*config.exclude, *ignore_patterns, f"**/{CACHE_FILENAME}"]
    files = await asyncio.to_thread(discover_files, root, config.include, exclude)
    logger.debug("Discovered %d file(s) under %s", len(files), root)

    base_rules = list(rules) if rules is not None else all_rules()
    plugin_rules: list[Rule] = []
    if config.plugins:
        plugin_rules, _ = load_plugins(config.plugins, root)

    cache: ScanCache | None = None
    if config.cache:
        fingerprint = ",".join(
            rule.rule_id for rule in active_rules([*base_rules, *plugin_rules], config)
        )
        cache = await asyncio.to_thread(ScanCache.load, root, fingerprint)

    limiter = ConcurrencyLimiter(config.concurrency)
    state = _ScanState()

    async def scan_file(file_path: str) -> FileResult | None:
        if state.stopped:
            return None
        mtime = await asyncio.to_thread(stat_mtime, file_path)

        findings = cache.lookup(file_path, mtime) if cache is not None else None
        if findings is not None:
            state.seen.update((item.rule_id, item.file, item.line_start) for item in findings)
        else:
            units = await asyncio.to_thread(extract_prompts, file_path)
            findings = analyze_units(
                units,
                file_path,
                config,
                plugin_rules=plugin_rules,
                seen=state.seen,
                rules=base_rules,
            )
            if cache is not None and mtime is not None:
                cache.store(file_path, findings, mtime)

        if state.stopped or not findings:
            return None

        if on_finding is not None:
            for finding in findings:
                on_finding(finding)
        state.total_findings += len(findings)
        if config.max_findings is not None and state.total_findings >= config.max_findings:
            state.stopped = True
        return build_file_result(file_path, findings)

    results = await asyncio.gather(
        *(limiter.run(lambda path=path: scan_file(path)) for path in files)
    )

    if cache is not None:
        pruned = cache.prune(files)
        logger.debug(
            "Cache: %d hit(s), %d miss(es), %d pruned", cache.hits, cache.misses, pruned
        )
        await asyncio.to_thread(cache.persist)

    return build_scan_result(
        [item for item in results if item is not None], config, root=str(root)
    )
