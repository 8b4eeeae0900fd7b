"""Tests for the incremental scan cache."""

from __future__ import annotations

import json
import os
from pathlib import Path

from context_hound.cache import ScanCache
from context_hound.rules.base import Finding


def _finding(file: str) -> Finding:
    return Finding(
        rule_id="JBK-001",
        title="Known jailbreak phrase detected",
        severity="critical",
        confidence="high",
        evidence="ignore previous instructions",
        file=file,
        line_start=3,
        line_end=3,
        remediation="Remove it.",
        risk_points=50,
    )


def test_round_trip_preserves_findings(tmp_path: Path) -> None:
    prompt = tmp_path / "p.md"
    prompt.write_text("x", encoding="utf-8")
    cache = ScanCache.load(tmp_path, "A,B")
    cache.store(str(prompt), [_finding(str(prompt))])
    cache.persist()

    reloaded = ScanCache.load(tmp_path, "A,B")
    assert reloaded.lookup(str(prompt)) == [_finding(str(prompt))]
    assert (reloaded.hits, reloaded.misses) == (1, 0)


def test_changed_mtime_is_a_miss(tmp_path: Path) -> None:
    prompt = tmp_path / "p.md"
    prompt.write_text("x", encoding="utf-8")
    cache = ScanCache.load(tmp_path)
    cache.store(str(prompt), [])
    stat = prompt.stat()
    os.utime(prompt, (stat.st_atime, stat.st_mtime + 10))
    assert cache.lookup(str(prompt)) is None
    assert cache.misses == 1


def test_unknown_and_deleted_files_miss(tmp_path: Path) -> None:
    cache = ScanCache.load(tmp_path)
    assert cache.lookup(str(tmp_path / "never-seen.md")) is None
    cache.store(str(tmp_path / "gone.md"), [])
    assert cache.entries == {}


def test_corrupt_cache_file_starts_cold(tmp_path: Path) -> None:
    (tmp_path / ".hound-cache.json").write_text("{not json", encoding="utf-8")
    cache = ScanCache.load(tmp_path)
    assert cache.entries == {}


def test_version_mismatch_discards_entries(tmp_path: Path) -> None:
    payload = {"version": "0", "fingerprint": "", "entries": {"/x": {"mtime": 1, "findings": []}}}
    (tmp_path / ".hound-cache.json").write_text(json.dumps(payload), encoding="utf-8")
    assert ScanCache.load(tmp_path).entries == {}


def test_rule_selection_change_discards_entries(tmp_path: Path) -> None:
    prompt = tmp_path / "p.md"
    prompt.write_text("x", encoding="utf-8")
    cache = ScanCache.load(tmp_path, "INJ-001")
    cache.store(str(prompt), [])
    cache.persist()
    assert ScanCache.load(tmp_path, "INJ-001").entries
    assert ScanCache.load(tmp_path, "INJ-001,INJ-002").entries == {}


def test_persist_failure_is_not_fatal(tmp_path: Path) -> None:
    cache = ScanCache(path=tmp_path / "missing-dir" / ".hound-cache.json")
    cache.persist()
    assert not cache.path.exists()


def test_prune_drops_entries_outside_keep_set(tmp_path: Path) -> None:
    kept = tmp_path / "kept.md"
    gone = tmp_path / "gone.md"
    for path in (kept, gone):
        path.write_text("x", encoding="utf-8")
    cache = ScanCache.load(tmp_path)
    cache.store(str(kept), [])
    cache.store(str(gone), [_finding(str(gone))])

    assert cache.prune([str(kept)]) == 1
    assert list(cache.entries) == [str(kept)]
    assert cache.prune([str(kept)]) == 0
