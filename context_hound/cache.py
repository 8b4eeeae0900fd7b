"""Incremental scan cache keyed by absolute path and modification time."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from context_hound.config import CACHE_FILENAME
from context_hound.rules.base import Finding

logger = logging.getLogger(__name__)

CACHE_VERSION = "1"


@dataclass(slots=True)
class CacheEntry:
    mtime: float
    findings: list[Finding]

    def to_dict(self) -> dict[str, Any]:
        return {"mtime": self.mtime, "findings": [item.to_dict() for item in self.findings]}


@dataclass(slots=True)
class ScanCache:
    """On-disk cache of per-file findings.

    ``fingerprint`` identifies the active rule set; a cache written under a
    different rule selection is discarded. Any problem reading or writing the
    cache file degrades to a cold scan and never fails a run.
    """

    path: Path
    fingerprint: str = ""
    entries: dict[str, CacheEntry] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    @classmethod
    def load(cls, cwd: str | Path, fingerprint: str = "") -> ScanCache:
        cache_path = Path(cwd) / CACHE_FILENAME
        try:
            payload = json.loads(cache_path.read_text(encoding="utf-8"))
            entries = _parse_entries(payload, fingerprint)
        except FileNotFoundError:
            return cls(path=cache_path, fingerprint=fingerprint)
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Discarding cache %s: %s", cache_path, exc)
            return cls(path=cache_path, fingerprint=fingerprint)
        return cls(path=cache_path, fingerprint=fingerprint, entries=entries)

    def lookup(self, file_path: str, mtime: float | None = None) -> list[Finding] | None:
        """Return cached findings when the file's mtime is unchanged.

        ``mtime`` may be supplied by a caller that already stat'ed the file.
        """
        entry = self.entries.get(file_path)
        current = mtime if mtime is not None else stat_mtime(file_path)
        if entry is None or current is None or current != entry.mtime:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.findings)

    def store(self, file_path: str, findings: list[Finding], mtime: float | None = None) -> None:
        current = mtime if mtime is not None else stat_mtime(file_path)
        if current is None:
            return
        self.entries[file_path] = CacheEntry(mtime=current, findings=list(findings))

    def prune(self, keep: Iterable[str]) -> int:
        """Drop entries for files outside ``keep``; return how many were removed."""
        wanted = set(keep)
        stale = [key for key in self.entries if key not in wanted]
        for key in stale:
            del self.entries[key]
        return len(stale)

    def persist(self) -> None:
        payload = {
            "version": CACHE_VERSION,
            "fingerprint": self.fingerprint,
            "entries": {key: entry.to_dict() for key, entry in sorted(self.entries.items())},
        }
        try:
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.debug("Could not write cache %s: %s", self.path, exc)


def stat_mtime(file_path: str) -> float | None:
    try:
        return os.stat(file_path).st_mtime
    except OSError:
        return None


def _parse_entries(payload: Any, fingerprint: str) -> dict[str, CacheEntry]:
    if not isinstance(payload, dict) or payload.get("version") != CACHE_VERSION:
        raise ValueError("unsupported cache version")
    if payload.get("fingerprint", "") != fingerprint:
        raise ValueError("rule selection changed")
    raw_entries = payload.get("entries")
    if not isinstance(raw_entries, dict):
        raise ValueError("cache entries must be an object")
    entries: dict[str, CacheEntry] = {}
    for file_path, raw in raw_entries.items():
        entries[str(file_path)] = CacheEntry(
            mtime=float(raw["mtime"]),
            findings=[Finding.from_dict(item) for item in raw["findings"]],
        )
    return entries
