"""Watch mode: re-scan after filesystem changes settle.

A watchdog observer feeds relevant paths into a collector; the calling thread
is the single consumer and runs one scan per quiet period. The incremental
cache keeps each re-scan limited to the files that actually changed.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from context_hound.config import CACHE_FILENAME, ScanConfig
from context_hound.discover import IGNORE_FILENAME, is_selected, load_ignore_patterns
from context_hound.pipeline import run_scan
from context_hound.scoring import ScanResult

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5
POLL_SECONDS = 0.1


@dataclass(frozen=True, slots=True)
class FileDelta:
    file: str
    new: int
    resolved: int


ReportCallback = Callable[[ScanResult, list[FileDelta]], None]


class ChangeCollector(FileSystemEventHandler):
    """Accumulate changed paths that pass the scan's include/exclude filters.

    ``.houndignore`` is re-read whenever it changes, and the change itself
    queues a re-scan.
    """

    def __init__(self, root: Path, include: list[str], exclude: list[str]) -> None:
        super().__init__()
        self._root = root
        self._include = include
        self._exclude = [*exclude, f"**/{CACHE_FILENAME}"]
        self._ignore = load_ignore_patterns(root)
        self._pending: set[str] = set()
        self._last_event = 0.0
        self._lock = threading.Lock()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            path = os.fsdecode(raw)
            if self._is_ignore_file(path):
                self._ignore = load_ignore_patterns(self._root)
                logger.debug("Reloaded %s", IGNORE_FILENAME)
            elif not self.is_relevant(path):
                continue
            with self._lock:
                self._pending.add(path)
                self._last_event = time.monotonic()

    def is_relevant(self, path: str) -> bool:
        try:
            rel_path = Path(path).relative_to(self._root).as_posix()
        except ValueError:
            return False
        return is_selected(rel_path, self._include, [*self._exclude, *self._ignore])

    def _is_ignore_file(self, path: str) -> bool:
        return Path(path) == self._root / IGNORE_FILENAME

    def take_batch(self, quiet: float) -> set[str]:
        """Return pending paths once no event arrived for ``quiet`` seconds."""
        with self._lock:
            if not self._pending or time.monotonic() - self._last_event < quiet:
                return set()
            batch, self._pending = self._pending, set()
            return batch

    def wait_for_batch(self, quiet: float, stop: threading.Event) -> set[str]:
        while not stop.is_set():
            batch = self.take_batch(quiet)
            if batch:
                return batch
            stop.wait(POLL_SECONDS)
        return set()


def diff_results(previous: ScanResult, current: ScanResult) -> list[FileDelta]:
    """Per-file counts of findings that appeared or disappeared between scans."""

    def keyed(result: ScanResult) -> dict[str, set[tuple[str, int, str]]]:
        return {
            item.file: {(f.rule_id, f.line_start, f.evidence) for f in item.findings}
            for item in result.files
        }

    before, after = keyed(previous), keyed(current)
    deltas: list[FileDelta] = []
    for file_path in sorted(before.keys() | after.keys()):
        old, new = before.get(file_path, set()), after.get(file_path, set())
        delta = FileDelta(file=file_path, new=len(new - old), resolved=len(old - new))
        if delta.new or delta.resolved:
            deltas.append(delta)
    return deltas


def watch(
    cwd: str | Path,
    config: ScanConfig,
    on_report: ReportCallback,
    *,
    debounce: float = DEBOUNCE_SECONDS,
    stop: threading.Event | None = None,
    observer_factory: Callable[[], Any] = Observer,
) -> None:
    """Scan once, then re-scan after each burst of changes until ``stop`` is set.

    ``KeyboardInterrupt`` propagates to the caller after the observer stops.
    """
    root = Path(cwd).resolve()
    stop_event = stop or threading.Event()
    collector = ChangeCollector(root, config.include, config.exclude)

    observer = observer_factory()
    observer.schedule(collector, str(root), recursive=True)
    observer.start()
    try:
        result = run_scan(root, config)
        on_report(result, [])
        while not stop_event.is_set():
            changed = collector.wait_for_batch(debounce, stop_event)
            if not changed:
                continue
            logger.debug("Re-scanning after %d changed file(s)", len(changed))
            current = run_scan(root, config)
            on_report(current, diff_results(result, current))
            result = current
    finally:
        observer.stop()
        observer.join()
