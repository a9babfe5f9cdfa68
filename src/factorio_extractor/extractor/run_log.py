"""
Extraction JSONL Logging - Structured record of one extraction run.

Each line is a JSON object. Entry types:
- run_start: extraction started
- pass_start: a data pass (data.lua, data-updates.lua, ...) started
- script_error: a mod's data script raised
- run_complete: extraction finished
- run_failed: extraction aborted
"""

from __future__ import annotations
import json
import time
import uuid
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional


@dataclass
class LogEntry:
    """A structured log entry."""
    ts: float  # Unix timestamp
    event: str
    run_id: Optional[str] = None
    mod: Optional[str] = None
    data_file: Optional[str] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    stats: Optional[dict] = None

    def to_json(self) -> str:
        d = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(d, default=str)


class ExtractionLogger:
    """Appends run events to a JSONL file."""

    def __init__(self, log_file: Path, run_id: Optional[str] = None):
        self.log_file = Path(log_file)
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._run_start: Optional[float] = None
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def _write(self, entry: LogEntry) -> None:
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(entry.to_json() + "\n")

    def _entry(self, event: str, **kwargs) -> LogEntry:
        return LogEntry(ts=time.time(), event=event, run_id=self.run_id, **kwargs)

    def _elapsed_ms(self) -> Optional[float]:
        if self._run_start is None:
            return None
        return (time.time() - self._run_start) * 1000

    def run_start(self, game_path: str) -> None:
        self._run_start = time.time()
        self._write(self._entry("run_start", stats={"game_path": game_path}))

    def pass_start(self, data_file: str, mod_count: int) -> None:
        self._write(self._entry("pass_start", data_file=data_file,
                                stats={"mods": mod_count}))

    def script_error(self, mod: str, data_file: str, error: str) -> None:
        self._write(self._entry("script_error", mod=mod, data_file=data_file,
                                error=error[:500]))  # Truncate long errors

    def run_complete(self, mods: int, errors: int) -> None:
        self._write(self._entry("run_complete", duration_ms=self._elapsed_ms(),
                                stats={"mods": mods, "errors": errors}))

    def run_failed(self, error: str) -> None:
        self._write(self._entry("run_failed", duration_ms=self._elapsed_ms(),
                                error=error[:500]))


def read_log_entries(log_file: Path, event_filter: Optional[str] = None,
                     run_id: Optional[str] = None) -> list[dict]:
    """Read entries back, optionally filtered by event type and run."""
    log_file = Path(log_file)
    if not log_file.exists():
        return []

    entries = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if event_filter and entry.get("event") != event_filter:
                continue
            if run_id and entry.get("run_id") != run_id:
                continue
            entries.append(entry)
    return entries
