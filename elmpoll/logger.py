"""
Reading Logger
==============
Writes polling events to CSV or JSON session files.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .pids import get_pid_spec
from .polling import PollEvent, PollStatus

FIELDNAMES = ["timestamp", "pid", "name", "value", "unit", "status", "consecutive_errors", "error"]
FORMATS = ("csv", "json")
TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def event_row(event: PollEvent) -> Dict[str, Any]:
    """Flatten one PollEvent into a FIELDNAMES row."""
    spec = get_pid_spec(event.pid)
    return {
        "timestamp": datetime.fromtimestamp(event.timestamp).strftime(TS_FORMAT),
        "pid": f"{event.pid:02X}",
        "name": spec.name,
        "value": event.value,
        "unit": spec.unit,
        "status": event.status.value,
        "consecutive_errors": event.consecutive_errors,
        "error": str(event.error) if event.error else "",
    }


class ReadingLogger:
    """
    Usage:
        log = ReadingLogger("logs/")
        log.start_session(format="csv")
        loop = session.poller(on_event=log.log_event)
        ...
        summary = log.end_session()

    CSV rows are flushed as they arrive; JSON is written once on end_session().
    """

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.session_file: Optional[Path] = None
        self.session_format = "csv"
        self.started_at: Optional[datetime] = None
        self.reading_count = 0
        self.event_count = 0
        self._csv_out: Optional[TextIO] = None
        self._writer: Optional[csv.DictWriter] = None
        self._rows: List[Dict[str, Any]] = []

    @property
    def is_active(self) -> bool:
        return self.session_file is not None

    def start_session(self, format: str = "csv", filename: Optional[str] = None) -> Path:
        fmt = format.lower()
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported log format: {format!r}")
        if self.is_active:
            self.end_session()

        self.session_format = fmt
        self.started_at = datetime.now()
        self.reading_count = self.event_count = 0
        self._rows = []

        stem = filename or self.started_at.strftime("readings_%Y-%m-%d_%H-%M-%S")
        self.session_file = self.log_dir / f"{stem}.{fmt}"
        if fmt == "csv":
            self._csv_out = self.session_file.open("w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._csv_out, fieldnames=FIELDNAMES)
            self._writer.writeheader()
        return self.session_file

    def log_event(self, event: PollEvent) -> None:
        if not self.is_active:
            raise RuntimeError("No active session. Call start_session() first.")
        row = event_row(event)
        if self._writer is not None:
            self._writer.writerow(row)
            self._csv_out.flush()
        else:
            self._rows.append(row)

        self.event_count += 1
        if event.status is PollStatus.VALUE:
            self.reading_count += 1

    def end_session(self) -> Dict[str, Any]:
        if not self.is_active:
            return {}

        ended_at = datetime.now()
        summary = {
            "file": str(self.session_file),
            "format": self.session_format,
            "start_time": self.started_at.strftime(TS_FORMAT),
            "end_time": ended_at.strftime(TS_FORMAT),
            "duration_seconds": (ended_at - self.started_at).total_seconds(),
            "reading_count": self.reading_count,
            "event_count": self.event_count,
        }

        if self._csv_out is not None:
            self._csv_out.close()
        else:
            payload = {"session": summary, "data": self._rows}
            self.session_file.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

        self.session_file = None
        self._csv_out = None
        self._writer = None
        self._rows = []
        return summary
