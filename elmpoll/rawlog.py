"""
Raw Traffic Log
===============
Text trace of what went over the wire, one block per TX or RX:

    2026-10-19 18:04:11.532 TX 010C
    2026-10-19 18:04:11.610 RX 010C +78ms
        41 0C 1A F8

Pass an instance as the framing layer's raw_logger.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import raw_log_path

DEFAULT_PATH = Path("logs") / "elm_raw.log"
NO_REPLY = "(no reply)"


def _stamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


class RawLogger:
    def __init__(self, path: Optional[str] = None):
        target = path or raw_log_path()
        self.path = Path(target) if target else DEFAULT_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._sent_at: Dict[str, float] = {}

    def _format_block(self, direction: str, command: str, lines: List[str]) -> str:
        head = f"{_stamp()} {direction} {command}"
        if direction == "TX":
            self._sent_at[command] = time.monotonic()
            return head + "\n"

        sent = self._sent_at.pop(command, None)
        if sent is not None:
            head += f" +{int((time.monotonic() - sent) * 1000)}ms"
        body = lines or [NO_REPLY]
        return head + "\n" + "".join(f"    {ln}\n" for ln in body)

    def __call__(self, direction: str, command: str, lines: List[str]) -> None:
        with self._lock:
            block = self._format_block(direction, command, lines)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(block)

    def note(self, text: str) -> None:
        """Free-form separator line, e.g. when a new session starts."""
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(f"{_stamp()} -- {text}\n")
