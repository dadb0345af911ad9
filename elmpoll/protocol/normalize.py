from __future__ import annotations

import re
from typing import List

HEX_ONLY_RE = re.compile(r"^[0-9A-F]+$")

PROMPT = ">"

ERROR_MARKERS = (
    "NO DATA",
    "UNABLE TO CONNECT",
    "CAN ERROR",
    "BUS ERROR",
    "DATA ERROR",
    "BUFFER FULL",
    "STOPPED",
    "ERROR",
)

# Lines that do not count as a reply when deciding the adapter has answered
PENDING_PREFIXES = ("SEARCHING", "BUS INIT")


def split_lines(raw: str) -> List[str]:
    """
    Prompt-free, stripped, non-empty lines of a raw adapter buffer.
    Carriage returns and linefeeds both separate lines.
    """
    if not raw:
        return []
    text = raw.replace(PROMPT, "\n").replace("\r", "\n")
    return [ln.strip() for ln in text.split("\n") if ln.strip()]


def is_pending(line: str) -> bool:
    up = (line or "").strip().upper()
    if up.startswith("BUS INIT") and "ERROR" in up:
        return False
    return any(up.startswith(p) for p in PENDING_PREFIXES)


def is_meaningful(lines: List[str]) -> bool:
    return any(ln.strip() and not is_pending(ln) for ln in lines)


def is_syntax_error(lines: List[str]) -> bool:
    return any(ln.strip() == "?" for ln in lines)


def error_marker(lines: List[str]) -> str:
    """First adapter error marker found in the lines, or ""."""
    for ln in lines:
        up = ln.strip().upper()
        for marker in ERROR_MARKERS:
            if marker in up:
                return marker
    return ""


def compact(line: str) -> str:
    return "".join((line or "").split()).upper()


def looks_like_frame(line: str) -> bool:
    c = compact(line)
    return len(c) >= 4 and bool(HEX_ONLY_RE.match(c))


def has_frame(lines: List[str]) -> bool:
    return any(looks_like_frame(ln) for ln in lines)
