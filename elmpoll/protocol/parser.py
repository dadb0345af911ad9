"""
Tolerant Mode 01 response parser.

Adapters disagree on framing: spaces on or off, CAN headers on or off,
"SEARCHING..." or echoed commands in front of the data. The parser runs a
fixed, ordered list of matchers over the normalized buffer and the first
one that finds "41 <PID>" followed by enough data bytes wins:

    1. spaced   - whitespace separated byte tokens  ("7E8 04 41 0C 1A F8")
    2. compact  - one pure-hex line without spaces   ("410C1AF8")
    3. noisy    - whole buffer, whitespace and line breaks removed, header
                  searched anywhere ("SEARCHING...410C1AF8")

The order is part of the contract: a cleanly tokenized frame is always
preferred over a substring hit in a noisy buffer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import ParseError
from ..pids import MODE_01_RESPONSE, decode_value, pid_hex, pid_width
from .normalize import HEX_ONLY_RE, compact, error_marker, split_lines

BYTE_RE = re.compile(r"^[0-9A-F]{2}$")

# (name, fn(lines, header_tokens) -> data byte tokens after every header hit, in buffer order)
Matcher = Tuple[str, Callable[[List[str], Tuple[str, str]], List[List[str]]]]


@dataclass
class DecodeResult:
    pid: int
    value: Optional[int] = None
    data: Tuple[int, ...] = ()
    matcher: Optional[str] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _pairs(digits: str) -> List[str]:
    return [digits[i : i + 2] for i in range(0, len(digits) - 1, 2)]


def _match_spaced(lines: List[str], header: Tuple[str, str]) -> List[List[str]]:
    mode, pid = header
    hits: List[List[str]] = []
    for ln in lines:
        tokens = ln.split()
        for i in range(len(tokens) - 1):
            if tokens[i] != mode or tokens[i + 1] != pid:
                continue
            tail: List[str] = []
            for tok in tokens[i + 2 :]:
                if not BYTE_RE.match(tok):
                    break
                tail.append(tok)
            hits.append(tail)
    return hits


def _match_compact(lines: List[str], header: Tuple[str, str]) -> List[List[str]]:
    # a pure-hex line is one frame; only its leading header counts
    needle = header[0] + header[1]
    hits: List[List[str]] = []
    for ln in lines:
        c = compact(ln)
        if not HEX_ONLY_RE.match(c):
            continue
        idx = c.find(needle)
        if idx >= 0:
            hits.append(_pairs(c[idx + len(needle) :]))
    return hits


def _match_noisy(lines: List[str], header: Tuple[str, str]) -> List[List[str]]:
    # data stops at the next header so two frames never merge
    needle = header[0] + header[1]
    hits: List[List[str]] = []
    for ln in lines:
        for chunk in compact(ln).split(needle)[1:]:
            m = re.match(r"[0-9A-F]*", chunk)
            hits.append(_pairs(m.group(0)))
    return hits


MATCHERS: Sequence[Matcher] = (
    ("spaced", _match_spaced),
    ("compact", _match_compact),
    ("noisy", _match_noisy),
)


def decode_response(raw: str, pid: int) -> DecodeResult:
    """
    Find the reply for `pid` in a raw adapter buffer and decode it.
    Never raises; failures come back as DecodeResult.error.
    """
    result = DecodeResult(pid=pid)
    lines = split_lines((raw or "").upper())
    if not lines:
        result.error = ParseError("empty response", raw or "")
        return result

    header = (f"{MODE_01_RESPONSE:02X}", pid_hex(pid))
    width = pid_width(pid)
    truncated = False

    for name, matcher in MATCHERS:
        tail = None
        for hit in matcher(lines, header):
            if len(hit) >= width:
                tail = hit
                break
            truncated = True
        if tail is None:
            continue
        data = tuple(int(tok, 16) for tok in tail[:width])
        result.data = data
        result.value = decode_value(pid, data)
        result.matcher = name
        return result

    marker = error_marker(lines)
    if marker:
        result.error = ParseError(marker, raw)
    elif truncated:
        result.error = ParseError(f"truncated frame for PID {header[1]}", raw)
    else:
        result.error = ParseError(f"no frame for PID {header[1]}", raw)
    return result


def parse_response(raw: str, pid: int) -> Tuple[int, ...]:
    """Data bytes of the `pid` reply in `raw`, or () when there is none."""
    return decode_response(raw, pid).data
