"""
Mode 01 PID definitions
=======================
Response widths and decode formulas for the PIDs the engine polls.
Unknown PIDs fall back to a single data byte decoded as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

MODE_01 = 0x01
MODE_01_RESPONSE = 0x41

PID_SUPPORTED_01_20 = 0x00
PID_ENGINE_RPM = 0x0C
PID_VEHICLE_SPEED = 0x0D


@dataclass(frozen=True)
class PidSpec:
    """One Mode 01 parameter: how many data bytes it carries and how to decode them."""
    pid: int
    name: str
    unit: str
    width: int
    decode: Callable[..., int]


PIDS: Dict[int, PidSpec] = {
    PID_SUPPORTED_01_20: PidSpec(
        pid=PID_SUPPORTED_01_20,
        name="PIDs supported [01-20]",
        unit="bitmap",
        width=4,
        decode=lambda a, b, c, d: (a << 24) | (b << 16) | (c << 8) | d,
    ),
    PID_ENGINE_RPM: PidSpec(
        pid=PID_ENGINE_RPM,
        name="Engine RPM",
        unit="rpm",
        width=2,
        decode=lambda a, b: (a * 256 + b) // 4,
    ),
    PID_VEHICLE_SPEED: PidSpec(
        pid=PID_VEHICLE_SPEED,
        name="Vehicle Speed",
        unit="km/h",
        width=1,
        decode=lambda a: a,
    ),
}


def get_pid_spec(pid: int) -> PidSpec:
    spec = PIDS.get(pid)
    if spec is not None:
        return spec
    return PidSpec(pid=pid, name=f"PID {pid:02X}", unit="", width=1, decode=lambda a: a)


def pid_width(pid: int) -> int:
    return get_pid_spec(pid).width


def pid_hex(pid: int) -> str:
    return f"{pid & 0xFF:02X}"


def request_command(pid: int) -> str:
    # "010C" for RPM
    return f"{MODE_01:02X}{pid_hex(pid)}"


def parse_pid(text: str) -> int:
    """Accepts "0C", "c", "0x0C" or "12"-style hex; raises ValueError otherwise."""
    s = (text or "").strip().upper()
    if s.startswith("0X"):
        s = s[2:]
    if not s or len(s) > 2:
        raise ValueError(f"Invalid PID: {text!r}")
    value = int(s, 16)
    return value


def decode_value(pid: int, data: Sequence[int]) -> Optional[int]:
    """
    Decode the data bytes of a Mode 01 reply.
    Returns None when fewer bytes than the PID needs are supplied.
    """
    spec = get_pid_spec(pid)
    if len(data) < spec.width:
        return None
    return spec.decode(*data[: spec.width])


def supported_pids(bitmap: int, base: int = 0x00) -> list:
    """PIDs flagged in a 32-bit support bitmap (PID 00, 20, 40...)."""
    out = []
    for bit in range(32):
        if bitmap & (1 << (31 - bit)):
            out.append(base + bit + 1)
    return out
