# elmpoll/elm/protocol.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from .framing import CommandChannel


PROTOCOL_MAP = {
    "0": "Automatic",
    "1": "SAE J1850 PWM",
    "2": "SAE J1850 VPW",
    "3": "ISO 9141-2",
    "4": "ISO 14230-4 KWP (5 baud init)",
    "5": "ISO 14230-4 KWP (fast init)",
    "6": "ISO 15765-4 CAN (11 bit, 500 kbaud)",
    "7": "ISO 15765-4 CAN (29 bit, 500 kbaud)",
    "8": "ISO 15765-4 CAN (11 bit, 250 kbaud)",
    "9": "ISO 15765-4 CAN (29 bit, 250 kbaud)",
    "A": "SAE J1939 CAN",
}


@dataclass(frozen=True)
class ProtocolCandidate:
    code: str

    @property
    def name(self) -> str:
        return PROTOCOL_MAP.get(self.code, f"Protocol {self.code}")

    @property
    def select_command(self) -> str:
        return f"ATSP{self.code}"


# Tried in this order during negotiation
PROTOCOL_CANDIDATES: Tuple[ProtocolCandidate, ...] = (
    ProtocolCandidate("0"),
    ProtocolCandidate("6"),
    ProtocolCandidate("8"),
)


def describe_protocol(channel: "CommandChannel") -> Optional[str]:
    """
    Name of the protocol the adapter is actually using (ATDPN).
    "A6" means automatic search settled on protocol 6.
    """
    result = channel.send("ATDPN", timeout=1.0, retries=0)
    resp = result.text.strip().upper()
    if not resp:
        return None

    m = re.search(r"^A?([0-9A-C])$", resp.splitlines()[-1].strip())
    if not m:
        return None
    return PROTOCOL_MAP.get(m.group(1))
