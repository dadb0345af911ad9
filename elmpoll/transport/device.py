from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import SPP_UUID, TRANSPORTS


@dataclass(frozen=True)
class DeviceReference:
    """
    A bonded adapter.

    address:     Bluetooth MAC for rfcomm/ble, device path (/dev/rfcomm0, COM5) for serial
    service_ids: service UUIDs discovered on the device, most specific first
    channel:     fixed RFCOMM channel, skips the SDP lookup when set
    """
    address: str
    name: Optional[str] = None
    service_ids: Tuple[str, ...] = ()
    transport: str = "rfcomm"
    channel: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.address:
            raise ValueError("Device address is required")
        if self.transport not in TRANSPORTS:
            raise ValueError(f"Unknown transport {self.transport!r}; expected one of {TRANSPORTS}")
        # Lists are accepted but stored as a tuple to keep the reference hashable
        object.__setattr__(self, "service_ids", tuple(self.service_ids))

    @property
    def label(self) -> str:
        return f"{self.name} ({self.address})" if self.name else self.address

    @property
    def service_candidates(self) -> Tuple[str, ...]:
        out = []
        for sid in self.service_ids + (SPP_UUID,):
            sid = (sid or "").strip().lower()
            if sid and sid not in out:
                out.append(sid)
        return tuple(out)
