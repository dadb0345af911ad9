from __future__ import annotations

import logging
from typing import Any, Optional

from .device import DeviceReference

logger = logging.getLogger(__name__)


class Connection:
    """
    Exclusively owned duplex byte stream to one adapter.

    Wraps any pyserial-like channel (serial.Serial, RfcommChannel, BleSerial)
    and guarantees the underlying transport is released exactly once.
    """

    def __init__(
        self,
        channel: Any,
        device: DeviceReference,
        *,
        service_id: Optional[str] = None,
        secure: bool = True,
    ):
        self._channel = channel
        self.device = device
        self.service_id = service_id
        self.secure = secure
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        try:
            return bool(self._channel.is_open)
        except Exception:
            return False

    @property
    def in_waiting(self) -> int:
        return self._channel.in_waiting

    def read(self, size: int = 1) -> bytes:
        return self._channel.read(size)

    def write(self, data: bytes) -> int:
        return self._channel.write(data)

    def flush(self) -> None:
        self._channel.flush()

    def reset_input_buffer(self) -> None:
        self._channel.reset_input_buffer()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._channel.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing %s: %s", self.device.address, exc)
        logger.info("Connection to %s closed", self.device.label)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        mode = "secure" if self.secure else "insecure"
        return f"<Connection {self.device.label} {self.service_id or '-'} {mode} {state}>"
