from __future__ import annotations

import logging
import select
import socket
import struct
from typing import List, Optional

from .buffered import BufferedChannel

logger = logging.getLogger(__name__)

DEFAULT_RFCOMM_CHANNEL = 1

# <bluetooth/bluetooth.h>
SOL_BLUETOOTH = 274
BT_SECURITY = 4
BT_SECURITY_LOW = 1
BT_SECURITY_MEDIUM = 2


class RfcommChannel(BufferedChannel):
    """
    pyserial-style wrapper around a connected RFCOMM socket so the framing
    layer can treat Bluetooth and serial ports the same way.
    """

    def __init__(self, sock: socket.socket, *, timeout: float = 3.0):
        super().__init__()
        self._sock = sock
        self.timeout = timeout
        self._sock.settimeout(timeout)
        self._is_open = True

    def _pump(self) -> None:
        if not self._is_open:
            raise OSError("RFCOMM channel is closed")
        while select.select([self._sock], [], [], 0)[0]:
            data = self._sock.recv(4096)
            if not data:
                self._is_open = False
                raise OSError("Device disconnected (RFCOMM peer closed the link)")
            self._feed(data)

    def write(self, data: bytes) -> int:
        if not self._is_open:
            raise OSError("RFCOMM channel is closed")
        self._sock.sendall(data)
        return len(data)

    def reset_input_buffer(self) -> None:
        # drain what the socket already holds, then drop it
        if self._is_open:
            self._pump()
        super().reset_input_buffer()

    def close(self) -> None:
        self._is_open = False
        try:
            self._sock.close()
        except OSError as exc:
            logger.debug("RFCOMM socket close failed: %s", exc)


def _bluez():
    try:
        import bluetooth
    except ImportError as exc:
        raise OSError(
            "SDP lookup needs PyBluez (pip install 'elmpoll[bluetooth]'); "
            "or pass an explicit RFCOMM channel"
        ) from exc
    return bluetooth


def resolve_rfcomm_channel(address: str, service_id: str) -> int:
    """
    RFCOMM channel advertising `service_id` on `address` via SDP.
    Falls back to channel 1, where nearly every ELM327 clone listens.
    """
    bluetooth = _bluez()
    try:
        matches = bluetooth.find_service(uuid=service_id, address=address) or []
    except bluetooth.BluetoothError as exc:
        raise OSError(f"SDP lookup failed for {address}: {exc}") from exc
    for svc in matches:
        port = svc.get("port")
        if port:
            return int(port)
    logger.info("No SDP record for %s on %s, using channel %d", service_id, address, DEFAULT_RFCOMM_CHANNEL)
    return DEFAULT_RFCOMM_CHANNEL


def discover_service_ids(address: str) -> List[str]:
    """Service class UUIDs the device advertises over SDP, in record order."""
    bluetooth = _bluez()
    try:
        records = bluetooth.find_service(address=address) or []
    except bluetooth.BluetoothError as exc:
        raise OSError(f"SDP lookup failed for {address}: {exc}") from exc
    out: List[str] = []
    for rec in records:
        for cls in rec.get("service-classes") or []:
            sid = str(cls).lower()
            if len(sid) == 4:
                sid = f"0000{sid}-0000-1000-8000-00805f9b34fb"
            if sid not in out:
                out.append(sid)
    return out


def open_rfcomm(
    address: str,
    service_id: str,
    *,
    secure: bool = True,
    channel: Optional[int] = None,
    timeout: float = 10.0,
) -> RfcommChannel:
    family = getattr(socket, "AF_BLUETOOTH", None)
    proto = getattr(socket, "BTPROTO_RFCOMM", None)
    if family is None or proto is None:
        raise OSError("This Python build has no Bluetooth socket support (AF_BLUETOOTH)")

    port = channel if channel is not None else resolve_rfcomm_channel(address, service_id)

    sock = socket.socket(family, socket.SOCK_STREAM, proto)
    try:
        level = BT_SECURITY_MEDIUM if secure else BT_SECURITY_LOW
        sock.setsockopt(SOL_BLUETOOTH, BT_SECURITY, struct.pack("BB", level, 0))
        sock.settimeout(timeout)
        logger.debug("RFCOMM connect %s channel %d (%s)", address, port, "secure" if secure else "insecure")
        sock.connect((address, port))
    except OSError:
        sock.close()
        raise
    return RfcommChannel(sock)
