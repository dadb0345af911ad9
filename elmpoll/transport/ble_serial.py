from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Iterable, List, Optional, Tuple

from ..config import ble_rx_uuid, ble_scan_timeout_s, ble_service_uuid, ble_tx_uuid
from .buffered import BufferedChannel

logger = logging.getLogger(__name__)

# Known BLE UART profiles used by ELM327 clones: (service, rx/write, tx/notify)
KNOWN_PROFILES: Tuple[Tuple[str, str, str], ...] = (
    (
        "0000fff0-0000-1000-8000-00805f9b34fb",
        "0000fff2-0000-1000-8000-00805f9b34fb",
        "0000fff1-0000-1000-8000-00805f9b34fb",
    ),
    (
        "49535343-fe7d-4ae5-8fa9-9fafd205e455",
        "49535343-6daa-4d02-abf6-19569aca69fe",
        "49535343-aca3-481c-91ec-d85e28a60318",
    ),
    (
        "6e400001-b5a3-f393-e0a9-e50e24dcca9e",
        "6e400002-b5a3-f393-e0a9-e50e24dcca9e",
        "6e400003-b5a3-f393-e0a9-e50e24dcca9e",
    ),
    (
        "0000ffe0-0000-1000-8000-00805f9b34fb",
        "0000ffe1-0000-1000-8000-00805f9b34fb",
        "0000ffe1-0000-1000-8000-00805f9b34fb",
    ),
)


def _write_notify(service: Any) -> Tuple[List[str], List[str]]:
    write_chars: List[str] = []
    notify_chars: List[str] = []
    for ch in service.characteristics:
        props = {p.lower() for p in ch.properties}
        if "write" in props or "write-without-response" in props:
            write_chars.append(ch.uuid)
        if "notify" in props or "indicate" in props:
            notify_chars.append(ch.uuid)
    return write_chars, notify_chars


def pick_characteristics(
    services: Iterable[Any],
    service_filter: Optional[str] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    (rx, tx) characteristic UUIDs for the UART bridge.

    Known profiles win; otherwise the first service exposing both a
    writable and a notifying characteristic, then any such pair at all.
    """
    services = list(services)
    service_filter = (service_filter or "").lower()
    service_map = {service.uuid.lower(): service for service in services}

    for svc_uuid, rx_known, tx_known in KNOWN_PROFILES:
        if service_filter and svc_uuid != service_filter:
            continue
        service = service_map.get(svc_uuid)
        if not service:
            continue
        char_uuids = {ch.uuid.lower() for ch in service.characteristics}
        if rx_known in char_uuids and tx_known in char_uuids:
            return rx_known, tx_known

    for restrict in (True, False):
        for service in services:
            if restrict and service_filter and service.uuid.lower() != service_filter:
                continue
            write_chars, notify_chars = _write_notify(service)
            if write_chars and notify_chars:
                return write_chars[0], notify_chars[0]
    return None, None


class BleSerial(BufferedChannel):
    """
    pyserial-like bridge to a BLE ELM327 clone. bleak runs on a private
    event loop thread; notifications land in the receive buffer.
    """

    def __init__(self, address: str, *, timeout: float = 3.0):
        super().__init__()
        self.address = address
        self.timeout = timeout
        self.rx_uuid: Optional[str] = ble_rx_uuid()
        self.tx_uuid: Optional[str] = ble_tx_uuid()
        self.service_uuid: Optional[str] = ble_service_uuid()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client = None

    def _call(self, coro: Any, timeout: float) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout=timeout)

    def open(self) -> None:
        if self._is_open:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="ble-serial-loop", daemon=True)
        self._thread.start()
        try:
            self._call(self._connect(), self.timeout + ble_scan_timeout_s() + 5)
        except Exception as exc:
            self.close()
            raise OSError(f"BLE connect to {self.address} failed: {exc}") from exc
        self._is_open = True

    def write(self, data: bytes) -> int:
        if not self._is_open:
            raise OSError("BLE link is closed")
        try:
            self._call(self._client.write_gatt_char(self.rx_uuid, data, response=False), self.timeout)
        except Exception as exc:
            raise OSError(f"BLE write failed: {exc}") from exc
        return len(data)

    def close(self) -> None:
        self._is_open = False
        loop, self._loop = self._loop, None
        if loop is None:
            return
        if self._client is not None:
            try:
                asyncio.run_coroutine_threadsafe(self._disconnect(), loop).result(timeout=self.timeout + 2)
            except Exception as exc:
                logger.debug("BLE disconnect from %s failed: %s", self.address, exc)
            self._client = None
        loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    async def _connect(self) -> None:
        from bleak import BleakClient, BleakScanner

        device = await BleakScanner.find_device_by_address(
            self.address,
            timeout=max(self.timeout, ble_scan_timeout_s()),
        )
        if device is None:
            raise RuntimeError("device not found; disconnect it from the OS Bluetooth settings and retry")

        self._client = BleakClient(device)
        await self._client.connect(timeout=self.timeout)
        if not (self.rx_uuid and self.tx_uuid):
            rx, tx = pick_characteristics(self._client.services, self.service_uuid)
            self.rx_uuid = self.rx_uuid or rx
            self.tx_uuid = self.tx_uuid or tx
        if not (self.rx_uuid and self.tx_uuid):
            raise RuntimeError("no writable/notifying UART characteristics found")
        await self._client.start_notify(self.tx_uuid, lambda _, data: self._feed(bytes(data)))

    async def _disconnect(self) -> None:
        try:
            await self._client.stop_notify(self.tx_uuid)
        finally:
            await self._client.disconnect()


def open_ble(address: str, *, timeout: float = 3.0) -> BleSerial:
    link = BleSerial(address, timeout=timeout)
    link.open()
    return link
