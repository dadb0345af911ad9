from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from ..config import EngineSettings
from ..errors import ConnectError
from .ble_serial import open_ble
from .connection import Connection
from .device import DeviceReference
from .rfcomm import open_rfcomm
from .serial_port import open_serial

logger = logging.getLogger(__name__)

# (device, service_id, secure) -> pyserial-like channel; raises OSError on failure
Opener = Callable[[DeviceReference, str, bool], Any]


def default_opener(settings: EngineSettings) -> Opener:
    def _open(device: DeviceReference, service_id: str, secure: bool) -> Any:
        if device.transport == "serial":
            return open_serial(device.address, baudrate=settings.serial_baudrate)
        if device.transport == "ble":
            return open_ble(device.address, timeout=settings.connect_timeout_s)
        return open_rfcomm(
            device.address,
            service_id,
            secure=secure,
            channel=device.channel,
            timeout=settings.connect_timeout_s,
        )

    return _open


class DeviceConnector:
    """
    Opens the duplex stream to a bonded adapter.

    At most one live Connection per connector: every connect() first closes
    the one it handed out before.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        *,
        opener: Optional[Opener] = None,
        insecure_fallback: bool = True,
    ):
        self.settings = settings or EngineSettings()
        self._opener = opener or default_opener(self.settings)
        self.insecure_fallback = insecure_fallback
        self._current: Optional[Connection] = None
        self.attempt_log: List[tuple] = []

    @property
    def current(self) -> Optional[Connection]:
        return self._current

    def disconnect(self) -> None:
        if self._current is not None:
            self._current.close()
            self._current = None

    def _plan(self, device: DeviceReference, max_retries: int) -> List[bool]:
        # secure attempts, then one insecure attempt for clones that reject pairing
        plan = [True] * max_retries
        if self.insecure_fallback and device.transport == "rfcomm":
            plan.append(False)
        return plan

    def connect(
        self,
        device: DeviceReference,
        preferred_service_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> Connection:
        if max_retries is None:
            max_retries = self.settings.connect_retries
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self.disconnect()
        self.attempt_log = []

        service_id = (preferred_service_id or device.service_candidates[0]).lower()
        plan = self._plan(device, max_retries)
        last_error: Optional[BaseException] = None

        for attempt, secure in enumerate(plan, start=1):
            if attempt > 1:
                time.sleep(self.settings.connect_backoff_s)

            mode = "secure" if secure else "insecure"
            logger.info("Connecting to %s (%s, %s) attempt %d/%d", device.label, service_id, mode, attempt, len(plan))
            self.attempt_log.append((service_id, secure))

            channel = None
            try:
                channel = self._opener(device, service_id, secure)
                if not getattr(channel, "is_open", False):
                    raise OSError("channel did not open")
            except OSError as exc:
                last_error = exc
                logger.warning("Attempt %d to %s failed: %s", attempt, device.label, exc)
                if channel is not None:
                    try:
                        channel.close()
                    except Exception:
                        pass
                continue

            self._current = Connection(channel, device, service_id=service_id, secure=secure)
            logger.info("Connected to %s on attempt %d (%s)", device.label, attempt, mode)
            return self._current

        raise ConnectError(
            f"Could not connect to {device.label} after {len(plan)} attempts: {last_error}",
            attempts=len(plan),
            last_error=last_error,
        )
