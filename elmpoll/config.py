from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Optional


SPP_UUID = "00001101-0000-1000-8000-00805f9b34fb"

TRANSPORTS = ("rfcomm", "serial", "ble")


@dataclass(frozen=True)
class EngineSettings:
    # Device Connector
    connect_retries: int = 3
    connect_backoff_s: float = 1.0
    connect_timeout_s: float = 10.0
    serial_baudrate: int = 38400

    # Adapter Initializer
    startup_delay_s: float = 1.5
    reset_timeout_s: float = 5.0
    reset_retry_delay_s: float = 1.0
    adapter_timeout_hex: str = "64"  # ATST units of 4 ms

    # Framing Layer
    command_timeout_s: float = 6.0
    inactivity_timeout_s: float = 1.5
    command_retries: int = 2
    retry_pause_s: float = 0.15

    # Polling Loop
    poll_interval_s: float = 1.0
    error_threshold: int = 10

    def with_overrides(self, **changes: Any) -> "EngineSettings":
        clean = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **clean)


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def device_address() -> Optional[str]:
    return _env_str("ELMPOLL_ADDRESS")


def device_transport() -> str:
    value = (_env_str("ELMPOLL_TRANSPORT") or "rfcomm").lower()
    return value if value in TRANSPORTS else "rfcomm"


def service_uuid() -> Optional[str]:
    return _env_str("ELMPOLL_SERVICE_UUID")


def rfcomm_channel() -> Optional[int]:
    value = _env_str("ELMPOLL_CHANNEL")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def raw_log_path() -> Optional[str]:
    return _env_str("ELMPOLL_RAW_LOG")


def ble_service_uuid() -> Optional[str]:
    return _env_str("ELMPOLL_BLE_SERVICE_UUID")


def ble_rx_uuid() -> Optional[str]:
    return _env_str("ELMPOLL_BLE_RX_UUID")


def ble_tx_uuid() -> Optional[str]:
    return _env_str("ELMPOLL_BLE_TX_UUID")


def ble_scan_timeout_s() -> float:
    return _env_float("ELMPOLL_BLE_SCAN_TIMEOUT", 6.0)


def load_settings(base: Optional[EngineSettings] = None) -> EngineSettings:
    """
    Defaults overlaid with ELMPOLL_* environment overrides.
    Unparseable values keep the default.
    """
    base = base or EngineSettings()
    return replace(
        base,
        poll_interval_s=_env_float("ELMPOLL_POLL_INTERVAL", base.poll_interval_s),
        error_threshold=max(1, _env_int("ELMPOLL_ERROR_THRESHOLD", base.error_threshold)),
        command_timeout_s=_env_float("ELMPOLL_COMMAND_TIMEOUT", base.command_timeout_s),
        connect_retries=max(1, _env_int("ELMPOLL_CONNECT_RETRIES", base.connect_retries)),
    )
