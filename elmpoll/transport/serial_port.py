from __future__ import annotations

from typing import List

import serial
import serial.tools.list_ports


def open_serial(port: str, *, baudrate: int = 38400, timeout: float = 3.0) -> serial.Serial:
    """
    Open a bound RFCOMM tty (/dev/rfcomm0) or USB/COM port.
    pyserial errors are re-raised as OSError so the connector retries them.
    """
    try:
        return serial.Serial(
            port=port,
            baudrate=baudrate,
            timeout=timeout,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
        )
    except serial.SerialException as e:
        raise OSError(f"Serial port error: {e}") from e


def find_ports(include_bluetooth: bool = True) -> List[str]:
    """Serial ports that look like an ELM327, best guess first."""
    ranked: List[tuple] = []
    try:
        ports_list = serial.tools.list_ports.comports()
    except Exception:
        return []

    for p in ports_list:
        dev = (p.device or "").lower()
        desc = (p.description or "").lower()

        if "debug-console" in dev:
            continue

        score = 0
        if "rfcomm" in dev or "bluetooth" in desc or "bluetooth" in dev:
            if not include_bluetooth:
                continue
            score += 4
        if "usb" in desc:
            score += 2
        if any(x in desc for x in ["elm", "obd", "ch340", "pl2303", "ftdi", "cp210"]):
            score += 3
        if "usbserial" in dev or "wchusbserial" in dev:
            score += 2

        if score > 0 and p.device:
            ranked.append((score, p.device))

    ranked.sort(reverse=True)
    return [dev for _, dev in ranked]
