# elmpoll/errors.py
from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    pass


class CommunicationError(EngineError):
    pass


class DeviceDisconnectedError(CommunicationError):
    pass


class CommandTimeout(CommunicationError):
    def __init__(self, command: str, timeout_s: float):
        super().__init__(f"No reply to {command!r} within {timeout_s:.1f}s")
        self.command = command
        self.timeout_s = timeout_s


class ParseError(EngineError):
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class ConnectError(EngineError, ConnectionError):
    def __init__(self, message: str, attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class HandshakeError(EngineError):
    pass


class AdapterUnresponsive(EngineError):
    def __init__(self, consecutive_errors: int, last_error: Optional[BaseException] = None):
        super().__init__(f"Adapter unresponsive after {consecutive_errors} consecutive failed polls")
        self.consecutive_errors = consecutive_errors
        self.last_error = last_error
