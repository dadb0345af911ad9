from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import serial

from ..config import EngineSettings
from ..errors import CommandTimeout, CommunicationError, DeviceDisconnectedError, EngineError
from ..protocol.normalize import has_frame, is_meaningful, is_syntax_error, split_lines
from ..transport.connection import Connection

logger = logging.getLogger(__name__)

RawLoggerFn = Callable[[str, str, List[str]], None]


@dataclass
class CommandResult:
    command: str
    lines: List[str] = field(default_factory=list)
    error: Optional[EngineError] = None
    attempts: int = 0
    prompt_seen: bool = False
    duration_s: float = 0.0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.lines)


class CommandChannel:
    """
    Synchronous command/response exchange with an ELM327.

    One command in flight at a time: send() only returns once the reply is
    resolved (prompt, timeout, inactivity or I/O error). I/O failures never
    escape; they come back on CommandResult.error.
    """

    def __init__(
        self,
        connection: Connection,
        settings: Optional[EngineSettings] = None,
        *,
        raw_logger: Optional[RawLoggerFn] = None,
    ):
        self.connection = connection
        self.settings = settings or EngineSettings()
        self.raw_logger = raw_logger

        self.last_command: Optional[str] = None
        self.last_lines: List[str] = []
        self.last_error: Optional[str] = None
        self.last_duration_s: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.connection.is_open

    def send(
        self,
        command: str,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> CommandResult:
        """
        Exchange with bounded resend: a reply that is empty or a bare "?"
        with no hex frame in it is retried up to `retries` extra times.
        """
        if retries is None:
            retries = self.settings.command_retries

        result = CommandResult(command=command)
        for attempt in range(retries + 1):
            result = self.exchange(command, timeout=timeout)
            result.attempts = attempt + 1

            if isinstance(result.error, DeviceDisconnectedError):
                return result
            needs_retry = (not result.lines or is_syntax_error(result.lines)) and not has_frame(result.lines)
            if not needs_retry:
                return result

            if attempt < retries:
                logger.debug("Resending %s after %r (attempt %d)", command, result.text or result.error, attempt + 1)
                time.sleep(self.settings.retry_pause_s)

        return result

    def send_text(self, command: str, timeout: Optional[float] = None) -> str:
        return self.send(command, timeout=timeout).text

    def exchange(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """
        One write + read cycle. Reading stops at the first of:
          - the '>' prompt
          - `timeout` seconds since the write
          - `inactivity_timeout_s` of silence after meaningful data
            ("SEARCHING..." alone does not count)
        """
        if timeout is None:
            timeout = self.settings.command_timeout_s
        inactivity = self.settings.inactivity_timeout_s

        result = CommandResult(command=command)
        self.last_command = command
        self.last_error = None

        start = time.monotonic()
        if not self.connection.is_open:
            result.error = DeviceDisconnectedError("Connection is closed")
            self.last_error = str(result.error)
            return result

        buf = bytearray()
        try:
            try:
                self.connection.reset_input_buffer()
            except OSError:
                pass

            if self.raw_logger:
                self.raw_logger("TX", command, [])

            self.connection.write(f"{command}\r".encode("ascii", errors="ignore"))
            self.connection.flush()

            last_rx = start
            meaningful = False

            while True:
                now = time.monotonic()
                if (now - start) > timeout:
                    break

                n = self.connection.in_waiting
                if n:
                    buf.extend(self.connection.read(n))
                    last_rx = now
                    if b">" in buf:
                        result.prompt_seen = True
                        break
                    if not meaningful:
                        meaningful = is_meaningful(split_lines(buf.decode("ascii", errors="ignore")))
                else:
                    if meaningful and (now - last_rx) > inactivity:
                        break
                    time.sleep(0.01)

        except (OSError, serial.SerialException) as e:
            msg = str(e).lower()
            if not self.connection.is_open or "disconnect" in msg or "not configured" in msg:
                result.error = DeviceDisconnectedError(f"Device disconnected: {e}")
            else:
                result.error = CommunicationError(f"Communication error: {e}")
        except Exception as e:
            logger.debug("Unexpected error during %s", command, exc_info=True)
            result.error = CommunicationError(f"Unexpected error: {e}")

        result.lines = split_lines(buf.decode("ascii", errors="ignore"))
        result.duration_s = time.monotonic() - start
        if result.error is None and not result.lines and not result.prompt_seen:
            result.error = CommandTimeout(command, timeout)

        self.last_lines = result.lines
        self.last_duration_s = result.duration_s
        if result.error is not None:
            self.last_error = str(result.error)
            logger.debug("%s -> %s", command, result.error)

        if self.raw_logger:
            self.raw_logger("RX", command, result.lines)

        return result
