from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .config import EngineSettings
from .elm.framing import CommandChannel
from .errors import AdapterUnresponsive, CommunicationError, EngineError
from .pids import PID_ENGINE_RPM, request_command
from .protocol.parser import DecodeResult, decode_response

logger = logging.getLogger(__name__)


class PollStatus(Enum):
    VALUE = "value"
    WAITING = "waiting"  # degraded: no usable reply this cycle
    UNRESPONSIVE = "unresponsive"  # terminal: error threshold reached
    STOPPED = "stopped"  # terminal: cancelled or connection closed


@dataclass
class PollEvent:
    status: PollStatus
    pid: int
    value: Optional[int] = None
    error: Optional[EngineError] = None
    consecutive_errors: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def terminal(self) -> bool:
        return self.status in (PollStatus.UNRESPONSIVE, PollStatus.STOPPED)


class PollingLoop:
    """
    Polls one Mode 01 PID over an initialized channel.

    Events go out through `events` (a queue.Queue) and the optional
    `on_event` callback; the loop never touches presentation state.
    Cancellation is checked at the top of each cycle so an exchange in
    progress always completes.
    """

    def __init__(
        self,
        channel: CommandChannel,
        *,
        pid: int = PID_ENGINE_RPM,
        settings: Optional[EngineSettings] = None,
        on_event: Optional[Callable[[PollEvent], None]] = None,
        events: Optional["queue.Queue[PollEvent]"] = None,
    ):
        self.channel = channel
        self.pid = pid
        self.settings = settings or channel.settings
        self.on_event = on_event
        self.events: "queue.Queue[PollEvent]" = events if events is not None else queue.Queue()

        self.consecutive_errors = 0
        self.last_value: Optional[int] = None
        self.cycles = 0
        self.stopped = False
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def command(self) -> str:
        return request_command(self.pid)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _emit(self, event: PollEvent) -> None:
        self.events.put(event)
        if self.on_event:
            try:
                self.on_event(event)
            except Exception:
                logger.exception("on_event callback failed")

    def poll_once(self) -> DecodeResult:
        result = self.channel.send(self.command)
        decoded = decode_response(result.text, self.pid)
        if result.error is not None and not decoded.ok:
            decoded.error = result.error
        return decoded

    def run(self) -> PollEvent:
        """Blocking loop; returns the terminal event."""
        try:
            return self._run()
        except Exception as exc:
            logger.exception("Polling %s failed", self.command)
            return self._finish(
                PollEvent(
                    PollStatus.STOPPED,
                    self.pid,
                    error=CommunicationError(f"Polling stopped: {exc}"),
                    consecutive_errors=self.consecutive_errors,
                )
            )

    def _run(self) -> PollEvent:
        interval = self.settings.poll_interval_s
        threshold = self.settings.error_threshold
        logger.info("Polling %s every %.1fs (threshold %d)", self.command, interval, threshold)

        while True:
            if self._cancel.is_set():
                return self._finish(PollEvent(PollStatus.STOPPED, self.pid, consecutive_errors=self.consecutive_errors))
            if not self.channel.is_open:
                logger.info("Connection closed, polling stops")
                return self._finish(PollEvent(PollStatus.STOPPED, self.pid, consecutive_errors=self.consecutive_errors))

            self.cycles += 1
            decoded = self.poll_once()

            if decoded.ok:
                self.consecutive_errors = 0
                self.last_value = decoded.value
                self._emit(PollEvent(PollStatus.VALUE, self.pid, value=decoded.value))
            else:
                self.consecutive_errors += 1
                logger.debug("Poll failed (%d/%d): %s", self.consecutive_errors, threshold, decoded.error)
                if self.consecutive_errors >= threshold:
                    logger.warning("No valid %s reply in %d cycles, giving up", self.command, threshold)
                    return self._finish(
                        PollEvent(
                            PollStatus.UNRESPONSIVE,
                            self.pid,
                            error=AdapterUnresponsive(self.consecutive_errors, decoded.error),
                            consecutive_errors=self.consecutive_errors,
                        )
                    )
                self._emit(
                    PollEvent(
                        PollStatus.WAITING,
                        self.pid,
                        error=decoded.error,
                        consecutive_errors=self.consecutive_errors,
                    )
                )

            self._cancel.wait(interval)

    def _finish(self, event: PollEvent) -> PollEvent:
        self.stopped = True
        self._emit(event)
        return event

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("Polling loop already started")
        self._thread = threading.Thread(target=self.run, name=f"elm-poll-{self.command}", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
