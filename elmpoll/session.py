"""
Session factory: connect -> initialize -> hand out pollers.

A ReadySession only exists once the adapter reached READY, so a polling
loop can never be built on an unconfigured or missing connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import EngineSettings
from .elm.framing import CommandChannel, RawLoggerFn
from .elm.init import AdapterInitializer, InitResult
from .errors import ConnectError, EngineError
from .pids import PID_ENGINE_RPM
from .polling import PollEvent, PollingLoop
from .transport.connection import Connection
from .transport.connector import DeviceConnector
from .transport.device import DeviceReference

logger = logging.getLogger(__name__)


class ReadySession:
    def __init__(self, connection: Connection, channel: CommandChannel, init: InitResult):
        if not init.ok:
            raise ValueError("ReadySession requires an adapter in READY state")
        self.connection = connection
        self.channel = channel
        self.init = init
        self._pollers: List[PollingLoop] = []

    @property
    def is_open(self) -> bool:
        return self.connection.is_open

    def poller(
        self,
        pid: int = PID_ENGINE_RPM,
        *,
        on_event: Optional[Callable[[PollEvent], None]] = None,
    ) -> PollingLoop:
        """
        New polling loop on this session's channel. Only one loop may be
        live at a time; cancel the previous one before asking for another.
        """
        if self._active_poller() is not None:
            raise RuntimeError("Session already has an active poller; cancel it first")
        loop = PollingLoop(self.channel, pid=pid, settings=self.channel.settings, on_event=on_event)
        self._pollers.append(loop)
        return loop

    def _default_join_timeout(self) -> float:
        s = self.channel.settings
        return s.command_timeout_s * (s.command_retries + 1) + s.poll_interval_s

    def _active_poller(self) -> Optional[PollingLoop]:
        self._pollers = [loop for loop in self._pollers if not loop.stopped]
        for loop in self._pollers:
            if loop.cancelled:
                # let an exchange in progress finish before the channel is shared
                loop.join(self._default_join_timeout())
                if not loop.running:
                    continue
            return loop
        return None

    def close(self, join_timeout: Optional[float] = None) -> None:
        """
        Stop pollers cooperatively, wait for any exchange in progress, then
        release the transport. Safe to call more than once.
        """
        if join_timeout is None:
            join_timeout = self._default_join_timeout()
        for loop in self._pollers:
            loop.cancel()
        for loop in self._pollers:
            loop.join(join_timeout)
        self.connection.close()

    def __enter__(self) -> "ReadySession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass
class SetupResult:
    session: Optional[ReadySession] = None
    error: Optional[EngineError] = None
    init: Optional[InitResult] = None

    @property
    def ok(self) -> bool:
        return self.session is not None


def open_session(
    device: DeviceReference,
    settings: Optional[EngineSettings] = None,
    *,
    connector: Optional[DeviceConnector] = None,
    preferred_service_id: Optional[str] = None,
    raw_logger: Optional[RawLoggerFn] = None,
) -> SetupResult:
    """
    Blocking; run it off any UI thread. Connect and handshake failures come
    back as SetupResult.error (ConnectError or HandshakeError).
    """
    settings = settings or EngineSettings()
    connector = connector or DeviceConnector(settings)

    try:
        connection = connector.connect(device, preferred_service_id, settings.connect_retries)
    except ConnectError as exc:
        logger.error("%s", exc)
        return SetupResult(error=exc)

    channel = CommandChannel(connection, settings, raw_logger=raw_logger)
    init = AdapterInitializer(channel).initialize()
    if not init.ok:
        connection.close()
        return SetupResult(error=init.error, init=init)

    return SetupResult(session=ReadySession(connection, channel, init), init=init)
