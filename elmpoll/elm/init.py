# elmpoll/elm/init.py
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..errors import HandshakeError
from ..pids import PID_SUPPORTED_01_20, request_command
from ..protocol.parser import decode_response
from .framing import CommandChannel
from .protocol import PROTOCOL_CANDIDATES, ProtocolCandidate, describe_protocol

logger = logging.getLogger(__name__)


class AdapterState(Enum):
    UNCONFIGURED = "unconfigured"
    RESETTING = "resetting"
    CONFIGURING = "configuring"
    NEGOTIATING_PROTOCOL = "negotiating_protocol"
    READY = "ready"
    FAILED = "failed"


_ORDER = [
    AdapterState.UNCONFIGURED,
    AdapterState.RESETTING,
    AdapterState.CONFIGURING,
    AdapterState.NEGOTIATING_PROTOCOL,
    AdapterState.READY,
]


@dataclass
class InitResult:
    state: AdapterState = AdapterState.UNCONFIGURED
    protocol: Optional[ProtocolCandidate] = None
    protocol_name: Optional[str] = None
    elm_version: Optional[str] = None
    supported_pids: Optional[int] = None
    error: Optional[HandshakeError] = None
    history: List[AdapterState] = field(default_factory=lambda: [AdapterState.UNCONFIGURED])

    @property
    def ok(self) -> bool:
        return self.state is AdapterState.READY


def extract_version(response: str) -> Optional[str]:
    s = (response or "").strip()
    if not s:
        return None
    # the version suffix is optional; some clones answer a bare "ELM327"
    m = re.search(r"(ELM327(?:[ \t]*v?[ \t]*[\w.]+)?)", s, re.IGNORECASE)
    if m:
        return m.group(1).strip()
    return None


class AdapterInitializer:
    """
    Drives a freshly connected adapter to READY:

        RESETTING -> CONFIGURING -> NEGOTIATING_PROTOCOL -> READY

    Any failure lands in FAILED, which is terminal. initialize() never
    raises; the outcome is on the returned InitResult.
    """

    def __init__(
        self,
        channel: CommandChannel,
        *,
        candidates: Sequence[ProtocolCandidate] = PROTOCOL_CANDIDATES,
    ):
        self.channel = channel
        self.settings = channel.settings
        self.candidates = tuple(candidates)
        self.result = InitResult()

    @property
    def state(self) -> AdapterState:
        return self.result.state

    def _enter(self, state: AdapterState) -> None:
        current = self.result.state
        if current is AdapterState.FAILED:
            raise HandshakeError(f"Cannot enter {state.value}: adapter already failed")
        if state is not AdapterState.FAILED and _ORDER.index(state) <= _ORDER.index(current):
            raise HandshakeError(f"Illegal transition {current.value} -> {state.value}")
        logger.debug("Adapter state %s -> %s", current.value, state.value)
        self.result.state = state
        self.result.history.append(state)

    def _fail(self, error: HandshakeError) -> InitResult:
        logger.error("Adapter initialization failed: %s", error)
        self.result.error = error
        if self.result.state is not AdapterState.FAILED:
            self.result.state = AdapterState.FAILED
            self.result.history.append(AdapterState.FAILED)
        return self.result

    def initialize(self) -> InitResult:
        if self.result.state is not AdapterState.UNCONFIGURED:
            return self.result
        try:
            self._reset()
            self._configure()
            self._negotiate()
            self._enter(AdapterState.READY)
            self.result.protocol_name = describe_protocol(self.channel) or self.result.protocol.name
            logger.info(
                "Adapter ready: %s, protocol %s",
                self.result.elm_version or "unknown version",
                self.result.protocol_name,
            )
            return self.result
        except HandshakeError as exc:
            return self._fail(exc)
        except Exception as exc:
            return self._fail(HandshakeError(f"Unexpected error during initialization: {exc}"))

    def _reset(self) -> None:
        self._enter(AdapterState.RESETTING)
        # adapters need a moment after the link comes up before they accept input
        time.sleep(self.settings.startup_delay_s)

        for attempt in range(2):
            if attempt:
                time.sleep(self.settings.reset_retry_delay_s)
            result = self.channel.send("ATZ", timeout=self.settings.reset_timeout_s, retries=0)
            version = extract_version(result.text)
            if version:
                self.result.elm_version = version
                return
            logger.warning("No ELM327 banner after ATZ (attempt %d): %r", attempt + 1, result.text or result.error)

        raise HandshakeError("Adapter did not answer the reset with an ELM327 banner")

    def _configure(self) -> None:
        self._enter(AdapterState.CONFIGURING)
        commands = [
            "ATE0",  # echo off
            "ATL0",  # linefeeds off
            "ATS0",  # spaces off
            "ATH0",  # headers off
            "ATAT1",  # adaptive timing
            f"ATST{self.settings.adapter_timeout_hex}",
        ]
        for cmd in commands:
            result = self.channel.send(cmd, timeout=1.0, retries=1)
            if "OK" not in result.lines:
                # clones differ in strictness; keep going
                logger.info("%s not acknowledged: %r", cmd, result.text or result.error)

    def _negotiate(self) -> None:
        self._enter(AdapterState.NEGOTIATING_PROTOCOL)
        canary = request_command(PID_SUPPORTED_01_20)
        for candidate in self.candidates:
            self.channel.send(candidate.select_command, timeout=1.0, retries=1)
            result = self.channel.send(canary)
            decoded = decode_response(result.text, PID_SUPPORTED_01_20)
            if decoded.ok:
                self.result.protocol = candidate
                self.result.supported_pids = decoded.value
                logger.info("Protocol %s (%s) answered the canary", candidate.code, candidate.name)
                return
            logger.info(
                "Protocol %s (%s) failed canary: %s",
                candidate.code,
                candidate.name,
                result.error or decoded.error,
            )
        raise HandshakeError("No protocol candidate produced a valid 0100 response")


def initialize_adapter(channel: CommandChannel) -> InitResult:
    return AdapterInitializer(channel).initialize()
