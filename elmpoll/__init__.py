"""
elmpoll - ELM327 OBD-II polling engine
======================================
Connect to an ELM327 adapter over RFCOMM, serial or BLE, bring it to a
known configuration, and poll one Mode 01 PID (engine RPM by default).
"""

__version__ = "1.0.0"

from .config import EngineSettings, load_settings
from .elm import AdapterInitializer, AdapterState, CommandChannel, CommandResult, InitResult
from .errors import (
    AdapterUnresponsive,
    CommandTimeout,
    CommunicationError,
    ConnectError,
    DeviceDisconnectedError,
    EngineError,
    HandshakeError,
    ParseError,
)
from .pids import PIDS, decode_value
from .polling import PollEvent, PollingLoop, PollStatus
from .protocol import decode_response, parse_response
from .session import ReadySession, SetupResult, open_session
from .transport import Connection, DeviceConnector, DeviceReference

__all__ = [
    "EngineSettings",
    "load_settings",
    "AdapterInitializer",
    "AdapterState",
    "CommandChannel",
    "CommandResult",
    "InitResult",
    "AdapterUnresponsive",
    "CommandTimeout",
    "CommunicationError",
    "ConnectError",
    "DeviceDisconnectedError",
    "EngineError",
    "HandshakeError",
    "ParseError",
    "PIDS",
    "decode_value",
    "PollEvent",
    "PollingLoop",
    "PollStatus",
    "decode_response",
    "parse_response",
    "ReadySession",
    "SetupResult",
    "open_session",
    "Connection",
    "DeviceConnector",
    "DeviceReference",
]
