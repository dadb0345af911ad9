# elmpoll/elm/__init__.py
from .framing import CommandChannel, CommandResult
from .init import AdapterInitializer, AdapterState, InitResult, initialize_adapter
from .protocol import PROTOCOL_CANDIDATES, ProtocolCandidate, describe_protocol

__all__ = [
    "CommandChannel",
    "CommandResult",
    "AdapterInitializer",
    "AdapterState",
    "InitResult",
    "initialize_adapter",
    "PROTOCOL_CANDIDATES",
    "ProtocolCandidate",
    "describe_protocol",
]
