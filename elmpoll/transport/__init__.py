# elmpoll/transport/__init__.py
from .connection import Connection
from .connector import DeviceConnector, default_opener
from .device import DeviceReference

__all__ = [
    "Connection",
    "DeviceConnector",
    "DeviceReference",
    "default_opener",
]
