from __future__ import annotations

import threading


class BufferedChannel:
    """
    Receive-buffer half of the pyserial API.

    Subclasses push incoming bytes with _feed() and may override _pump()
    to pull pending bytes from their transport before in_waiting is read.
    """

    def __init__(self) -> None:
        self._rx = bytearray()
        self._rx_lock = threading.Lock()
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def in_waiting(self) -> int:
        self._pump()
        with self._rx_lock:
            return len(self._rx)

    def _pump(self) -> None:
        return None

    def _feed(self, data: bytes) -> None:
        if data:
            with self._rx_lock:
                self._rx.extend(data)

    def read(self, size: int = 1) -> bytes:
        if size <= 0:
            return b""
        with self._rx_lock:
            chunk = bytes(self._rx[:size])
            del self._rx[:size]
        return chunk

    def reset_input_buffer(self) -> None:
        with self._rx_lock:
            self._rx.clear()

    def reset_output_buffer(self) -> None:
        return None

    def flush(self) -> None:
        return None
