# elmpoll/protocol/__init__.py
from .normalize import error_marker, has_frame, split_lines
from .parser import MATCHERS, DecodeResult, decode_response, parse_response

__all__ = [
    "error_marker",
    "has_frame",
    "split_lines",
    "MATCHERS",
    "DecodeResult",
    "decode_response",
    "parse_response",
]
