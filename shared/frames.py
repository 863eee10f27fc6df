from __future__ import annotations
from typing import Any, Union
import json


class FrameDecodeError(Exception):
    """Raised when an inbound frame is not valid UTF-8 JSON."""
    pass


def _reject_constant(name: str) -> Any:
    # NaN/Infinity/-Infinity are not JSON
    raise FrameDecodeError(f"Invalid JSON constant: {name}")


def decode_frame(raw: Union[str, bytes]) -> Any:
    """Parse an inbound text frame into a structured message"""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode('utf-8')
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"Invalid UTF-8: {e}") from e
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Invalid JSON: {e}") from e


def encode_message(message: Any) -> str:
    """Encode an outbound message as compact JSON (same shape as JSON.stringify)"""
    return json.dumps(message, separators=(',', ':'), ensure_ascii=False, allow_nan=False)
