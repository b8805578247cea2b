"""Inline encoding of binary file payloads."""

from __future__ import annotations

import base64
from typing import Any



def to_base64(data: Any) -> str:
    """
    Convert file data to its inline string form.

    Strings (URLs, data URIs, base64 text) pass through unchanged. Binary
    payloads are base64 encoded.

    Raises:
        TypeError: For any other payload type.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(data)).decode("ascii")
    raise TypeError(f"Unsupported file data type: {type(data).__name__}")
