from __future__ import annotations

import base64
from typing import Any, Dict, Optional

import numpy as np


def bytes_to_b64_str(b: bytes) -> str:
    """Encode raw bytes as JSON-safe base64 text."""
    return base64.b64encode(b).decode("ascii")


def b64_str_to_bytes(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))


def ndarray_to_payload(arr: Optional[np.ndarray]) -> Optional[Dict[str, Any]]:
    """
    Serialize a flat parameter array into a JSON-safe payload.

    Arrays are always stored as little-endian float64 so checkpoints do not
    depend on the dtype of the device context that produced them.

    Returns
    -------
    dict or None
        ``{"b64": ..., "dtype": "<f8", "length": n}``, or None for None.
    """
    if arr is None:
        return None
    a = np.ascontiguousarray(np.asarray(arr, dtype="<f8").reshape(-1))
    return {
        "b64": bytes_to_b64_str(a.tobytes()),
        "dtype": a.dtype.str,
        "length": int(a.size),
    }


def payload_to_ndarray(payload: Optional[Dict[str, Any]]) -> Optional[np.ndarray]:
    """
    Inverse of `ndarray_to_payload`.

    Raises
    ------
    ValueError
        If the decoded byte count disagrees with the recorded length.
    """
    if payload is None:
        return None
    raw = b64_str_to_bytes(str(payload["b64"]))
    arr = np.frombuffer(raw, dtype=np.dtype(str(payload["dtype"])))
    length = int(payload["length"])
    if arr.size != length:
        raise ValueError(f"Payload holds {arr.size} values, expected {length}.")
    # frombuffer returns a read-only view of the bytes object
    return np.array(arr, dtype=np.float64)
