from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime


def encode_cursor(dt: datetime, seq: int) -> str:
    payload = {"t": dt.isoformat(), "seq": seq}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(s: str) -> tuple[datetime, int]:
    """Inverse of ``encode_cursor``; raises ValueError on malformed input."""
    try:
        data = json.loads(base64.urlsafe_b64decode(s.encode()).decode())
        dt = datetime.fromisoformat(data["t"])
        seq = int(data["seq"])
    except (binascii.Error, UnicodeDecodeError, KeyError, TypeError) as exc:
        raise ValueError("invalid_cursor") from exc
    # Feed timestamps are stored timezone-aware.
    if dt.tzinfo is None:
        raise ValueError("invalid_cursor")
    return (dt, seq)
