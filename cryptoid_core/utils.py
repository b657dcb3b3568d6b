"""
cryptoid_core.utils
-------------------
Lightweight helpers for base64 and timestamps shared by the key helpers and
the storage providers.
"""

from __future__ import annotations
import base64
from datetime import datetime, timezone

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def utcnow() -> datetime:
    return datetime.now(timezone.utc)
