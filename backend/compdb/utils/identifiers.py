from __future__ import annotations

import os
import time
import uuid
from pathlib import Path
from typing import Optional


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    UUIDv7 layout per draft:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def component_image_name(filename: Optional[str]) -> str:
    """
    Blob naming policy for component images: 'component-<uuid7><ext>'.

    The client's filename only contributes its (lower-cased) extension,
    never a path component.
    """
    ext = Path(filename or "").suffix.lower()
    return f"component-{generate_uuid7()}{ext}"
