# ncmarshal/utils/hashing.py
from __future__ import annotations

import hashlib


def sha256_digest(raw: bytes) -> str:
    """Lowercase hex SHA256 of a schema document as it was read from disk."""
    return hashlib.sha256(raw).hexdigest()
