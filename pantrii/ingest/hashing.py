"""Content hashing for uploaded recipe documents."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

_CHUNK = 1024 * 1024


def content_hash(data: bytes) -> str:
    """Hex SHA-256 of the raw file bytes; used as the cache key."""
    return hashlib.sha256(data).hexdigest()


def hash_path(path: str | Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


async def read_file(path: str | Path) -> bytes:
    return await asyncio.to_thread(Path(path).read_bytes)
