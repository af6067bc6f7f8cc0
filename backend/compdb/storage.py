# backend/compdb/storage.py
"""
Blob store collaborator for component images.

The component core only needs three calls (`exists`, `store`, `delete`).
`LocalBlobStore` keeps blobs as flat files under one directory, which is
what the API process uses unless a different store is injected.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

# You can override this per environment:
#   COMPONENT_IMAGE_DIR=/var/lib/compdb/uploads/components
COMPONENT_IMAGE_DIR = os.getenv("COMPONENT_IMAGE_DIR", "uploads/components")

NamingPolicy = Callable[[Optional[str]], str]


class BlobStoreError(Exception):
    """Raised when the store is unreachable or refuses an operation."""


class BlobStore(Protocol):
    def exists(self, key: str) -> bool: ...

    def store(self, data: bytes, naming_policy: NamingPolicy, filename: Optional[str] = None) -> str: ...

    def delete(self, key: str) -> bool: ...


class LocalBlobStore:
    def __init__(self, root: Optional[str | Path] = None):
        self.root = Path(root or COMPONENT_IMAGE_DIR).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path.parent != self.root:
            raise BlobStoreError(f"Invalid blob key: {key!r}")
        return path

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def store(self, data: bytes, naming_policy: NamingPolicy, filename: Optional[str] = None) -> str:
        key = naming_policy(filename)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path(key).write_bytes(data)
        except OSError as exc:
            raise BlobStoreError(str(exc)) from exc
        logger.debug("Stored blob", extra={"storage_key": key, "bytes": len(data)})
        return key

    def delete(self, key: str) -> bool:
        """Remove a blob. Returns False when it was already absent."""
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobStoreError(str(exc)) from exc
        return True
