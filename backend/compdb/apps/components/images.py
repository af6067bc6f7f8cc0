"""
Component image references.

The resolver links a component to a blob in the store and unlinks it
again. Storing is strict (a component must never point at a blob that
was not written). Removing is soft: the outcome is returned as a
`DetachResult` and the caller decides what to do with it.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from compdb.storage import BlobStore, BlobStoreError
from compdb.utils.identifiers import component_image_name

from .errors import ComponentValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"}
MAX_IMAGE_BYTES = int(os.getenv("COMPONENT_IMAGE_MAX_BYTES", "0") or "0")


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content: bytes


class DetachStatus(str, enum.Enum):
    REMOVED = "removed"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class DetachResult:
    status: DetachStatus
    key: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DetachStatus.FAILED


class ImageResolver:
    def __init__(self, store: BlobStore, *, max_bytes: int = MAX_IMAGE_BYTES):
        self.store = store
        self.max_bytes = max_bytes

    def _validate(self, upload: ImageUpload) -> None:
        ext = Path(upload.filename or "").suffix.lower()
        if ext not in ALLOWED_IMAGE_EXTS:
            raise ComponentValidationError(
                "image",
                "must be one of: " + ", ".join(sorted(ALLOWED_IMAGE_EXTS)),
            )
        if not upload.content:
            raise ComponentValidationError("image", "upload is empty")
        if self.max_bytes and len(upload.content) > self.max_bytes:
            raise ComponentValidationError("image", f"upload exceeds {self.max_bytes} bytes")

    def store_upload(self, upload: ImageUpload) -> str:
        self._validate(upload)
        try:
            return self.store.store(upload.content, component_image_name, upload.filename)
        except BlobStoreError as exc:
            raise ComponentValidationError("image", f"could not be stored ({exc})") from exc

    def attach(self, target, upload: ImageUpload) -> str:
        """
        Store `upload` and point `target.image` at it.

        Any previous reference is replaced; its blob is left in the store
        unless the caller detaches it.
        """
        key = self.store_upload(upload)
        target.image = key
        return key

    def detach(self, key: Optional[str]) -> DetachResult:
        if not key:
            return DetachResult(status=DetachStatus.ABSENT)
        try:
            if not self.store.exists(key):
                return DetachResult(status=DetachStatus.ABSENT, key=key)
            removed = self.store.delete(key)
        except (BlobStoreError, OSError) as exc:
            return DetachResult(status=DetachStatus.FAILED, key=key, error=str(exc))
        return DetachResult(status=DetachStatus.REMOVED if removed else DetachStatus.ABSENT, key=key)


def log_detach(result: DetachResult, *, component_id) -> None:
    if result.ok:
        logger.debug(
            "Component image detached",
            extra={"component_id": component_id, "storage_key": result.key, "status": result.status.value},
        )
        return
    logger.warning(
        "Component image removal failed; continuing",
        extra={"component_id": component_id, "storage_key": result.key, "error": result.error},
    )
