"""
media/storage.py -- Object-storage collaborator for profile images.

Pattern: Protocol + one concrete adapter. Routes depend on the ImageStorage
protocol; LocalImageStorage writes files under a media root and serves them
from a base URL. A hosted object store only has to provide the same two calls:

  upload(data, folder=None, name=None) -> StoredImage(secure_url, public_id)
  delete(public_id) -> bool

Every failure is raised as ImageStorageError. Images are optional, so callers
log these and carry on; an unreachable store must never block sign-up or
sign-in.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger("quill.media")

# Magic numbers for the formats we accept. Content-Type headers are client
# controlled; the bytes are not.
_SIGNATURES: dict[bytes, str] = {
    b"\x89PNG\r\n\x1a\n": "png",
    b"\xff\xd8\xff": "jpg",
    b"GIF87a": "gif",
    b"GIF89a": "gif",
}

_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]+")


class ImageStorageError(Exception):
    """Raised when the object store rejects or cannot complete an operation."""


class ImageRejected(ImageStorageError):
    """The payload itself is unacceptable: empty, too large or not an image."""


@dataclass(frozen=True)
class StoredImage:
    secure_url: str
    public_id: str


class ImageStorage(Protocol):
    def upload(self, data: bytes, folder: str | None = None, name: str | None = None) -> StoredImage: ...

    def delete(self, public_id: str) -> bool: ...


def sniff_image_format(data: bytes) -> str | None:
    """Return the file extension for a supported image payload, or None."""
    for signature, ext in _SIGNATURES.items():
        if data.startswith(signature):
            return ext
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def _safe(segment: str) -> str:
    return _SAFE_SEGMENT.sub("_", segment).strip("_") or "image"


class LocalImageStorage:
    """Filesystem-backed ImageStorage.

    public_id is the path relative to root without extension, e.g.
    "profiles/1718000000_avatar_3f9a". It contains only [A-Za-z0-9_-/], so it
    can never escape root when joined back.
    """

    def __init__(self, root: str | Path, base_url: str, max_bytes: int = 5 * 1024 * 1024) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    def upload(self, data: bytes, folder: str | None = None, name: str | None = None) -> StoredImage:
        if not data:
            raise ImageRejected("Empty image payload.")
        if len(data) > self.max_bytes:
            raise ImageRejected(f"Image exceeds {self.max_bytes} bytes.")
        ext = sniff_image_format(data)
        if ext is None:
            raise ImageRejected("Unsupported image format.")

        stem = f"{int(time.time())}_{_safe(name or 'image')}_{secrets.token_hex(4)}"
        public_id = f"{_safe(folder)}/{stem}" if folder else stem
        path = self.root / f"{public_id}.{ext}"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ImageStorageError(f"Could not store image: {exc}") from exc

        logger.info("Stored image %s (%d bytes)", public_id, len(data))
        return StoredImage(secure_url=f"{self.base_url}/{public_id}.{ext}", public_id=public_id)

    def delete(self, public_id: str) -> bool:
        """Remove a stored image. Returns False if nothing was stored under that id."""
        if any(_safe(part) != part for part in public_id.split("/")):
            raise ImageStorageError(f"Invalid public id: {public_id!r}")
        matches = list(self.root.glob(f"{public_id}.*"))
        try:
            for path in matches:
                path.unlink()
        except OSError as exc:
            raise ImageStorageError(f"Could not delete image: {exc}") from exc
        return bool(matches)
