# Overview: Blob store for uploaded reward proof files.

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..validation import ValidationError

PROOF_FIELD_SLOTS = {
    "proofImage": "image",
    "proofAudio": "audio",
    "proofVideo": "video",
}

MIME_PREFIX_SLOTS = (
    ("image/", "image"),
    ("audio/", "audio"),
    ("video/", "video"),
)


def classify_upload(field_name: str | None, mimetype: str | None) -> str | None:
    """
    Pick the proof slot (image/audio/video) for an uploaded file.

    MIME type prefix wins; the form field name is the fallback for clients
    that send application/octet-stream.
    """
    mimetype = (mimetype or "").lower()
    for prefix, slot in MIME_PREFIX_SLOTS:
        if mimetype.startswith(prefix):
            return slot
    return PROOF_FIELD_SLOTS.get(field_name or "")


class BlobStore:
    """Stores a file and returns the URL it is served from."""

    def store(self, file: FileStorage) -> str:
        raise NotImplementedError

    def delete(self, url: str) -> None:
        raise NotImplementedError


class LocalDiskBlobStore(BlobStore):
    """Writes uploads under UPLOAD_FOLDER, served at UPLOAD_URL_PREFIX."""

    def __init__(self, folder: str, url_prefix: str = "/uploads"):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, file: FileStorage) -> str:
        original = secure_filename(file.filename or "")
        if not original:
            raise ValidationError("Uploaded file must have a filename")

        _, ext = os.path.splitext(original)
        name = f"{uuid.uuid4().hex}{ext.lower()}"

        os.makedirs(self.folder, exist_ok=True)
        file.save(os.path.join(self.folder, name))
        return f"{self.url_prefix}/{name}"

    def delete(self, url: str) -> None:
        """Remove a file this store handed out. Unknown URLs are ignored."""
        if not url.startswith(f"{self.url_prefix}/"):
            return
        name = secure_filename(url[len(self.url_prefix) + 1:])
        path = os.path.join(self.folder, name)
        if name and os.path.exists(path):
            os.remove(path)


def get_blob_store() -> BlobStore:
    return LocalDiskBlobStore(
        current_app.config["UPLOAD_FOLDER"],
        current_app.config.get("UPLOAD_URL_PREFIX", "/uploads"),
    )
