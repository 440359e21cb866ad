"""
storage.py — Attachment storage collaborator.

Services never write files themselves. They call a storage object with the
interface below and keep the returned (url, handle) pairs on the payment:

    store(file)      -> StoredAttachment(url, handle)
    release(handle)  -> None, raises AttachmentStorageError on failure

LocalAttachmentStorage is the default implementation. It writes uploads
under UPLOAD_FOLDER and serves them back through the uploads blueprint at
UPLOAD_URL_PREFIX. The handle is the stored file name, which is all that is
needed to release it later.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from flask import Blueprint, current_app, send_from_directory
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class AttachmentStorageError(Exception):
    """Raised when a file cannot be stored or released."""


@dataclass(frozen=True)
class StoredAttachment:
    url: str
    handle: str


class LocalAttachmentStorage:

    def __init__(self, root: str, url_prefix: str = "/uploads") -> None:
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, file: FileStorage) -> StoredAttachment:
        original = secure_filename(file.filename or "") or "attachment"
        handle = f"{uuid.uuid4().hex}_{original}"
        try:
            os.makedirs(self.root, exist_ok=True)
            file.save(os.path.join(self.root, handle))
        except OSError as exc:
            raise AttachmentStorageError(f"Could not store {original!r}: {exc}") from exc

        logger.debug("Stored attachment %s", handle)
        return StoredAttachment(url=f"{self.url_prefix}/{handle}", handle=handle)

    def release(self, handle: str) -> None:
        # Handles are generated names; anything with a path component is not ours.
        if handle != secure_filename(handle):
            raise AttachmentStorageError(f"Refusing to release unsafe handle {handle!r}.")
        try:
            os.remove(os.path.join(self.root, handle))
        except OSError as exc:
            raise AttachmentStorageError(f"Could not release {handle!r}: {exc}") from exc

        logger.debug("Released attachment %s", handle)


# ── Upload serving ─────────────────────────────────────────────────────────

uploads_bp = Blueprint("uploads", __name__)


@uploads_bp.route("/<path:handle>", methods=["GET"])
def serve_upload(handle: str):
    """GET /uploads/:handle — Stream a stored attachment back to the client."""
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], handle)
