"""Leave attachments: a tagged FILE/URL union plus a storage adapter.

The request only stores the serialized list; file bytes live in Django's
configured storage and are served through short-lived signed links.
"""
from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

from django.core import signing
from django.core.exceptions import ValidationError
from django.core.files.base import ContentFile
from django.core.files.storage import Storage, default_storage
from django.urls import reverse
from django.utils import timezone
from django.utils.text import slugify

from .conf import leave_policy
from .exceptions import DependencyError

logger = logging.getLogger(__name__)

SIGNER_SALT = "leaves.attachments"


@dataclass(frozen=True)
class FileAttachment:
    path: str
    filename: str
    size: int
    mime_type: str

    def to_dict(self) -> dict:
        return {
            "type": "FILE",
            "path": self.path,
            "filename": self.filename,
            "size": self.size,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class UrlAttachment:
    url: str

    def to_dict(self) -> dict:
        return {"type": "URL", "url": self.url}


Attachment = Union[FileAttachment, UrlAttachment]


def parse_attachment(raw: Mapping[str, Any]) -> Attachment:
    kind = raw.get("type")
    if kind == "FILE":
        if not raw.get("path"):
            raise ValidationError("File attachment is missing its storage path.")
        try:
            size = int(raw.get("size") or 0)
        except (TypeError, ValueError):
            raise ValidationError("File attachment size must be a whole number of bytes.")
        return FileAttachment(
            path=raw["path"],
            filename=raw.get("filename") or os.path.basename(raw["path"]),
            size=size,
            mime_type=raw.get("mimeType") or "application/octet-stream",
        )
    if kind == "URL":
        if not raw.get("url"):
            raise ValidationError("URL attachment is missing its url.")
        return UrlAttachment(url=raw["url"])
    raise ValidationError(f"Unsupported attachment type: {kind!r}")


def parse_attachments(raw: Iterable[Mapping[str, Any]] | None) -> List[Attachment]:
    if not raw:
        return []
    if isinstance(raw, Mapping):
        raw = [raw]
    return [parse_attachment(item) for item in raw]


def serialize_attachments(attachments: Iterable[Attachment]) -> List[dict]:
    return [attachment.to_dict() for attachment in attachments]


class AttachmentStore:
    """Stores attachment bytes and hands out temporary download links."""

    def __init__(self, storage: Storage | None = None) -> None:
        self.storage = storage or default_storage
        self.signer = signing.TimestampSigner(salt=SIGNER_SALT)

    def build_key(self, owner_id, category: str, label: str, original_filename: str) -> str:
        stem, ext = os.path.splitext(os.path.basename(original_filename))
        stamp = timezone.now().strftime("%Y%m%d%H%M%S%f")
        clean_label = slugify(label or stem) or "file"
        return f"attachments/{slugify(category) or 'general'}/{owner_id}_{clean_label}_{stamp}{ext.lower()}"

    def store(self, content: bytes, owner_id, category: str, label: str, original_filename: str) -> str:
        key = self.build_key(owner_id, category, label, original_filename)
        try:
            saved = self.storage.save(key, ContentFile(content))
        except OSError as exc:
            logger.error("Failed to store attachment %s for owner %s", key, owner_id, exc_info=True)
            raise DependencyError("Could not store attachment") from exc
        logger.info("Stored attachment %s (%d bytes) for owner %s", saved, len(content), owner_id)
        return saved

    def store_upload(self, upload, owner_id, category: str = "leave", label: str = "") -> FileAttachment:
        """Store a Django ``UploadedFile`` and describe it as a FILE attachment."""
        content = upload.read()
        key = self.store(content, owner_id, category, label, upload.name)
        mime_type = getattr(upload, "content_type", None) or mimetypes.guess_type(upload.name)[0]
        return FileAttachment(
            path=key,
            filename=upload.name,
            size=len(content),
            mime_type=mime_type or "application/octet-stream",
        )

    def discard(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except OSError:
            logger.warning("Failed to discard attachment %s", key, exc_info=True)
            return
        logger.info("Discarded attachment %s", key)

    def get_download_url(self, key: str, ttl_seconds: int | None = None) -> str:
        # The TTL is enforced by the download view against the signed timestamp.
        ttl = ttl_seconds or leave_policy()["ATTACHMENT_URL_TTL"]
        token = self.signer.sign_object({"key": key, "ttl": ttl})
        return reverse("leaves:attachment_download", kwargs={"token": token})

    def resolve_token(self, token: str) -> str:
        """Return the storage key of a download token, or raise ``signing.BadSignature``."""
        payload = self.signer.unsign_object(token)
        self.signer.unsign_object(token, max_age=payload["ttl"])
        return payload["key"]

    def open(self, key: str):
        return self.storage.open(key, "rb")
