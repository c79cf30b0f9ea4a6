"""
Upload intake: validates an incoming file against its bucket's policy and
writes it to the blob store under a freshly generated name.
"""

from __future__ import annotations

import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from folio.errors import PayloadTooLargeError, ValidationError
from folio.storage import BlobStore, Bucket

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

# Stored names must stay well inside the 255-byte filename limit of common filesystems.
MAX_EXTENSION_BYTES = 32


@dataclass(frozen=True)
class BucketPolicy:
    """What a bucket accepts: an exact MIME type or a MIME prefix, and a size ceiling."""

    max_bytes: int
    mime_type: Optional[str] = None
    mime_prefix: Optional[str] = None
    description: str = "file"

    def allows(self, content_type: str) -> bool:
        content_type = (content_type or "").split(";", 1)[0].strip().lower()
        if self.mime_type is not None:
            return content_type == self.mime_type
        return bool(self.mime_prefix) and content_type.startswith(self.mime_prefix)


BUCKET_POLICIES: dict[Bucket, BucketPolicy] = {
    Bucket.PDF: BucketPolicy(
        max_bytes=10 * MIB, mime_type="application/pdf", description="PDF"
    ),
    Bucket.IMAGE: BucketPolicy(
        max_bytes=10 * MIB, mime_prefix="image/", description="image"
    ),
    Bucket.PROFILE_PICTURE: BucketPolicy(
        max_bytes=5 * MIB, mime_prefix="image/", description="image"
    ),
    Bucket.BLOG_IMAGE: BucketPolicy(
        max_bytes=5 * MIB, mime_prefix="image/", description="image"
    ),
}


def policy_for(bucket: Bucket) -> BucketPolicy:
    return BUCKET_POLICIES[Bucket(bucket)]


@dataclass
class IncomingFile:
    """An upload as received from the client, not yet validated."""

    filename: str
    content_type: str
    data: bytes
    declared_size: Optional[int] = None

    @property
    def size(self) -> int:
        # Larger of the received and declared sizes.
        return max(len(self.data), self.declared_size or 0)


@dataclass
class StoredUpload:
    """Result of a successful intake."""

    bucket: Bucket
    stored_filename: str
    path: str
    display_name: str
    size: int
    uploaded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "bucket": self.bucket.value,
            "stored_filename": self.stored_filename,
            "path": self.path,
            "display_name": self.display_name,
            "size": self.size,
            "uploaded_at": self.uploaded_at,
        }


def validate_upload(bucket: Bucket, content_type: str, size: int) -> None:
    """Raise if the MIME type or size falls outside the bucket's policy."""
    policy = policy_for(bucket)
    if not policy.allows(content_type):
        raise ValidationError(f"Only {policy.description} files are allowed")
    if size > policy.max_bytes:
        raise PayloadTooLargeError(
            f"File exceeds the {policy.max_bytes // MIB} MiB limit"
        )


def generate_stored_name(
    original_filename: str,
    *,
    clock: Callable[[], float] = time.time,
    rng: Optional[random.Random] = None,
) -> str:
    """Build ``{millisecond-timestamp}-{random-integer}{extension}``.

    The extension of the original name is preserved verbatim. Uniqueness is
    probabilistic; two writes that collide overwrite each other.
    """
    rng = rng or random
    extension = os.path.splitext(os.path.basename(original_filename or ""))[1]
    return f"{int(clock() * 1000)}-{rng.randint(0, 10**9)}{extension}"


class UploadIntake:
    """Validates uploads and writes accepted ones to the blob store."""

    def __init__(self, storage: BlobStore, name_factory: Callable[[str], str] = generate_stored_name):
        self.storage = storage
        self.name_factory = name_factory

    def accept(self, bucket: Bucket, incoming: IncomingFile) -> StoredUpload:
        bucket = Bucket(bucket)
        if not incoming.filename:
            raise ValidationError("No file uploaded")
        extension = os.path.splitext(os.path.basename(incoming.filename))[1]
        if len(extension.encode("utf-8")) > MAX_EXTENSION_BYTES:
            raise ValidationError("File extension is too long")
        validate_upload(bucket, incoming.content_type, incoming.size)

        stored_filename = self.name_factory(incoming.filename)
        path = self.storage.write(bucket, stored_filename, incoming.data)
        logger.info(
            "Accepted %s upload %r as %s", bucket.value, incoming.filename, stored_filename
        )
        return StoredUpload(
            bucket=bucket,
            stored_filename=stored_filename,
            path=path,
            display_name=incoming.filename,
            size=len(incoming.data),
        )
