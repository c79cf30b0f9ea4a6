"""
Blob storage for uploaded files: local filesystem, S3-compatible and in-memory.

Blobs are grouped into buckets, one directory (or key prefix) per bucket.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class Bucket(str, Enum):
    """Logical buckets for uploaded content; values are directory names."""

    PROFILE_PICTURE = "profile-pictures"
    PDF = "pdfs"
    IMAGE = "images"
    BLOG_IMAGE = "blog-images"


def safe_name(filename: str) -> str:
    """Reduce a requested filename to its base name.

    Any directory component in the input is discarded, so ``../../etc/passwd``
    and ``a\\b.pdf`` resolve to ``passwd`` and ``b.pdf``.
    """
    return os.path.basename(filename.replace("\\", "/"))


class BlobStore(Protocol):
    """Defines the operations the services need from blob storage."""

    def write(self, bucket: Bucket, name: str, data: bytes) -> str:
        ...

    def exists(self, bucket: Bucket, name: str) -> bool:
        ...

    def delete(self, bucket: Bucket, name: str) -> None:
        ...

    def path_for(self, bucket: Bucket, name: str) -> str:
        ...

    def iter_bytes(self, bucket: Bucket, name: str) -> Iterator[bytes]:
        ...

    def list_names(self, bucket: Bucket) -> list[str]:
        ...


@dataclass
class LocalBlobStore:
    """Filesystem storage rooted at ``root`` with one directory per bucket."""

    root: str

    def _bucket_dir(self, bucket: Bucket) -> Path:
        return Path(self.root) / Bucket(bucket).value

    def path_for(self, bucket: Bucket, name: str) -> str:
        return str(self._bucket_dir(bucket) / safe_name(name))

    def write(self, bucket: Bucket, name: str, data: bytes) -> str:
        directory = self._bucket_dir(bucket)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / safe_name(name)
        path.write_bytes(data)
        logger.info("Stored blob %s (%d bytes)", path, len(data))
        return str(path)

    def exists(self, bucket: Bucket, name: str) -> bool:
        return Path(self.path_for(bucket, name)).is_file()

    def delete(self, bucket: Bucket, name: str) -> None:
        path = Path(self.path_for(bucket, name))
        path.unlink()
        logger.info("Deleted blob %s", path)

    def iter_bytes(self, bucket: Bucket, name: str) -> Iterator[bytes]:
        with open(self.path_for(bucket, name), "rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    def list_names(self, bucket: Bucket) -> list[str]:
        directory = self._bucket_dir(bucket)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file())


@dataclass
class InMemoryBlobStore:
    """Test double for blob storage."""

    root: str = "memory://uploads"
    blobs: dict = field(default_factory=dict)

    def path_for(self, bucket: Bucket, name: str) -> str:
        return f"{self.root}/{Bucket(bucket).value}/{safe_name(name)}"

    def write(self, bucket: Bucket, name: str, data: bytes) -> str:
        self.blobs[(Bucket(bucket), safe_name(name))] = bytes(data)
        return self.path_for(bucket, name)

    def exists(self, bucket: Bucket, name: str) -> bool:
        return (Bucket(bucket), safe_name(name)) in self.blobs

    def delete(self, bucket: Bucket, name: str) -> None:
        key = (Bucket(bucket), safe_name(name))
        if key not in self.blobs:
            raise FileNotFoundError(self.path_for(bucket, name))
        del self.blobs[key]

    def iter_bytes(self, bucket: Bucket, name: str) -> Iterator[bytes]:
        key = (Bucket(bucket), safe_name(name))
        if key not in self.blobs:
            raise FileNotFoundError(self.path_for(bucket, name))
        data = self.blobs[key]
        for start in range(0, len(data), CHUNK_SIZE):
            yield data[start:start + CHUNK_SIZE]

    def list_names(self, bucket: Bucket) -> list[str]:
        return sorted(name for (b, name) in self.blobs if b == Bucket(bucket))

    def reset(self) -> None:
        self.blobs.clear()


@dataclass
class S3BlobStore:
    """
    S3-compatible blob storage. Objects are keyed ``{bucket}/{name}``.
    """

    bucket_name: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _key(self, bucket: Bucket, name: str) -> str:
        return f"{Bucket(bucket).value}/{safe_name(name)}"

    def path_for(self, bucket: Bucket, name: str) -> str:
        return f"s3://{self.bucket_name}/{self._key(bucket, name)}"

    def write(self, bucket: Bucket, name: str, data: bytes) -> str:
        key = self._key(bucket, name)
        self._client.put_object(Bucket=self.bucket_name, Key=key, Body=data)
        logger.info("Stored blob s3://%s/%s (%d bytes)", self.bucket_name, key, len(data))
        return self.path_for(bucket, name)

    def exists(self, bucket: Bucket, name: str) -> bool:
        try:
            self._client.head_object(
                Bucket=self.bucket_name, Key=self._key(bucket, name)
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def delete(self, bucket: Bucket, name: str) -> None:
        # S3 deletes are idempotent; report a missing object like the filesystem does.
        if not self.exists(bucket, name):
            raise FileNotFoundError(self.path_for(bucket, name))
        key = self._key(bucket, name)
        self._client.delete_object(Bucket=self.bucket_name, Key=key)
        logger.info("Deleted blob s3://%s/%s", self.bucket_name, key)

    def iter_bytes(self, bucket: Bucket, name: str) -> Iterator[bytes]:
        try:
            response = self._client.get_object(
                Bucket=self.bucket_name, Key=self._key(bucket, name)
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise FileNotFoundError(self.path_for(bucket, name)) from exc
            raise
        yield from response["Body"].iter_chunks(CHUNK_SIZE)

    def list_names(self, bucket: Bucket) -> list[str]:
        prefix = f"{Bucket(bucket).value}/"
        names: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for item in page.get("Contents", []):
                names.append(item["Key"][len(prefix):])
        return sorted(names)


UPLOADS_URL_PREFIX = "/uploads"


def public_url(bucket: Bucket, name: str) -> str:
    """URL path under which the file retrieval route serves a blob."""
    return f"{UPLOADS_URL_PREFIX}/{Bucket(bucket).value}/{safe_name(name)}"
