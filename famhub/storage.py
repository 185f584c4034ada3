"""
Upload storage: local public directory, S3-compatible bucket, and in-memory testing.

Uploaded files are stored as `uploads/{folder_path}/{epoch_millis}.{ext}`.
"""

from __future__ import annotations

import os
import posixpath
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import boto3
from botocore.config import Config

from famhub.errors import ValidationError

UPLOADS_DIR = "uploads"


class UploadStorage(Protocol):
    """Defines the operations the API needs to persist uploaded files."""

    def save(self, folder_path: str, filename: str, data: bytes) -> str:
        ...


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def normalize_folder(folder_path: str) -> str:
    """
    Normalize a caller-supplied folder path to a relative POSIX path.

    Raises ValidationError when the path is empty or escapes the uploads root.
    """
    cleaned = (folder_path or "").replace("\\", "/").strip().strip("/")
    if not cleaned:
        raise ValidationError("folderPath is required")
    normalized = posixpath.normpath(cleaned)
    if normalized in ("..", ".") or normalized.startswith("../"):
        raise ValidationError(f"Invalid folderPath: {folder_path}")
    return normalized


def stored_name(filename: str, clock: Callable[[], int] = _epoch_millis) -> str:
    ext = os.path.splitext(filename or "")[1]
    return f"{clock()}{ext}"


def object_key(folder_path: str, filename: str, clock: Callable[[], int] = _epoch_millis) -> str:
    return posixpath.join(UPLOADS_DIR, normalize_folder(folder_path), stored_name(filename, clock))


@dataclass
class LocalUploadStorage:
    """Writes uploads beneath a public directory served at the site root."""

    public_root: str = "public"

    def save(self, folder_path: str, filename: str, data: bytes) -> str:
        key = object_key(folder_path, filename)
        dest = os.path.join(self.public_root, *key.split("/"))
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        with open(dest, "wb") as f:
            f.write(data)
        return f"/{key}"


@dataclass
class InMemoryUploadStorage:
    """Test double for upload storage."""

    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def save(self, folder_path: str, filename: str, data: bytes) -> str:
        key = object_key(folder_path, filename)
        self.stored_objects[key] = data
        return f"/{key}"


@dataclass
class S3UploadStorage:
    """
    S3-compatible upload storage.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

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

    def save(self, folder_path: str, filename: str, data: bytes) -> str:
        key = object_key(folder_path, filename)
        self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"
