# src/storage/objects.py
from __future__ import annotations
from pathlib import Path
from typing import Protocol
import logging

import boto3
from botocore.exceptions import ClientError

from src.core.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def upload(self, key: str, data: bytes, content_type: str = "text/csv") -> str: ...

    def download(self, key: str) -> bytes: ...


class S3ObjectStore:
    """Bucket-backed store. ``endpoint_url`` points boto3 at S3-compatible hosts (e.g. Supabase Storage)."""

    def __init__(self, bucket: str, prefix: str = "", endpoint_url: str | None = None, client=None):
        self.bucket = bucket
        self.prefix = prefix
        self.s3 = client or boto3.client("s3", endpoint_url=endpoint_url)

    def _key(self, key: str) -> str:
        return f"{self.prefix.rstrip('/')}/{key}" if self.prefix else key

    def _exists(self, full_key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=full_key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(str(e)) from e

    def upload(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        full_key = self._key(key)
        if self._exists(full_key):
            raise StorageError(f"object already exists: s3://{self.bucket}/{full_key}")
        try:
            self.s3.put_object(Bucket=self.bucket, Key=full_key, Body=data, ContentType=content_type)
        except ClientError as e:
            raise StorageError(str(e)) from e
        logger.info("uploaded s3://%s/%s (%d bytes)", self.bucket, full_key, len(data))
        return key

    def download(self, key: str) -> bytes:
        full_key = self._key(key)
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=full_key)
        except ClientError as e:
            raise StorageError(str(e)) from e
        return obj["Body"].read()


class LocalObjectStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if self.root.resolve() not in p.parents:
            raise StorageError(f"invalid object key: {key}")
        return p

    def upload(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        try:
            with p.open("xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(f"object already exists: {key}") from e
        logger.info("stored %s (%d bytes)", p, len(data))
        return key

    def download(self, key: str) -> bytes:
        p = self._path(key)
        if not p.is_file():
            raise StorageError(f"object not found: {key}")
        return p.read_bytes()
