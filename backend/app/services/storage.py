"""
Storage services for uploaded files.

Two backends share one interface (upload / download / delete / exist /
describe), so callers and diagnostics never need to know the wire protocol:

  local  DiskStorageService  : files under STORAGE_ROOT (production default)
  s3     S3StorageService    : any S3-compatible object store via boto3
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Union

import boto3
from botocore.exceptions import ClientError

from app.config import ConfigurationError, S3Settings, StorageSettings

logger = logging.getLogger(__name__)

Data = Union[bytes, BinaryIO]


def _read_all(data: Data) -> bytes:
    return data if isinstance(data, bytes) else data.read()


class DiskStorageService:
    """
    Files on the local disk.

    Keys are sharded into two levels of folders taken from the first four
    characters of the key (``ab/cd/abcdef...``) to keep directories small.
    """

    name = "local"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or key in (".", ".."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / key[0:2] / key[2:4] / key

    def upload(self, key: str, data: Data, content_type: Optional[str] = None) -> str:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_read_all(data))
        return key

    def download(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError:
            raise FileNotFoundError(f"No stored file for key {key!r}")

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def exist(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def describe(self) -> dict:
        return {"service": self.name, "root": str(self.root.resolve())}


class S3StorageService:
    """Objects in an S3-compatible bucket."""

    name = "s3"

    def __init__(self, settings: S3Settings, client=None):
        missing = settings.missing()
        if missing:
            raise ConfigurationError(
                f"S3 storage requires {', '.join(missing)} to be set"
            )
        self.settings = settings
        self.bucket = settings.bucket_name
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.endpoint_url,
            region_name=settings.region,
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
        )

    def upload(self, key: str, data: Data, content_type: Optional[str] = None) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        self.client.put_object(Bucket=self.bucket, Key=key, Body=_read_all(data), **extra)
        return key

    def download(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    def delete(self, key: str) -> bool:
        self.client.delete_object(Bucket=self.bucket, Key=key)
        return True

    def exist(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def check_bucket(self) -> None:
        """Raise if the bucket is unreachable or credentials are rejected."""
        self.client.head_bucket(Bucket=self.bucket)

    def describe(self) -> dict:
        return {
            "service": self.name,
            "endpoint": self.settings.endpoint_url,
            "bucket": self.bucket,
            "region": self.settings.region,
        }


def build_storage_service(settings: StorageSettings) -> Union[DiskStorageService, S3StorageService]:
    """Return the storage service selected by STORAGE_SERVICE."""
    if settings.service == "local":
        return DiskStorageService(os.path.expanduser(settings.root))
    if settings.service == "s3":
        return S3StorageService(settings.s3)
    raise ConfigurationError(
        f"Unknown storage service {settings.service!r}. Supported services: ['local', 's3']"
    )
