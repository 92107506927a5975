"""
Blob storage for uploaded file contents.

Blobs are grouped per user: ``<root>/<user_id>/<storage_key>`` on local disk,
``<user_id>/<storage_key>`` as the object key on S3.
"""
import logging
from abc import ABC, abstractmethod
import mimetypes
import secrets
import time
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.responses import FileResponse, StreamingResponse
from werkzeug.utils import secure_filename

from drive.core.config import get_settings

logger = logging.getLogger(__name__)


class BlobStorageError(Exception):
    """Raised when the storage backend fails."""


class BlobNotFound(BlobStorageError):
    pass


class BlobExists(BlobStorageError):
    """Raised when a save would overwrite an existing blob."""


def make_storage_key(filename: str, token: Optional[str] = None) -> str:
    """Build ``<epoch-millis>-<sanitized filename>``, with an optional random part."""
    safe_name = secure_filename(filename or "") or "file"
    millis = int(time.time() * 1000)
    if token:
        return f"{millis}-{token}-{safe_name}"
    return f"{millis}-{safe_name}"


def attachment_header(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=utf-8''{quote(filename)}"


def _guess_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class BlobStorage(ABC):
    """Interface shared by the storage backends."""

    @abstractmethod
    def ensure_user_dir(self, user_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def exists(self, user_id: int, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def save(self, user_id: int, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: int, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def download_response(self, user_id: int, key: str, filename: str):
        raise NotImplementedError

    @abstractmethod
    def list_blobs(self, user_id: int) -> List[Tuple[str, datetime]]:
        """Return ``(storage_key, last_modified_utc)`` for every blob of a user."""
        raise NotImplementedError

    def store(self, user_id: int, filename: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Save an upload under a fresh storage key and return the key."""
        key = make_storage_key(filename)
        if not self.exists(user_id, key):
            try:
                self.save(user_id, key, data, content_type)
                return key
            except BlobExists:
                # another upload took the key since the check
                pass
        key = make_storage_key(filename, token=secrets.token_hex(4))
        self.save(user_id, key, data, content_type)
        return key


class LocalBlobStorage(BlobStorage):
    def __init__(self, root) -> None:
        self.root = Path(root)

    def user_dir(self, user_id: int) -> Path:
        return self.root / str(user_id)

    def _path(self, user_id: int, key: str) -> Path:
        # Keys are single path components generated by make_storage_key
        if not key or key in (".", "..") or "/" in key or "\\" in key:
            raise BlobNotFound(f"Invalid storage key: {key!r}")
        return self.user_dir(user_id) / key

    def ensure_user_dir(self, user_id: int) -> None:
        try:
            self.user_dir(user_id).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BlobStorageError(f"Could not create directory for user {user_id}: {e}") from e

    def exists(self, user_id: int, key: str) -> bool:
        try:
            return self._path(user_id, key).is_file()
        except BlobNotFound:
            return False

    def save(self, user_id: int, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.ensure_user_dir(user_id)
        path = self._path(user_id, key)
        try:
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise BlobExists(f"{path} already exists") from e
        except OSError as e:
            raise BlobStorageError(f"Could not write {path}: {e}") from e

    def delete(self, user_id: int, key: str) -> None:
        path = self._path(user_id, key)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise BlobNotFound(f"{path} does not exist") from e
        except OSError as e:
            raise BlobStorageError(f"Could not delete {path}: {e}") from e

    def download_response(self, user_id: int, key: str, filename: str):
        path = self._path(user_id, key)
        if not path.is_file():
            raise BlobNotFound(f"{path} does not exist")
        return FileResponse(
            path,
            media_type=_guess_type(filename),
            headers={"Content-Disposition": attachment_header(filename)},
        )

    def list_blobs(self, user_id: int) -> List[Tuple[str, datetime]]:
        directory = self.user_dir(user_id)
        if not directory.is_dir():
            return []
        blobs = []
        for path in directory.iterdir():
            if path.is_file():
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                blobs.append((path.name, modified.replace(tzinfo=None)))
        return blobs


class S3BlobStorage(BlobStorage):
    def __init__(self, client, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @staticmethod
    def _object_key(user_id: int, key: str) -> str:
        return f"{user_id}/{key}"

    def ensure_user_dir(self, user_id: int) -> None:
        # S3 has no directories, the key prefix is enough
        return None

    def exists(self, user_id: int, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._object_key(user_id, key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise BlobStorageError(f"S3 head_object failed: {e}") from e
        except BotoCoreError as e:
            raise BlobStorageError(f"S3 head_object failed: {e}") from e
        return True

    def save(self, user_id: int, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self._object_key(user_id, key),
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (ClientError, BotoCoreError) as e:
            raise BlobStorageError(f"S3 put_object failed: {e}") from e

    def delete(self, user_id: int, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._object_key(user_id, key))
        except (ClientError, BotoCoreError) as e:
            raise BlobStorageError(f"S3 delete_object failed: {e}") from e

    def download_response(self, user_id: int, key: str, filename: str):
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._object_key(user_id, key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise BlobNotFound(f"{key} is missing in bucket {self.bucket}") from e
            raise BlobStorageError(f"S3 get_object failed: {e}") from e
        except BotoCoreError as e:
            raise BlobStorageError(f"S3 get_object failed: {e}") from e

        content_type = obj.get("ContentType") or _guess_type(filename)
        return StreamingResponse(
            obj["Body"].iter_chunks(),
            media_type=content_type,
            headers={"Content-Disposition": attachment_header(filename)},
        )

    def list_blobs(self, user_id: int) -> List[Tuple[str, datetime]]:
        prefix = f"{user_id}/"
        blobs = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    modified = item["LastModified"]
                    if modified.tzinfo is not None:
                        modified = modified.astimezone(timezone.utc).replace(tzinfo=None)
                    blobs.append((item["Key"][len(prefix):], modified))
        except (ClientError, BotoCoreError) as e:
            raise BlobStorageError(f"S3 list_objects_v2 failed: {e}") from e
        return blobs


@lru_cache
def get_storage() -> BlobStorage:
    settings = get_settings()
    if settings.storage_backend == "s3":
        logger.info("Storing blobs in S3 bucket %s", settings.aws_s3_bucket_name)
        s3 = boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
        )
        return S3BlobStorage(s3, settings.aws_s3_bucket_name)

    logger.info("Storing blobs on local disk under %s", settings.upload_dir)
    return LocalBlobStorage(settings.upload_dir)
