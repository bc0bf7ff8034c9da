"""Object storage backends.

Supports: S3 (and S3-compatible endpoints) and a local filesystem backend
where each bucket is a sub-directory of a root path.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from transcoder.core.errors import FetchFailed

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class StorageResult:
    """Result of a storage operation."""
    success: bool
    bucket: str
    key: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


class ObjectStorage(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def download(self, bucket: str, key: str, destination: Union[str, Path]) -> int:
        """Download an object fully to a local file.

        Returns:
            Number of bytes written

        Raises:
            FetchFailed: If the object is missing or the transfer is interrupted
        """
        pass

    @abstractmethod
    def upload(
        self,
        file_path: Union[str, Path],
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a local file to storage."""
        pass


class LocalStorage(ObjectStorage):
    """Local filesystem storage backend."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key

    def download(self, bucket: str, key: str, destination: Union[str, Path]) -> int:
        src_path = self._get_full_path(bucket, key)
        if not src_path.is_file():
            raise FetchFailed(f"object not found: {bucket}/{key}", bucket=bucket, key=key)
        try:
            shutil.copyfile(src_path, destination)
        except OSError as e:
            raise FetchFailed(f"copy of {bucket}/{key} failed: {e}", bucket=bucket, key=key) from e
        return Path(destination).stat().st_size

    def upload(
        self,
        file_path: Union[str, Path],
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            dest_path = self._get_full_path(bucket, key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            shutil.copyfile(file_path, dest_path)

            return StorageResult(
                success=True,
                bucket=bucket,
                key=key,
                file_size=dest_path.stat().st_size,
            )
        except OSError as e:
            return StorageResult(
                success=False,
                bucket=bucket,
                key=key,
                error_message=str(e),
            )


class S3Storage(ObjectStorage):
    """S3/MinIO compatible storage backend."""

    def __init__(self, client):
        self._client = client

    def download(self, bucket: str, key: str, destination: Union[str, Path]) -> int:
        """Stream an object into a local file.

        The transfer is checked against the reported ContentLength so a
        truncated stream is reported as a failure rather than a short file.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NoSuchBucket"):
                raise FetchFailed(f"object not found: {bucket}/{key}", bucket=bucket, key=key) from e
            raise FetchFailed(f"get_object {bucket}/{key} failed: {code}", bucket=bucket, key=key) from e
        except BotoCoreError as e:
            raise FetchFailed(f"get_object {bucket}/{key} failed: {e}", bucket=bucket, key=key) from e

        body = response["Body"]
        expected = response.get("ContentLength")
        written = 0
        try:
            with open(destination, "wb") as f:
                for chunk in body.iter_chunks(chunk_size=_COPY_CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
        except (BotoCoreError, OSError) as e:
            raise FetchFailed(f"transfer of {bucket}/{key} interrupted: {e}", bucket=bucket, key=key) from e
        finally:
            body.close()

        if expected is not None and written != int(expected):
            raise FetchFailed(
                f"transfer of {bucket}/{key} interrupted: {written} of {expected} bytes",
                bucket=bucket,
                key=key,
            )

        logger.debug("Downloaded s3://%s/%s (%d bytes)", bucket, key, written)
        return written

    def upload(
        self,
        file_path: Union[str, Path],
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        try:
            file_size = os.path.getsize(file_path)

            with open(file_path, "rb") as f:
                response = self._client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )

            etag = response.get("ETag", "").strip('"')

            return StorageResult(
                success=True,
                bucket=bucket,
                key=key,
                file_size=file_size,
                etag=etag,
            )
        except (BotoCoreError, ClientError, OSError) as e:
            return StorageResult(
                success=False,
                bucket=bucket,
                key=key,
                error_message=str(e),
            )
