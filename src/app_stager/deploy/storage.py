"""Object storage access for pointer documents and artifacts."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional, Protocol

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app_stager.core.exceptions import StorageNotFoundError, StorageTransferError

logger = structlog.get_logger()

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}
CHUNK_SIZE = 64 * 1024


class StorageClient(Protocol):
    """What the stager needs from object storage."""

    def fetch_object(self, bucket: str, key: str) -> bytes:
        ...

    def stream_object_to_file(self, bucket: str, key: str, dest_path: Path) -> int:
        ...


def _write_stream_to_file(stream_iter: Iterable[bytes], dest_path: Path, max_size_bytes: Optional[int] = None) -> int:
    """Write streaming bytes to file with optional max-size enforcement.

    Bytes land in a ``.downloading`` sibling first and are renamed into place
    only once the stream is complete. Returns number of bytes written.
    """
    tmp_file = dest_path.with_name(dest_path.name + ".downloading")
    bytes_written = 0
    try:
        with open(tmp_file, "wb") as f:
            for chunk in stream_iter:
                if not chunk:
                    continue
                bytes_written += len(chunk)
                if max_size_bytes is not None and bytes_written > max_size_bytes:
                    raise StorageTransferError("Artifact exceeds maximum allowed size")
                f.write(chunk)
        os.replace(tmp_file, dest_path)
    except BaseException:
        tmp_file.unlink(missing_ok=True)
        raise
    return bytes_written


def _translate_client_error(e: ClientError, bucket: str, key: str) -> Exception:
    code = str(e.response.get("Error", {}).get("Code", ""))
    if code in NOT_FOUND_CODES:
        return StorageNotFoundError(f"Object not found: {bucket}/{key}", code=code)
    return StorageTransferError(f"Failed to get {bucket}/{key}: {e}", code=code or None)


class S3StorageClient:
    """boto3-backed storage client."""

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_size_bytes: Optional[int] = None,
        client=None,
    ):
        self.max_size_bytes = max_size_bytes
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                ),
            )
        self.s3 = client

    @classmethod
    def from_settings(cls, settings, region: Optional[str] = None) -> "S3StorageClient":
        return cls(
            region=region or settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            connect_timeout=settings.storage_connect_timeout_seconds,
            read_timeout=settings.storage_read_timeout_seconds,
            max_size_bytes=settings.max_artifact_size_bytes,
        )

    def _get_object(self, bucket: str, key: str) -> dict:
        try:
            return self.s3.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise _translate_client_error(e, bucket, key) from e
        except BotoCoreError as e:
            raise StorageTransferError(f"Failed to get {bucket}/{key}: {e}") from e

    def fetch_object(self, bucket: str, key: str) -> bytes:
        """Read a whole object into memory."""
        obj = self._get_object(bucket, key)
        try:
            return obj["Body"].read()
        except (BotoCoreError, OSError) as e:
            raise StorageTransferError(f"Failed to read {bucket}/{key}: {e}") from e

    def stream_object_to_file(self, bucket: str, key: str, dest_path: Path) -> int:
        """Stream an object to ``dest_path`` in chunks, returning bytes written."""
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        obj = self._get_object(bucket, key)
        body = obj["Body"]

        try:
            bytes_written = _write_stream_to_file(
                body.iter_chunks(CHUNK_SIZE), dest_path, self.max_size_bytes
            )
        except (BotoCoreError, OSError) as e:
            raise StorageTransferError(f"Failed to stream {bucket}/{key}: {e}") from e

        logger.info("Downloaded object", bucket=bucket, key=key, bytes=bytes_written)
        return bytes_written
