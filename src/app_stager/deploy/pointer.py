"""Resolve the pointer document to the artifact that should be deployed."""

from __future__ import annotations

import json
from typing import Tuple

import structlog
from pydantic import ValidationError

from app_stager.core.exceptions import ConfigurationError, PointerFetchError, PointerParseError, StorageError
from app_stager.core.models import DeploymentTarget, PointerDocument
from app_stager.deploy.storage import StorageClient

logger = structlog.get_logger()


def parse_pointer(body: bytes) -> PointerDocument:
    """Parse a UTF-8 JSON pointer body.

    Raises:
        PointerParseError: If the body is not a JSON object with string bucket and key
    """
    try:
        data = json.loads(body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PointerParseError(f"Pointer document is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PointerParseError("Pointer document must be a JSON object")

    for field_name in ("bucket", "key"):
        if not isinstance(data.get(field_name), str):
            raise PointerParseError(f"Pointer document field '{field_name}' must be a string")

    try:
        return PointerDocument(**data)
    except ValidationError as e:
        raise PointerParseError(f"Invalid pointer document: {e}") from e


class PointerResolver:
    """Reads the pointer object and derives the local deployment target."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def resolve(self, bucket: str, key: str) -> Tuple[PointerDocument, DeploymentTarget]:
        if not bucket or not key:
            logger.error("No bucket or key provided; not downloading app", bucket=bucket, key=key)
            raise ConfigurationError("Pointer bucket and key are required")

        logger.info("Fetching current app version", bucket=bucket, key=key)
        try:
            body = self.storage.fetch_object(bucket, key)
        except StorageError as e:
            raise PointerFetchError(f"Could not fetch pointer {bucket}/{key}: {e}", code=e.code) from e

        pointer = parse_pointer(body)
        logger.info("Got pointer", app_bucket=pointer.bucket, app_key=pointer.key)

        target = DeploymentTarget.from_key(pointer.key)
        if not target.output_path:
            raise PointerParseError(
                f"Artifact name '{target.zip_file_name}' has no '<app>-<hash>' form; refusing to stage"
            )
        if target.output_path in (".", ".."):
            raise PointerParseError(f"Artifact name '{target.zip_file_name}' derives an unsafe output path")

        return pointer, target
