"""
S3-compatible client construction.

The client is created once at startup, injected into ArtifactStore and
closed at shutdown by whoever built it (see orchestrator.runtime). There
is no module-level client.
"""
from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config

from schemas.pipeline_config import StorageSettings

logger = logging.getLogger(__name__)


def build_s3_client(settings: StorageSettings) -> Any:
    """
    Build a boto3 S3 client for *settings* (MinIO or any S3 endpoint).

    Raises:
        ValueError: if access or secret key is missing.
    """
    if not settings.access_key or not settings.secret_key:
        raise ValueError(
            "Object storage credentials are not set. "
            "Set MINIO_ACCESS_KEY and MINIO_SECRET_KEY."
        )
    logger.info("Connecting object storage at %s (bucket=%s)", settings.endpoint_url, settings.bucket)
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        region_name=settings.region,
        # MinIO needs path-style addressing and SigV4 presigned URLs.
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def close_client(client: Any) -> None:
    close = getattr(client, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Error closing object storage client: %s", exc)
