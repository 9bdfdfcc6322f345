"""
Artifact store: rendered videos in an S3-compatible bucket.

Layout: videos/{account_id}/{job_id}.mp4 — see schemas.artifact.object_key_for.
The bucket is created on first upload if missing and given a read policy
limited to the videos/ prefix; that initialization runs once per store.

Contract per operation:
  upload             Artifact, or raises UploadFailed
  get_retrieval_url  signed URL, or "" when unavailable (never raises)
  get_stream         ArtifactStream, or raises NotFound
  get_metadata       ArtifactStat, or raises NotFound
  delete             True/False (never raises)
"""
from __future__ import annotations

import datetime
import json
import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from schemas.artifact import (
    ARTIFACT_CONTENT_TYPE,
    ARTIFACT_PREFIX,
    Artifact,
    ArtifactStat,
    ArtifactStream,
    object_key_for,
)
from schemas.errors import NotFound, UploadFailed

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
DEFAULT_URL_EXPIRY_SEC = 3600


def _is_missing(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code", "")) in _MISSING_CODES


def read_policy(bucket: str) -> dict:
    """Anonymous GetObject on the artifact prefix only."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/{ARTIFACT_PREFIX}/*"],
            }
        ],
    }


class ArtifactStore:

    def __init__(self, client: Any, bucket: str, region: str = "us-east-1") -> None:
        self._client = client
        self.bucket = bucket
        self.region = region
        self._ready = False
        self._init_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Bucket initialization
    # ------------------------------------------------------------------

    def ensure_bucket(self) -> None:
        """Create the bucket if needed and apply the read policy. Idempotent."""
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            try:
                self._client.head_bucket(Bucket=self.bucket)
                logger.info("Bucket %s exists", self.bucket)
            except ClientError as exc:
                if not _is_missing(exc):
                    raise
                kwargs: dict[str, Any] = {"Bucket": self.bucket}
                if self.region and self.region != "us-east-1":
                    kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
                self._client.create_bucket(**kwargs)
                logger.info("Created bucket %s", self.bucket)

            self._client.put_bucket_policy(
                Bucket=self.bucket,
                Policy=json.dumps(read_policy(self.bucket)),
            )
            logger.info("Applied read policy on %s/%s/*", self.bucket, ARTIFACT_PREFIX)
            self._ready = True

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def upload(
        self,
        local_path: "Path | str",
        account_id: str,
        job_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Artifact:
        local_path = Path(local_path)
        key = object_key_for(account_id, job_id)
        created_at = datetime.datetime.now(datetime.timezone.utc)

        try:
            size = local_path.stat().st_size
        except OSError as exc:
            raise UploadFailed(f"cannot read {local_path}: {exc}") from exc

        merged: dict[str, str] = {
            "content-type": ARTIFACT_CONTENT_TYPE,
            "owner-id": account_id,
            "job-id": job_id,
            "created-at": created_at.isoformat(),
            "file-size": str(size),
        }
        # Caller values win; S3 lower-cases user metadata keys anyway.
        merged.update({str(k).lower(): str(v) for k, v in (metadata or {}).items()})
        content_type = merged.pop("content-type")

        try:
            self.ensure_bucket()
            logger.info("Uploading %s → s3://%s/%s (%d bytes)", local_path.name, self.bucket, key, size)
            self._client.upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type, "Metadata": merged},
            )
        except (ClientError, BotoCoreError, S3UploadFailedError, OSError) as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise UploadFailed(f"upload of {key} failed: {exc}") from exc

        return Artifact(
            object_key=key,
            size_bytes=size,
            content_type=content_type,
            created_at=created_at,
            metadata=merged,
        )

    def get_retrieval_url(
        self,
        account_id: str,
        job_id: str,
        expiry_seconds: int = DEFAULT_URL_EXPIRY_SEC,
    ) -> str:
        key = object_key_for(account_id, job_id)
        try:
            # Signing alone never fails for a missing key; check first.
            self._client.head_object(Bucket=self.bucket, Key=key)
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expiry_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("No retrieval URL for %s: %s", key, exc)
            return ""

    def get_metadata(self, account_id: str, job_id: str) -> ArtifactStat:
        key = object_key_for(account_id, job_id)
        return self._stat(key)

    def get_stream(self, account_id: str, job_id: str) -> ArtifactStream:
        key = object_key_for(account_id, job_id)
        stat = self._stat(key)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound(f"artifact {key} does not exist") from exc
            raise
        return ArtifactStream(stat=stat, body=response["Body"])

    def delete(self, account_id: str, job_id: str) -> bool:
        key = object_key_for(account_id, job_id)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Unable to delete %s: %s", key, exc)
            return False
        logger.info("Removed %s from %s", key, self.bucket)
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stat(self, key: str) -> ArtifactStat:
        try:
            head = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound(f"artifact {key} does not exist") from exc
            raise
        return ArtifactStat(
            object_key=key,
            size_bytes=int(head.get("ContentLength", 0)),
            last_modified=head.get("LastModified"),
            etag=str(head.get("ETag", "")).strip('"'),
            content_type=head.get("ContentType"),
            metadata=dict(head.get("Metadata") or {}),
        )
