"""Shared builders: model-output texts and an in-memory S3 client."""
from __future__ import annotations

import datetime
import hashlib
import io
from pathlib import Path
from typing import Optional

from botocore.exceptions import ClientError

FAKE_MANIM = Path(__file__).parent / "fake_manim.py"
# Read by fake_manim.py to pick its behaviour.
FAKE_MODE_ENV = "FAKE_MANIM_MODE"
TEST_BUCKET = "manim-test"

CIRCLE_SCENE = """from manim import *

class DrawCircle(Scene):
    def construct(self):
        circle = Circle(radius=1, color=BLUE)
        self.play(Create(circle))
        self.wait(1)"""


def fenced_model_output(code: str = CIRCLE_SCENE, duration: Optional[int] = 8) -> str:
    """Model output in the requested response format: prose, fenced code, duration."""
    parts = [
        "This animation draws a blue circle to introduce the idea of a radius.",
        "",
        "```python",
        code,
        "```",
    ]
    if duration is not None:
        parts += ["", f"Estimated duration: {duration} seconds"]
    return "\n".join(parts)


def _client_error(code: str, operation: str, message: str = "Not Found") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeS3Client:
    """
    Just enough of a boto3 S3 client for ArtifactStore.

    Objects live in a dict keyed by (bucket, key). Failure switches make
    individual operations raise the ClientError boto3 would.
    """

    def __init__(self, buckets: tuple[str, ...] = ()) -> None:
        self.buckets: set[str] = set(buckets)
        self.objects: dict[tuple[str, str], dict] = {}
        self.policies: dict[str, str] = {}
        self.calls: list[str] = []
        self.fail_uploads = False
        self.fail_deletes = False
        self.closed = False

    # -- bucket ---------------------------------------------------------------

    def head_bucket(self, Bucket):
        self.calls.append("head_bucket")
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket, **kwargs):
        self.calls.append("create_bucket")
        self.buckets.add(Bucket)
        return {}

    def put_bucket_policy(self, Bucket, Policy):
        self.calls.append("put_bucket_policy")
        self.policies[Bucket] = Policy
        return {}

    # -- objects --------------------------------------------------------------

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None):
        self.calls.append("upload_file")
        if self.fail_uploads:
            raise _client_error("InternalError", "PutObject", "We encountered an internal error")
        if Bucket not in self.buckets:
            raise _client_error("NoSuchBucket", "PutObject")
        data = Path(Filename).read_bytes()
        extra = ExtraArgs or {}
        self.objects[(Bucket, Key)] = {
            "data": data,
            "content_type": extra.get("ContentType", "binary/octet-stream"),
            "metadata": dict(extra.get("Metadata", {})),
            "last_modified": datetime.datetime.now(datetime.timezone.utc),
            "etag": hashlib.md5(data).hexdigest(),
        }

    def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise _client_error("404", "HeadObject")
        return {
            "ContentLength": len(obj["data"]),
            "ContentType": obj["content_type"],
            "LastModified": obj["last_modified"],
            "ETag": f'"{obj["etag"]}"',
            "Metadata": dict(obj["metadata"]),
        }

    def get_object(self, Bucket, Key):
        self.calls.append("get_object")
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(obj["data"]), "ContentLength": len(obj["data"])}

    def delete_object(self, Bucket, Key):
        self.calls.append("delete_object")
        if self.fail_deletes:
            raise _client_error("AccessDenied", "DeleteObject", "Access Denied")
        self.objects.pop((Bucket, Key), None)
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn=3600):
        self.calls.append("generate_presigned_url")
        return (
            f"http://fake-s3.local/{Params['Bucket']}/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake"
        )

    def close(self):
        self.closed = True
