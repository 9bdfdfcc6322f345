"""
Artifact records for rendered videos held in object storage.

Object keys are a pure function of (account_id, job_id):
    videos/{account_id}/{job_id}.mp4
so retrieval never needs a catalog lookup.
"""
from __future__ import annotations

import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

ARTIFACT_PREFIX = "videos"
ARTIFACT_CONTENT_TYPE = "video/mp4"


def object_key_for(account_id: str, job_id: str) -> str:
    return f"{ARTIFACT_PREFIX}/{account_id}/{job_id}.mp4"


class Artifact(BaseModel):
    """Created on a confirmed upload; immutable afterwards."""
    model_config = ConfigDict(frozen=True)

    object_key: str
    size_bytes: int
    content_type: str = ARTIFACT_CONTENT_TYPE
    created_at: datetime.datetime
    metadata: dict[str, str] = Field(default_factory=dict)


class ArtifactStat(BaseModel):
    """Object metadata as reported by the store (head_object)."""
    object_key: str
    size_bytes: int
    last_modified: Optional[datetime.datetime] = None
    etag: str = ""
    content_type: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ArtifactStream(BaseModel):
    """Readable body plus its stat. *body* is the client's streaming object."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    stat: ArtifactStat
    body: Any

    def read(self, amt: Optional[int] = None) -> bytes:
        return self.body.read(amt) if amt is not None else self.body.read()

    def close(self) -> None:
        close = getattr(self.body, "close", None)
        if close is not None:
            close()
