"""NormalizedScript — runnable scene source derived from raw model output."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Extraction(str, Enum):
    """Which branch of code extraction produced executable_text."""
    FENCED = "fenced"
    STRUCTURAL = "structural"
    FALLBACK = "fallback"


class NormalizedScript(BaseModel):
    model_config = ConfigDict(frozen=True)

    executable_text: str = Field(min_length=1)
    description: str = Field(max_length=200)
    estimated_duration_seconds: int = Field(ge=1, le=300)
    extraction: Extraction = Extraction.FENCED
