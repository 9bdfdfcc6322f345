"""
Generative source providers.

A provider turns (prompt, complexity, plan) into raw text. The pipeline
treats that text as untrusted input for the normalizer and never looks at
it otherwise. Providers raise freely; the orchestrator maps any exception to a
GenerationFailed result before any job state exists.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from google import genai

from schemas.errors import GenerationFailed
from schemas.render_request import ComplexityTier, PlanTier
from generation.prompts import build_full_prompt

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


class SourceProvider(Protocol):

    def generate(self, prompt: str, complexity: ComplexityTier, plan: PlanTier) -> str:
        ...


class StaticSourceProvider:
    """Returns the same text for every prompt (files on disk, tests)."""

    def __init__(self, text: str) -> None:
        self.text = text

    def generate(self, prompt: str, complexity: ComplexityTier, plan: PlanTier) -> str:
        return self.text


class GeminiSourceProvider:
    """
    google-genai backed provider.

    *client* is a google.genai.Client built by the caller (see
    build_gemini_client) so its lifetime is managed outside this class.
    """

    def __init__(self, client: Any, model: str = DEFAULT_GEMINI_MODEL) -> None:
        self._client = client
        self.model = model

    def generate(self, prompt: str, complexity: ComplexityTier, plan: PlanTier) -> str:
        full_prompt = build_full_prompt(prompt, complexity, plan)
        logger.info("Generating scene code | model=%s | complexity=%s | plan=%s",
                    self.model, ComplexityTier(complexity).value, PlanTier(plan).value)
        response = self._client.models.generate_content(model=self.model, contents=full_prompt)
        text = getattr(response, "text", None) or ""
        if not text.strip():
            raise GenerationFailed(f"model {self.model} returned an empty response")
        return text


def build_gemini_client(api_key: Optional[str]) -> Any:
    """Construct a google.genai.Client; raises ValueError without an API key."""
    if not api_key:
        raise ValueError("GEMINI_API_KEY is required")
    return genai.Client(api_key=api_key)
