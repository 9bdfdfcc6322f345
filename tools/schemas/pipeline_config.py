"""
PipelineConfig — every tunable of the render-job pipeline in one model.

Defaults are usable for a local MinIO + manim setup. from_env() reads the
environment once at startup; CLI flags then override single fields via
model_copy(update=...). Nothing reads os.environ after construction.

Environment variables:
  ANIMATE_TEMP_DIR            job-scoped source files        (default ./tmp)
  ANIMATE_OUTPUT_DIR          rendered videos                (default ./out)
  ANIMATE_RENDERER            renderer command, shell-split  (default "manim")
  ANIMATE_OUTPUT_FLAG         output path flag               (default "-o")
  ANIMATE_MEDIA_FLAG          per-job scratch dir flag       (default "--media_dir")
  ANIMATE_RENDER_TIMEOUT      wall-clock seconds             (default 300)
  ANIMATE_KEEP_LOCAL_OUTPUT   keep mp4 after upload          (default false)
  ANIMATE_ACCOUNTS_PATH       JSON account store             (default ./accounts.json)
  ANIMATE_URL_EXPIRY          signed URL lifetime seconds    (default 3600)
  MINIO_ENDPOINT / MINIO_PORT / MINIO_USE_SSL
  MINIO_ACCESS_KEY / MINIO_SECRET_KEY / MINIO_BUCKET / MINIO_REGION
  GEMINI_API_KEY / GEMINI_MODEL
"""
from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class StorageSettings(BaseModel):
    endpoint: str = "localhost"
    port: int = 9000
    use_ssl: bool = False
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    bucket: str = "manim"
    region: str = "us-east-1"

    @property
    def endpoint_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.endpoint}:{self.port}"


class GenerationSettings(BaseModel):
    api_key: Optional[str] = None
    model: str = "gemini-1.5-flash"


class PipelineConfig(BaseModel):
    temp_dir: Path = Path("tmp")
    output_dir: Path = Path("out")
    renderer_cmd: list[str] = Field(default_factory=lambda: ["manim"])
    output_flag: str = "-o"
    media_flag: str = "--media_dir"
    render_timeout_sec: float = Field(default=300.0, gt=0)
    keep_local_output: bool = False
    accounts_path: Path = Path("accounts.json")
    url_expiry_sec: int = Field(default=3600, gt=0)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        env = os.environ if environ is None else environ
        defaults = cls()

        def _get(name: str, default):
            value = env.get(name)
            return default if value in (None, "") else value

        storage = StorageSettings(
            endpoint=_get("MINIO_ENDPOINT", defaults.storage.endpoint),
            port=int(_get("MINIO_PORT", defaults.storage.port)),
            use_ssl=str(_get("MINIO_USE_SSL", "false")).lower() in _TRUE_VALUES,
            access_key=_get("MINIO_ACCESS_KEY", None),
            secret_key=_get("MINIO_SECRET_KEY", None),
            bucket=_get("MINIO_BUCKET", defaults.storage.bucket),
            region=_get("MINIO_REGION", defaults.storage.region),
        )
        generation = GenerationSettings(
            api_key=_get("GEMINI_API_KEY", None),
            model=_get("GEMINI_MODEL", defaults.generation.model),
        )
        return cls(
            temp_dir=Path(_get("ANIMATE_TEMP_DIR", defaults.temp_dir)),
            output_dir=Path(_get("ANIMATE_OUTPUT_DIR", defaults.output_dir)),
            renderer_cmd=shlex.split(_get("ANIMATE_RENDERER", "manim")),
            output_flag=_get("ANIMATE_OUTPUT_FLAG", defaults.output_flag),
            media_flag=_get("ANIMATE_MEDIA_FLAG", defaults.media_flag),
            render_timeout_sec=float(_get("ANIMATE_RENDER_TIMEOUT", defaults.render_timeout_sec)),
            keep_local_output=str(_get("ANIMATE_KEEP_LOCAL_OUTPUT", "false")).lower() in _TRUE_VALUES,
            accounts_path=Path(_get("ANIMATE_ACCOUNTS_PATH", defaults.accounts_path)),
            url_expiry_sec=int(_get("ANIMATE_URL_EXPIRY", defaults.url_expiry_sec)),
            storage=storage,
            generation=generation,
        )
