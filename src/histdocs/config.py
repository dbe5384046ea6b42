"""Runtime settings read from HISTDOCS_* environment variables."""

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "HISTDOCS_"


class Settings(BaseModel):
    """Configuration for wiring a DocumentProcessingService.

    Attributes:
        db_path: SQLite database file, or ":memory:".
        db_busy_timeout: Seconds a connection waits for another writer.
        files_root: Root directory of the local file store.
        ai_base_url: Base URL of the OpenAI-compatible API.
        ai_model: Vision model name.
        ai_api_key: API key for the classifier.
        ai_timeout: Classifier request timeout in seconds.
        analysis_ttl: Seconds an analysis result stays cached.
        image_ttl: Seconds a converted image stays cached.
        job_retention_hours: Age after which a sweep removes a job.
    """

    model_config = ConfigDict(frozen=True)

    db_path: str = "histdocs.db"
    db_busy_timeout: float = Field(30.0, gt=0)
    files_root: Path = Field(default_factory=Path.cwd)
    ai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-4o-mini"
    ai_api_key: str = ""
    ai_timeout: float = Field(60.0, gt=0)
    analysis_ttl: int = Field(3600, gt=0)
    image_ttl: int = Field(7200, gt=0)
    job_retention_hours: int = Field(24, gt=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from the environment; unset variables keep defaults."""
        environ = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for field_name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        if "ai_api_key" not in values and environ.get("OPENAI_API_KEY"):
            values["ai_api_key"] = environ["OPENAI_API_KEY"].strip()
        return cls.model_validate(values)
