from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from histdocs.models.analysis import AnalysisResult
from histdocs.models.base import RecordModel, ensure_aware_datetime
from histdocs.models.enums import JobStatus


class JobOptions(BaseModel):
    force_refresh: bool = False
    auto_save: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class ProcessingJob(RecordModel):
    SCHEMA_VERSION: ClassVar[str] = "processing_job.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    job_id: str
    file_id: str
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    options: JobOptions = Field(default_factory=JobOptions)
    result: AnalysisResult | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _validate_timestamps(cls, value: Any, info: ValidationInfo) -> datetime:
        return ensure_aware_datetime(value, info.field_name or "timestamp")
