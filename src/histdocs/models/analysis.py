from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from histdocs.models.base import RecordModel, ensure_aware_datetime
from histdocs.models.document import Document, DocumentCreate
from histdocs.models.entity import EntityInput
from histdocs.models.enums import DocumentType


class FileContent(BaseModel):
    data: bytes
    mime_type: str

    model_config = ConfigDict(frozen=True)


class FileMetadata(BaseModel):
    name: str
    mime_type: str
    size: int = Field(ge=0)
    created_time: datetime | None = None
    modified_time: datetime | None = None

    model_config = ConfigDict(frozen=True)


class SourceFile(BaseModel):
    """File content merged with its store metadata."""

    file_id: str
    name: str
    mime_type: str
    size: int = Field(ge=0)
    data: bytes = Field(repr=False)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_parts(cls, file_id: str, content: FileContent, metadata: FileMetadata) -> "SourceFile":
        return cls(
            file_id=file_id,
            name=metadata.name,
            mime_type=content.mime_type or metadata.mime_type,
            size=metadata.size,
            data=content.data,
        )


class ParsedAnalysis(BaseModel):
    document_type: DocumentType
    title: str
    content: str
    entities: list[EntityInput] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class AnalysisResult(RecordModel):
    SCHEMA_VERSION: ClassVar[str] = "analysis_result.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    analysis: ParsedAnalysis
    image_url: str
    file_name: str
    file_id: str
    processed_at: datetime
    saved_document: Document | None = None

    @field_validator("processed_at", mode="before")
    @classmethod
    def _validate_processed_at(cls, value: Any) -> datetime:
        return ensure_aware_datetime(value, "processed_at")

    def to_payload(self) -> DocumentCreate:
        """Build the save payload for this analysis."""
        return DocumentCreate(
            title=self.analysis.title,
            file_name=self.file_name,
            content=self.analysis.content,
            image_url=self.image_url,
            document_type=self.analysis.document_type.value,
            entities=list(self.analysis.entities),
        )
