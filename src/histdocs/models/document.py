from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, ValidationInfo, field_validator, model_validator

from histdocs.models.base import (
    PayloadModel,
    RecordModel,
    ensure_aware_datetime,
    ensure_non_empty_text,
    ensure_uuid_str,
)
from histdocs.models.entity import Entity, EntityInput
from histdocs.models.enums import DocumentType


class DocumentCreate(PayloadModel):
    """Candidate document for saving. Rules are checked by the validator."""

    title: str = ""
    file_name: str = Field(default="", alias="fileName")
    content: str = ""
    image_url: str | None = Field(default=None, alias="imageUrl")
    document_type: str = Field(default="", alias="documentType")
    entities: list[EntityInput] = Field(default_factory=list)


class DocumentPatch(PayloadModel):
    """Direct field patch for an existing document. Unset fields are kept."""

    title: str | None = None
    content: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    document_type: DocumentType | None = Field(default=None, alias="documentType")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Document(RecordModel):
    SCHEMA_VERSION: ClassVar[str] = "document.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    document_id: str
    title: str
    file_name: str
    content: str
    image_url: str | None = None
    document_type: DocumentType
    entities: list[Entity] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("document_id", mode="before")
    @classmethod
    def _normalize_document_id(cls, value: Any) -> str:
        return ensure_uuid_str(value)

    @field_validator("title", "file_name", "content")
    @classmethod
    def _ensure_non_empty(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _validate_timestamps(cls, value: Any, info: ValidationInfo) -> datetime:
        return ensure_aware_datetime(value, info.field_name or "timestamp")

    @model_validator(mode="after")
    def _photo_requires_image(self) -> "Document":
        if self.document_type == DocumentType.PHOTO and not self.image_url:
            raise ValueError("photo documents must have an image_url")
        return self
