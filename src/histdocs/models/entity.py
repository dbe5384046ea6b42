from typing import Any, ClassVar

from pydantic import Field, ValidationInfo, field_validator

from histdocs.models.base import PayloadModel, RecordModel, ensure_non_empty_text, ensure_uuid_str
from histdocs.models.enums import EntityType


class EntityInput(PayloadModel):
    """A proposed entity as extracted by the AI model or sent by a caller."""

    name: str = ""
    entity_type: str = Field(default="", alias="type")
    date: str | None = None


class Entity(RecordModel):
    SCHEMA_VERSION: ClassVar[str] = "entity.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    entity_id: str
    name: str
    entity_type: EntityType = Field(alias="type")
    date: str | None = None

    @field_validator("entity_id", mode="before")
    @classmethod
    def _normalize_entity_id(cls, value: Any) -> str:
        return ensure_uuid_str(value)

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "name")
