"""SQLModel table definitions for database persistence.

Table classes are kept separate from the frozen Pydantic domain models in
document.py and entity.py. SQLModel needs mutable instances for ORM
operations, while the domain models stay immutable and strictly validated.

Entities are deduplicated on their natural key: ``name_key`` holds the
lowercased name and is unique together with ``entity_type``. Documents and
entities are linked many-to-many through ``document_entities``; link rows
cascade when either side is deleted.
"""

from datetime import datetime

from sqlalchemy import Column, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class DocumentRecord(SQLModel, table=True):
    """SQLModel table for documents."""

    __tablename__ = "documents"

    document_id: str = Field(primary_key=True)
    schema_version: str
    title: str = Field(max_length=255, index=True)
    file_name: str = Field(max_length=255, index=True)
    content: str = Field(sa_type=Text)
    image_url: str | None = Field(default=None, sa_type=Text)
    document_type: str = Field(index=True)
    created_at: datetime
    updated_at: datetime


class EntityRecord(SQLModel, table=True):
    """SQLModel table for entities, unique on (name_key, entity_type)."""

    __tablename__ = "entities"
    __table_args__ = (UniqueConstraint("name_key", "entity_type", name="uq_entities_name_key_type"),)

    entity_id: str = Field(primary_key=True)
    schema_version: str
    name: str = Field(max_length=255)
    name_key: str = Field(max_length=255, index=True)
    entity_type: str = Field(index=True)
    date: str | None = None
    created_at: datetime


class DocumentEntityLink(SQLModel, table=True):
    """Many-to-many link between documents and entities."""

    __tablename__ = "document_entities"

    document_id: str = Field(
        sa_column=Column(String, ForeignKey("documents.document_id", ondelete="CASCADE"), primary_key=True)
    )
    entity_id: str = Field(
        sa_column=Column(String, ForeignKey("entities.entity_id", ondelete="CASCADE"), primary_key=True)
    )
