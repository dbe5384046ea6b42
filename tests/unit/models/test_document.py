from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from histdocs.models.document import Document, DocumentCreate, DocumentPatch
from histdocs.models.entity import Entity
from histdocs.models.enums import DocumentType, EntityType


def _make_document(**overrides: object) -> Document:
    data: dict[str, object] = {
        "document_id": str(uuid4()),
        "title": "Letter from the Front",
        "file_name": "l1.pdf",
        "content": "Dear Mary",
        "document_type": DocumentType.LETTER,
        "created_at": datetime.now(timezone.utc),
        "updated_at": datetime.now(timezone.utc),
    }
    data.update(overrides)
    return Document(**data)


def test_document_has_expected_defaults() -> None:
    document = _make_document()

    assert document.schema_version == Document.SCHEMA_VERSION
    assert document.entities == []
    assert document.image_url is None
    assert document.to_record()["schema_version"] == Document.SCHEMA_VERSION


def test_document_requires_timezone_aware_timestamps() -> None:
    with pytest.raises(ValidationError):
        _make_document(created_at=datetime.now())


def test_document_rejects_empty_title() -> None:
    with pytest.raises(ValidationError):
        _make_document(title="   ")


def test_photo_document_requires_image_url() -> None:
    with pytest.raises(ValidationError, match="image_url"):
        _make_document(document_type=DocumentType.PHOTO)

    document = _make_document(document_type=DocumentType.PHOTO, image_url="https://example.org/p.png")
    assert document.image_url == "https://example.org/p.png"


def test_document_record_round_trip() -> None:
    entity = Entity(entity_id=str(uuid4()), name="John Smith", type=EntityType.PERSON)
    document = _make_document(entities=[entity])

    restored = Document.from_record(document.to_record())

    assert restored == document
    assert restored.entities[0].entity_type == EntityType.PERSON


def test_document_create_accepts_camel_case_aliases() -> None:
    payload = DocumentCreate.model_validate(
        {
            "title": "Letter",
            "fileName": "l1.pdf",
            "content": "text",
            "imageUrl": "https://example.org/l1.png",
            "documentType": "letter",
            "entities": [{"name": "John Smith", "type": "person"}],
        }
    )

    assert payload.file_name == "l1.pdf"
    assert payload.image_url == "https://example.org/l1.png"
    assert payload.document_type == "letter"
    assert payload.entities[0].entity_type == "person"


def test_document_create_does_not_enforce_business_rules() -> None:
    payload = DocumentCreate(document_type="telegram")

    assert payload.title == ""
    assert payload.entities == []


def test_document_patch_only_reports_set_fields() -> None:
    patch = DocumentPatch(title="New title", image_url=None)

    assert patch.changes() == {"title": "New title", "image_url": None}
