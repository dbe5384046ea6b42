"""Business rules for documents about to be saved.

Every rule is checked and every violation reported, so a caller can fix a
payload in one round trip.
"""

from urllib.parse import urlparse

import structlog

from histdocs.errors import ValidationFailed
from histdocs.models.document import DocumentCreate
from histdocs.models.entity import EntityInput
from histdocs.models.enums import DocumentType, EntityType

MAX_TITLE_LENGTH = 255
MAX_FILE_NAME_LENGTH = 255
MAX_CONTENT_LENGTH = 10_000
MAX_ENTITY_NAME_LENGTH = 255
MIN_ENTITIES = 1
MAX_ENTITIES = 50
MIN_NAMED_ENTITY_LENGTH = 2
IMAGE_URL_SCHEMES = frozenset({"http", "https", "data", "file"})

_DOCUMENT_TYPES = [t.value for t in DocumentType]
_ENTITY_TYPES = [t.value for t in EntityType]

logger = structlog.get_logger(__name__)


def validate_document(payload: DocumentCreate) -> list[str]:
    """Return every rule the payload violates. Empty means valid."""
    errors: list[str] = []

    errors.extend(check_text(payload.title, "Title", MAX_TITLE_LENGTH))
    errors.extend(check_text(payload.file_name, "File name", MAX_FILE_NAME_LENGTH))
    errors.extend(check_text(payload.content, "Content", MAX_CONTENT_LENGTH))

    if not payload.document_type:
        errors.append("Document type is required")
    elif payload.document_type not in _DOCUMENT_TYPES:
        errors.append(f"Invalid document type. Must be one of: {', '.join(_DOCUMENT_TYPES)}")

    if payload.image_url and not is_valid_image_url(payload.image_url):
        errors.append("Invalid image URL format")

    errors.extend(validate_entities(payload.entities))

    if payload.document_type == DocumentType.PHOTO and not payload.image_url:
        errors.append("Photo documents must have an image URL")

    logger.debug("document_validated", error_count=len(errors))
    return errors


def validate_entities(entities: list[EntityInput]) -> list[str]:
    if len(entities) < MIN_ENTITIES:
        return ["At least one entity is required"]

    errors: list[str] = []
    if len(entities) > MAX_ENTITIES:
        errors.append(f"Cannot have more than {MAX_ENTITIES} entities per document")

    for index, entity in enumerate(entities, start=1):
        errors.extend(f"Entity {index}: {error}" for error in validate_entity(entity))
    return errors


def validate_entity(entity: EntityInput) -> list[str]:
    errors: list[str] = []
    name = entity.name or ""

    if not name.strip():
        errors.append("Entity name is required and cannot be empty")
    elif len(name) > MAX_ENTITY_NAME_LENGTH:
        errors.append(f"Entity name cannot exceed {MAX_ENTITY_NAME_LENGTH} characters")

    if not entity.entity_type:
        errors.append("Entity type is required")
    elif entity.entity_type not in _ENTITY_TYPES:
        errors.append(f"Invalid entity type. Must be one of: {', '.join(_ENTITY_TYPES)}")

    if entity.entity_type in (EntityType.PERSON, EntityType.LOCATION):
        if name.strip() and len(name.strip()) < MIN_NAMED_ENTITY_LENGTH:
            label = "Person" if entity.entity_type == EntityType.PERSON else "Location"
            errors.append(f"{label} name must be at least {MIN_NAMED_ENTITY_LENGTH} characters long")

    return errors


def ensure_valid_document(payload: DocumentCreate) -> None:
    """Raise ValidationFailed listing all violations, if there are any."""
    errors = validate_document(payload)
    if errors:
        raise ValidationFailed(errors)


def is_valid_image_url(url: str) -> bool:
    parsed = urlparse(url.strip())
    if parsed.scheme not in IMAGE_URL_SCHEMES:
        return False
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return bool(parsed.path or parsed.netloc)


def check_text(value: str, label: str, max_length: int) -> list[str]:
    if not value or not value.strip():
        return [f"{label} is required and cannot be empty"]
    if len(value) > max_length:
        return [f"{label} cannot exceed {max_length:,} characters"]
    return []
