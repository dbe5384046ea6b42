"""Persistence coordinator: validates a payload and saves it atomically."""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from histdocs.errors import PersistenceFailed, ValidationFailed, describe
from histdocs.models.document import Document, DocumentCreate
from histdocs.services.document_store import DocumentStore
from histdocs.services.entity_resolver import EntityResolver
from histdocs.services.validation import ensure_valid_document


class PersistenceCoordinator:
    """Saves a document and its entities in one transaction.

    Entities are resolved one after another on the same session, so a
    repeated (name, type) pair within one payload maps to a single row.
    Any failure rolls back every entity and link written so far.
    """

    def __init__(
        self,
        store: DocumentStore,
        resolver: EntityResolver,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._logger = logger or structlog.get_logger(__name__)

    async def save(self, payload: DocumentCreate | Mapping[str, Any]) -> Document:
        """Validate and persist a document with its entities.

        Args:
            payload: The candidate document, as a model or a plain mapping.

        Returns:
            The saved Document, hydrated with its resolved entities.

        Raises:
            ValidationFailed: If the payload breaks any rule; all violations
                are listed.
            PersistenceFailed: If the transaction fails. Nothing is written.
        """
        payload = _coerce_payload(payload)
        ensure_valid_document(payload)

        try:
            async with self._store.transaction() as session:
                entity_ids: list[str] = []
                for proposed in payload.entities:
                    entity = await self._resolver.resolve(proposed.name, proposed.entity_type, session)
                    entity_ids.append(entity.entity_id)
                document = await self._store.insert_document(session, payload, entity_ids)
        except PersistenceFailed:
            self._logger.exception("document_save_failed", file_name=payload.file_name)
            raise
        except Exception as e:
            self._logger.exception("document_save_failed", file_name=payload.file_name)
            raise PersistenceFailed(f"Failed to save document: {describe(e)}", cause=e) from e

        self._logger.info(
            "document_saved",
            document_id=document.document_id,
            entity_count=len(document.entities),
        )
        return document


def _coerce_payload(payload: DocumentCreate | Mapping[str, Any]) -> DocumentCreate:
    if isinstance(payload, DocumentCreate):
        return payload
    try:
        return DocumentCreate.model_validate(payload)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in e.errors()]
        raise ValidationFailed(errors) from e
