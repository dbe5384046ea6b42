"""Finds or creates entities by their natural key inside a caller's transaction."""

import re
from datetime import datetime
from uuid import uuid4

import structlog
from dateutil import parser as date_parser
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from histdocs.errors import PersistenceFailed
from histdocs.models.base import utc_now
from histdocs.models.entity import Entity
from histdocs.models.enums import EntityType
from histdocs.models.tables import EntityRecord
from histdocs.services.document_store import record_to_entity

_YEAR_RE = re.compile(r"\d{3,4}")
_DEFAULT_DATE = datetime(2000, 1, 1)


def name_key(name: str) -> str:
    """Natural-key form of an entity name: trimmed and lowercased."""
    return name.strip().lower()


def parse_entity_date(text: str) -> str | None:
    """Parse free date text into an ISO ``YYYY-MM-DD`` string.

    Missing month or day default to January and the 1st. Text without a
    year, or that cannot be parsed, yields None.
    """
    if not _YEAR_RE.search(text):
        return None
    try:
        parsed = date_parser.parse(text, default=_DEFAULT_DATE)
    except (ValueError, OverflowError):
        return None
    return parsed.date().isoformat()


class EntityResolver:
    """Resolves a proposed (name, type) pair to exactly one entity row.

    Lookups are case-insensitive on the name and exact on the type, and run
    on the caller's session so they see rows inserted earlier in the same
    transaction. Callers must resolve sequentially within one transaction.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    async def resolve(self, name: str, entity_type: EntityType | str, session: AsyncSession) -> Entity:
        """Return the matching entity, creating it when absent.

        An existing entity is returned unchanged. A new ``date`` entity gets
        a normalized date when its name parses as one, and no date otherwise.

        A uniqueness violation on insert means a concurrent transaction
        created the same entity first; the lookup is retried once.

        Raises:
            PersistenceFailed: If the insert conflicts but the conflicting
                row still cannot be found.
        """
        entity_type = EntityType(entity_type)
        key = name_key(name)

        existing = await self._find(session, key, entity_type)
        if existing is not None:
            return record_to_entity(existing)

        record = EntityRecord(
            entity_id=str(uuid4()),
            schema_version=Entity.SCHEMA_VERSION,
            name=name.strip(),
            name_key=key,
            entity_type=entity_type.value,
            date=self._date_for(name, entity_type),
            created_at=utc_now(),
        )
        try:
            async with session.begin_nested():
                session.add(record)
                await session.flush()
        except IntegrityError as e:
            existing = await self._find(session, key, entity_type)
            if existing is None:
                raise PersistenceFailed(f"Failed to create entity '{name}': {e}", cause=e) from e
            self._logger.info("entity_created_concurrently", entity_id=existing.entity_id, entity_type=entity_type.value)
            return record_to_entity(existing)

        self._logger.debug(
            "entity_created",
            entity_id=record.entity_id,
            name=record.name,
            entity_type=entity_type.value,
        )
        return record_to_entity(record)

    async def _find(self, session: AsyncSession, key: str, entity_type: EntityType) -> EntityRecord | None:
        statement = select(EntityRecord).where(
            EntityRecord.name_key == key,
            EntityRecord.entity_type == entity_type.value,
        )
        result = await session.execute(statement)
        return result.scalars().first()

    def _date_for(self, name: str, entity_type: EntityType) -> str | None:
        if entity_type != EntityType.DATE:
            return None
        parsed = parse_entity_date(name)
        if parsed is None:
            self._logger.warning("entity_date_unparsed", name=name)
        return parsed
