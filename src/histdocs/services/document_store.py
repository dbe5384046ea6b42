"""Document store service for persisting documents and entities to SQLite.

Uses SQLAlchemy's native async support with aiosqlite. Writes that must be
atomic run inside a single ``transaction()`` whose session is passed
explicitly to every nested call; no nested independent transactions are
opened.

Concurrent writers are serialized by SQLite itself: every transaction starts
with ``BEGIN IMMEDIATE`` and waits up to the busy timeout for the write lock.
An in-memory database lives on one shared connection, so the store also
serializes its own sessions with an asyncio lock in that case.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, nullcontext
from uuid import uuid4

import structlog
from sqlalchemy import delete, event, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlmodel import SQLModel

from histdocs.errors import NotFound, PersistenceFailed, ValidationFailed
from histdocs.models.base import as_utc, utc_now
from histdocs.models.document import Document, DocumentCreate, DocumentPatch
from histdocs.models.entity import Entity
from histdocs.models.enums import DocumentType, EntityType
from histdocs.models.tables import DocumentEntityLink, DocumentRecord, EntityRecord
from histdocs.services.validation import MAX_CONTENT_LENGTH, MAX_TITLE_LENGTH, check_text, is_valid_image_url

DEFAULT_BUSY_TIMEOUT_SECONDS = 30.0


class DocumentStore:
    """Persists documents, entities and their links via SQLModel.

    Accepts an AsyncEngine via dependency injection to support both
    persistent and in-memory databases for testing.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)
        self._lock = asyncio.Lock() if is_memory_engine(engine) else None

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self._serialized():
            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        self._logger.info("document_store_initialized")

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session with one transaction; commit on success, roll back on error."""
        async with self._serialized():
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                async with session.begin():
                    yield session

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        async with self._serialized():
            async with AsyncSession(self._engine) as session:
                yield session

    def _serialized(self):
        return self._lock if self._lock is not None else nullcontext()

    async def insert_document(
        self,
        session: AsyncSession,
        payload: DocumentCreate,
        entity_ids: list[str],
    ) -> Document:
        """Insert a document row linked to already-resolved entities.

        Args:
            session: Session of the caller's open transaction.
            payload: Validated document fields.
            entity_ids: Ids of the entities to link. Duplicates are ignored.

        Returns:
            The new Document, hydrated with its entities.
        """
        now = utc_now()
        record = DocumentRecord(
            document_id=str(uuid4()),
            schema_version=Document.SCHEMA_VERSION,
            title=payload.title,
            file_name=payload.file_name,
            content=payload.content,
            image_url=payload.image_url,
            document_type=DocumentType(payload.document_type).value,
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        await session.flush()

        linked = list(dict.fromkeys(entity_ids))
        session.add_all(DocumentEntityLink(document_id=record.document_id, entity_id=eid) for eid in linked)
        await session.flush()

        self._logger.debug(
            "document_inserted",
            document_id=record.document_id,
            entity_count=len(linked),
        )
        return await self.load_document(session, record.document_id)

    async def load_document(self, session: AsyncSession, document_id: str) -> Document:
        """Read a document and its entities inside an existing session."""
        record = await session.get(DocumentRecord, document_id)
        if record is None:
            raise NotFound(f"Document not found: {document_id}")

        statement = (
            select(EntityRecord)
            .join(DocumentEntityLink, DocumentEntityLink.entity_id == EntityRecord.entity_id)
            .where(DocumentEntityLink.document_id == document_id)
            .order_by(EntityRecord.name)
        )
        result = await session.execute(statement)
        entities = [record_to_entity(r) for r in result.scalars().all()]
        return self._record_to_document(record, entities)

    async def get_document(self, document_id: str) -> Document:
        """Retrieve a document with its entities.

        Raises:
            NotFound: If no document has this id.
        """
        try:
            async with self._read_session() as session:
                return await self.load_document(session, document_id)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to load document: {e}", cause=e) from e

    async def update_document(self, document_id: str, patch: DocumentPatch) -> Document:
        """Apply a direct field patch to a document.

        Raises:
            NotFound: If no document has this id.
            ValidationFailed: If the patched document breaks a document rule.
        """
        changes = patch.changes()
        try:
            async with self.transaction() as session:
                record = await session.get(DocumentRecord, document_id)
                if record is None:
                    raise NotFound(f"Document not found: {document_id}")

                for field, value in changes.items():
                    if isinstance(value, DocumentType):
                        value = value.value
                    setattr(record, field, value)
                self._ensure_patched_record_valid(record)
                record.updated_at = utc_now()
                await session.flush()
                document = await self.load_document(session, document_id)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to update document: {e}", cause=e) from e

        self._logger.debug("document_updated", document_id=document_id, fields=sorted(changes))
        return document

    async def delete_document(self, document_id: str) -> None:
        """Delete a document and its entity links. Entities are kept.

        Raises:
            NotFound: If no document has this id.
        """
        try:
            async with self.transaction() as session:
                record = await session.get(DocumentRecord, document_id)
                if record is None:
                    raise NotFound(f"Document not found: {document_id}")
                await session.execute(delete(DocumentEntityLink).where(DocumentEntityLink.document_id == document_id))
                await session.delete(record)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to delete document: {e}", cause=e) from e

        self._logger.debug("document_deleted", document_id=document_id)

    async def get_entity(self, entity_id: str) -> Entity:
        """Retrieve one entity.

        Raises:
            NotFound: If no entity has this id.
        """
        try:
            async with self._read_session() as session:
                record = await session.get(EntityRecord, entity_id)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to load entity: {e}", cause=e) from e
        if record is None:
            raise NotFound(f"Entity not found: {entity_id}")
        return record_to_entity(record)

    async def find_documents_by_entity(self, entity_id: str, limit: int | None = None) -> list[Document]:
        """Return the documents linked to an entity, newest first.

        Raises:
            NotFound: If no entity has this id.
        """
        try:
            async with self._read_session() as session:
                if await session.get(EntityRecord, entity_id) is None:
                    raise NotFound(f"Entity not found: {entity_id}")

                statement = (
                    select(DocumentRecord.document_id)
                    .join(DocumentEntityLink, DocumentEntityLink.document_id == DocumentRecord.document_id)
                    .where(DocumentEntityLink.entity_id == entity_id)
                    .order_by(DocumentRecord.created_at.desc())
                )
                if limit is not None:
                    statement = statement.limit(limit)
                document_ids = (await session.execute(statement)).scalars().all()
                return [await self.load_document(session, document_id) for document_id in document_ids]
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to load documents for entity: {e}", cause=e) from e

    async def find_entities_by_type(self, entity_type: EntityType | str) -> list[Entity]:
        """Return every entity of one type, ordered by name.

        Raises:
            ValidationFailed: If the type is not an entity type.
        """
        try:
            entity_type = EntityType(entity_type)
        except ValueError as e:
            valid = ", ".join(t.value for t in EntityType)
            raise ValidationFailed([f"Invalid entity type. Must be one of: {valid}"]) from e
        async with self._read_session() as session:
            statement = (
                select(EntityRecord)
                .where(EntityRecord.entity_type == entity_type.value)
                .order_by(EntityRecord.name)
            )
            result = await session.execute(statement)
            return [record_to_entity(r) for r in result.scalars().all()]

    async def count_documents(self) -> int:
        async with self._read_session() as session:
            result = await session.execute(select(func.count()).select_from(DocumentRecord))
            return result.scalar_one()

    async def count_entities(self) -> int:
        async with self._read_session() as session:
            result = await session.execute(select(func.count()).select_from(EntityRecord))
            return result.scalar_one()

    async def count_documents_by_type(self) -> dict[str, int]:
        """Return document counts keyed by document type. Absent types are omitted."""
        return await self._count_by(DocumentRecord.document_type)

    async def count_entities_by_type(self) -> dict[str, int]:
        """Return entity counts keyed by entity type. Absent types are omitted."""
        return await self._count_by(EntityRecord.entity_type)

    async def _count_by(self, column) -> dict[str, int]:
        async with self._read_session() as session:
            result = await session.execute(select(column, func.count()).group_by(column).order_by(column))
            return {value: count for value, count in result.all()}

    async def find_orphaned_entities(self) -> list[Entity]:
        """Return entities that no document links to."""
        async with self._read_session() as session:
            statement = select(EntityRecord).where(~_has_links()).order_by(EntityRecord.created_at.desc())
            result = await session.execute(statement)
            return [record_to_entity(r) for r in result.scalars().all()]

    async def delete_orphaned_entities(self) -> int:
        """Delete entities that no document links to.

        This is an explicit maintenance operation; saves never call it.

        Returns:
            Number of deleted entities.
        """
        try:
            async with self.transaction() as session:
                result = await session.execute(delete(EntityRecord).where(~_has_links()))
                deleted = result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to delete orphaned entities: {e}", cause=e) from e

        self._logger.info("orphaned_entities_deleted", count=deleted)
        return deleted

    def _ensure_patched_record_valid(self, record: DocumentRecord) -> None:
        errors = check_text(record.title, "Title", MAX_TITLE_LENGTH)
        errors += check_text(record.content, "Content", MAX_CONTENT_LENGTH)
        if record.image_url and not is_valid_image_url(record.image_url):
            errors.append("Invalid image URL format")
        if record.document_type == DocumentType.PHOTO and not record.image_url:
            errors.append("Photo documents must have an image URL")
        if errors:
            raise ValidationFailed(errors)

    def _record_to_document(self, record: DocumentRecord, entities: list[Entity]) -> Document:
        """Convert SQLModel record to domain Document.

        SQLite doesn't preserve timezone info, so we restore UTC timezone.
        """
        data = record.model_dump()
        data["document_type"] = DocumentType(data["document_type"])
        data["created_at"] = as_utc(data["created_at"])
        data["updated_at"] = as_utc(data["updated_at"])
        data["entities"] = entities
        return Document.model_validate(data)


def record_to_entity(record: EntityRecord) -> Entity:
    """Convert SQLModel record to domain Entity."""
    return Entity(
        entity_id=record.entity_id,
        schema_version=record.schema_version,
        name=record.name,
        entity_type=EntityType(record.entity_type),
        date=record.date,
    )


def _has_links():
    return exists().where(DocumentEntityLink.entity_id == EntityRecord.entity_id)


def is_memory_engine(engine: AsyncEngine) -> bool:
    return engine.url.database in (None, "", ":memory:")


def create_async_engine_from_path(
    db_path: str,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given database path.

    Foreign keys are switched on for every connection, and the pysqlite
    driver's own transaction handling is replaced by SQLAlchemy's so that
    SAVEPOINTs behave correctly. Transactions open with ``BEGIN IMMEDIATE``
    so a second writer waits for the lock instead of failing on upgrade.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.
        busy_timeout: Seconds a connection waits for another writer.

    Returns:
        AsyncEngine instance configured for aiosqlite.
    """
    if db_path == ":memory:":
        # aiosqlite keeps a single shared connection for in-memory databases
        url = "sqlite+aiosqlite:///:memory:"
    else:
        url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(url, connect_args={"timeout": busy_timeout})

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine
