"""Shared fixtures for histdocs tests."""

from collections.abc import AsyncIterator

import pytest

from histdocs.services.document_store import DocumentStore, create_async_engine_from_path
from tests.fakes import FakeAIClient, FakeFileStore, make_png


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def file_store(png_bytes: bytes) -> FakeFileStore:
    store = FakeFileStore()
    store.add("letters/l1.png", png_bytes)
    return store


@pytest.fixture
def ai_client() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
async def store() -> AsyncIterator[DocumentStore]:
    """DocumentStore over an in-memory database with initialized schema."""
    engine = create_async_engine_from_path(":memory:")
    document_store = DocumentStore(engine=engine)
    await document_store.initialize_schema()
    yield document_store
    await engine.dispose()
