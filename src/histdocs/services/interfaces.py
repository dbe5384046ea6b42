"""Collaborator interfaces consumed by the processing core.

The file store and the AI client live outside this package's core. Any
object with matching async methods can be wired in; see file_store.py and
ai_client.py for the bundled implementations.
"""

from typing import Protocol, runtime_checkable

from histdocs.models.analysis import FileContent, FileMetadata


@runtime_checkable
class FileStore(Protocol):
    async def get_content(self, file_id: str) -> FileContent:
        """Return the raw bytes of a stored file together with its MIME type."""
        ...

    async def get_metadata(self, file_id: str) -> FileMetadata:
        """Return name, MIME type, size and timestamps of a stored file."""
        ...


@runtime_checkable
class AIClient(Protocol):
    async def classify(self, image_url: str) -> str:
        """Classify an image and return the model's raw text answer."""
        ...
