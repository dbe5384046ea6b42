"""Directory-backed file store.

File ids are paths relative to the store root. Blocking filesystem calls run
in asyncio.to_thread to keep the event loop free.
"""

import asyncio
import mimetypes
from datetime import datetime, timezone
from pathlib import Path

import structlog

from histdocs.errors import NotFound
from histdocs.models.analysis import FileContent, FileMetadata

_DEFAULT_MIME_TYPE = "application/octet-stream"


class LocalFileStore:
    """Serves file content and metadata from a local directory tree."""

    def __init__(
        self,
        root: Path,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._root = root.resolve()
        self._logger = logger or structlog.get_logger(__name__)

    async def get_content(self, file_id: str) -> FileContent:
        path = self._resolve(file_id)
        data = await asyncio.to_thread(path.read_bytes)
        self._logger.debug("file_content_read", file_id=file_id, size=len(data))
        return FileContent(data=data, mime_type=self._guess_mime_type(path))

    async def get_metadata(self, file_id: str) -> FileMetadata:
        path = self._resolve(file_id)
        stat = await asyncio.to_thread(path.stat)
        return FileMetadata(
            name=path.name,
            mime_type=self._guess_mime_type(path),
            size=stat.st_size,
            created_time=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
            modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def _resolve(self, file_id: str) -> Path:
        """Map a file id to a path under the root, rejecting escapes."""
        path = (self._root / file_id).resolve()
        if not path.is_relative_to(self._root):
            raise NotFound(f"File not found: {file_id}")
        if not path.is_file():
            raise NotFound(f"File not found: {file_id}")
        return path

    def _guess_mime_type(self, path: Path) -> str:
        mime_type, _ = mimetypes.guess_type(path.name)
        return mime_type or _DEFAULT_MIME_TYPE
