"""Converts stored files into images the vision model can read.

Results are data URLs. Web-safe image formats pass through untouched, other
raster formats are re-encoded to PNG with Pillow, and scanned PDFs yield the
first raster image embedded in their first page via pypdf.
"""

import asyncio
import base64
import io

import structlog
from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from histdocs.errors import ConversionFailed
from histdocs.models.analysis import SourceFile

PASSTHROUGH_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})
PDF_MIME_TYPE = "application/pdf"


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class ImageConverter:
    """Turns a SourceFile into a data URL holding a single image."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    async def convert(self, source: SourceFile) -> str:
        """Convert a file to an image data URL.

        Args:
            source: The file to convert.

        Returns:
            A ``data:`` URL with the image bytes.

        Raises:
            ConversionFailed: If the file type is unsupported or the content
                cannot be decoded.
        """
        if not source.data:
            raise ConversionFailed(f"File {source.name} is empty")

        mime_type = source.mime_type.lower()
        self._logger.debug("conversion_started", file_id=source.file_id, mime_type=mime_type)

        if mime_type in PASSTHROUGH_MIME_TYPES:
            return to_data_url(source.data, mime_type)
        if mime_type.startswith("image/"):
            png = await asyncio.to_thread(self._reencode_png, source.data)
            return to_data_url(png, "image/png")
        if mime_type == PDF_MIME_TYPE:
            png = await asyncio.to_thread(self._first_page_image, source.data)
            return to_data_url(png, "image/png")

        raise ConversionFailed(f"Unsupported file type '{source.mime_type}' for {source.name}")

    def _reencode_png(self, data: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as image:
                return self._save_png(image)
        except (UnidentifiedImageError, OSError) as e:
            raise ConversionFailed(f"Cannot decode image: {e}", cause=e) from e

    def _first_page_image(self, data: bytes) -> bytes:
        try:
            reader = PdfReader(io.BytesIO(data))
            if not reader.pages:
                raise ConversionFailed("PDF has no pages")
            images = list(reader.pages[0].images)
        except (PdfReadError, NotImplementedError, ValueError, OSError) as e:
            raise ConversionFailed(f"Cannot read PDF: {e}", cause=e) from e

        if not images:
            raise ConversionFailed("PDF first page contains no scanned image")
        image = images[0].image
        if image is None:
            raise ConversionFailed("PDF image could not be decoded")
        return self._save_png(image)

    def _save_png(self, image: Image.Image) -> bytes:
        if image.mode not in ("RGB", "RGBA", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
