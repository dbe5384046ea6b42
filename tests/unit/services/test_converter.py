"""Unit tests for ImageConverter."""

import base64
import io

import pytest
from PIL import Image
from pypdf import PdfWriter

from histdocs.errors import ConversionFailed
from histdocs.models.analysis import SourceFile
from histdocs.services.converter import ImageConverter, to_data_url
from tests.fakes import make_png


def _source(data: bytes, mime_type: str, name: str = "scan") -> SourceFile:
    return SourceFile(file_id=f"scans/{name}", name=name, mime_type=mime_type, size=len(data), data=data)


def _encode(image: Image.Image, fmt: str) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _decode_data_url(url: str) -> tuple[str, bytes]:
    header, encoded = url.split(",", 1)
    return header.removeprefix("data:").removesuffix(";base64"), base64.b64decode(encoded)


@pytest.fixture
def converter() -> ImageConverter:
    return ImageConverter()


class TestImageConverter:
    async def test_passes_png_through(self, converter: ImageConverter) -> None:
        data = make_png()

        url = await converter.convert(_source(data, "image/png"))

        assert url == to_data_url(data, "image/png")

    async def test_reencodes_other_images_as_png(self, converter: ImageConverter) -> None:
        bmp = _encode(Image.new("RGB", (3, 2), "red"), "BMP")

        mime_type, data = _decode_data_url(await converter.convert(_source(bmp, "image/bmp")))

        assert mime_type == "image/png"
        with Image.open(io.BytesIO(data)) as image:
            assert image.format == "PNG"
            assert image.size == (3, 2)

    async def test_extracts_first_image_from_pdf(self, converter: ImageConverter) -> None:
        pdf = _encode(Image.new("RGB", (8, 6), "blue"), "PDF")

        mime_type, data = _decode_data_url(await converter.convert(_source(pdf, "application/pdf")))

        assert mime_type == "image/png"
        with Image.open(io.BytesIO(data)) as image:
            assert image.size == (8, 6)

    async def test_pdf_without_images_fails(self, converter: ImageConverter) -> None:
        writer = PdfWriter()
        writer.add_blank_page(width=72, height=72)
        buffer = io.BytesIO()
        writer.write(buffer)

        with pytest.raises(ConversionFailed, match="no scanned image"):
            await converter.convert(_source(buffer.getvalue(), "application/pdf"))

    async def test_corrupt_pdf_fails(self, converter: ImageConverter) -> None:
        with pytest.raises(ConversionFailed):
            await converter.convert(_source(b"not a pdf at all", "application/pdf"))

    async def test_corrupt_image_fails(self, converter: ImageConverter) -> None:
        with pytest.raises(ConversionFailed, match="Cannot decode image"):
            await converter.convert(_source(b"garbage", "image/tiff"))

    async def test_unsupported_type_fails(self, converter: ImageConverter) -> None:
        with pytest.raises(ConversionFailed, match="Unsupported file type 'text/plain'"):
            await converter.convert(_source(b"hello", "text/plain", name="notes.txt"))

    async def test_empty_file_fails(self, converter: ImageConverter) -> None:
        with pytest.raises(ConversionFailed, match="is empty"):
            await converter.convert(_source(b"", "image/png"))
