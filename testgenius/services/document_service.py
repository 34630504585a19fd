"""Reading uploaded documents into test content."""
import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path

from docx import Document
from PIL import Image, UnidentifiedImageError

from testgenius.config import (
    IMAGE_MAX_DIMENSION,
    MAX_FILE_SIZE_BYTES,
    MAX_FILE_SIZE_MB,
    SUPPORTED_DOCX_MIME_TYPE,
    SUPPORTED_IMAGE_TYPES,
    SUPPORTED_PDF_MIME_TYPE,
    SUPPORTED_TEXT_TYPES,
)
from testgenius.errors import DocumentError

logger = logging.getLogger(__name__)

_EXTENSION_MIME_TYPES = {
    ".txt": "text/plain",
    ".pdf": SUPPORTED_PDF_MIME_TYPE,
    ".docx": SUPPORTED_DOCX_MIME_TYPE,
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

_PIL_FORMATS = {"image/jpeg": "JPEG", "image/png": "PNG", "image/webp": "WEBP"}

EMPTY_DOCUMENT_MESSAGE = (
    "Could not extract any text from the document. The document might be empty, "
    "image-based without clear text, or in an unsupported format."
)


@dataclass(frozen=True)
class IngestedDocument:
    """An upload ready to be placed into a test config.

    ``content`` is plain text for text-like uploads and base64 data for PDFs and
    images, which still need AI text extraction.
    """

    file_name: str
    mime_type: str
    content: str

    @property
    def needs_extraction(self) -> bool:
        return self.mime_type == SUPPORTED_PDF_MIME_TYPE or self.mime_type in SUPPORTED_IMAGE_TYPES


def supported_mime_types() -> set[str]:
    return (
        set(SUPPORTED_TEXT_TYPES)
        | set(SUPPORTED_IMAGE_TYPES)
        | {SUPPORTED_PDF_MIME_TYPE, SUPPORTED_DOCX_MIME_TYPE}
    )


def resolve_mime_type(file_name: str, content_type: str | None) -> str:
    """Pick the effective mime type, falling back to the file extension."""
    if content_type and content_type in supported_mime_types():
        return content_type
    guessed = _EXTENSION_MIME_TYPES.get(Path(file_name or "").suffix.lower())
    if guessed:
        return guessed
    raise DocumentError(
        "Unsupported file type. Please upload a .txt, .docx, PDF, JPG, PNG or WEBP file."
    )


def read_docx_text(data: bytes) -> str:
    """Paragraph and table text of a .docx file, one block per line."""
    try:
        document = Document(io.BytesIO(data))
    except Exception as exc:
        raise DocumentError(f"Could not read Word document: {exc}") from exc
    lines = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def prepare_image(data: bytes, mime_type: str) -> bytes:
    """Validate an image and shrink it to fit ``IMAGE_MAX_DIMENSION``."""
    try:
        with Image.open(io.BytesIO(data)) as candidate:
            candidate.verify()
        img = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise DocumentError("The uploaded image is corrupted or not a valid image.") from exc

    with img:
        width, height = img.size
        if width <= IMAGE_MAX_DIMENSION and height <= IMAGE_MAX_DIMENSION:
            return data
        ratio = min(IMAGE_MAX_DIMENSION / width, IMAGE_MAX_DIMENSION / height)
        new_size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
        fmt = _PIL_FORMATS.get(mime_type, "PNG")
        resized = img
        if fmt == "JPEG" and img.mode in ("RGBA", "P", "LA"):
            resized = img.convert("RGB")
        resized = resized.resize(new_size, Image.Resampling.LANCZOS)
        out = io.BytesIO()
        resized.save(out, format=fmt, optimize=True, quality=85)
        logger.info("Resized uploaded image from %dx%d to %s", width, height, new_size)
        return out.getvalue()


def ingest_document(file_name: str, content_type: str | None, data: bytes) -> IngestedDocument:
    """Validate an upload and convert it to test content."""
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise DocumentError(f"File size exceeds {MAX_FILE_SIZE_MB}MB.")
    if not data:
        raise DocumentError("The uploaded file is empty.")
    mime_type = resolve_mime_type(file_name, content_type)

    if mime_type in SUPPORTED_TEXT_TYPES:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DocumentError("Text files must be UTF-8 encoded.") from exc
        content = text
    elif mime_type == SUPPORTED_DOCX_MIME_TYPE:
        content = read_docx_text(data)
    elif mime_type in SUPPORTED_IMAGE_TYPES:
        content = base64.b64encode(prepare_image(data, mime_type)).decode("ascii")
    else:
        content = base64.b64encode(data).decode("ascii")

    if not content.strip():
        raise DocumentError(EMPTY_DOCUMENT_MESSAGE)
    return IngestedDocument(file_name=file_name, mime_type=mime_type, content=content)
