"""
Document text extraction for uploaded study material (TXT, PDF, DOCX)
"""
from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import docx2txt
import structlog
from pypdf import PdfReader

from flashquiz.errors import DocumentError, EmptyOrImageOnlyDocument, ExtractionFailed, UnsupportedFileType
from flashquiz.services.monitoring import DOCUMENT_EXTRACTIONS

logger = structlog.get_logger()

TXT = "txt"
PDF = "pdf"
DOCX = "docx"

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MEDIA_TYPES = {
    "text/plain": TXT,
    "application/pdf": PDF,
    DOCX_MEDIA_TYPE: DOCX,
}
EXTENSIONS = (TXT, PDF, DOCX)
LABELS = {TXT: "text file", PDF: "PDF", DOCX: "DOCX"}

# Below this many characters the document is treated as image-only or empty.
MIN_TEXT_LENGTH = 10

Parser = Callable[[str, bytes], Awaitable[str]]


@dataclass(frozen=True)
class UploadedDocument:
    name: str
    content: bytes
    media_type: Optional[str] = None


def get_file_extension(filename: str) -> str:
    _, dot, ext = (filename or "").rpartition(".")
    return ext.lower() if dot else ""


def classify(name: str, media_type: Optional[str] = None) -> Optional[str]:
    """Media type wins; the extension is only consulted when it is unknown."""
    mt = (media_type or "").split(";")[0].strip().lower()
    if mt in MEDIA_TYPES:
        return MEDIA_TYPES[mt]
    ext = get_file_extension(name)
    return ext if ext in EXTENSIONS else None


def _pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    if reader.is_encrypted:
        reader.decrypt("")
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _docx_text(content: bytes) -> str:
    return docx2txt.process(io.BytesIO(content)) or ""


async def parse_with_libraries(kind: str, content: bytes) -> str:
    """Default parser: pypdf / docx2txt in a worker thread."""
    if kind == PDF:
        return await asyncio.to_thread(_pdf_text, content)
    if kind == DOCX:
        return await asyncio.to_thread(_docx_text, content)
    raise UnsupportedFileType()


class DocumentExtractor:
    def __init__(self, parser: Optional[Parser] = None):
        self.parser = parser or parse_with_libraries

    async def extract(self, document: UploadedDocument) -> str:
        kind = classify(document.name, document.media_type)
        if kind is None:
            DOCUMENT_EXTRACTIONS.labels(kind="unknown", status="unsupported").inc()
            logger.info("extraction_rejected", filename=document.name, media_type=document.media_type)
            raise UnsupportedFileType()

        try:
            if kind == TXT:
                text = document.content.decode("utf-8", errors="ignore")
            else:
                text = await self.parser(kind, document.content)
        except DocumentError:
            DOCUMENT_EXTRACTIONS.labels(kind=kind, status="error").inc()
            raise
        except Exception as e:
            DOCUMENT_EXTRACTIONS.labels(kind=kind, status="error").inc()
            logger.error("extraction_failed", filename=document.name, kind=kind, error=str(e))
            raise ExtractionFailed(
                f"Failed to extract text from {LABELS[kind]}. The file may be corrupted."
            ) from e

        text = (text or "").strip()
        if len(text) < MIN_TEXT_LENGTH:
            DOCUMENT_EXTRACTIONS.labels(kind=kind, status="empty").inc()
            raise EmptyOrImageOnlyDocument()

        DOCUMENT_EXTRACTIONS.labels(kind=kind, status="success").inc()
        logger.info("extraction_completed", filename=document.name, kind=kind, chars=len(text))
        return text
