"""
Document text extraction for binary office formats.

PDF is read with pypdf, DOCX with python-docx. Both parsers are blocking and
CPU-bound; callers on the event loop run extract() through asyncio.to_thread.

Unlike ContentExtractor, this class raises on unparseable bytes. Absorbing
the failure (and turning it into a degraded result) is the caller's job.
"""

from __future__ import annotations

import io
import logging

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MEDIA_TYPES = frozenset({PDF_MEDIA_TYPE, DOCX_MEDIA_TYPE})


class UnsupportedDocument(ValueError):
    """The media type has no registered parser."""


class DocumentTextExtractor:
    """Plain-text extraction for PDF and DOCX payloads."""

    def supports(self, media_type: str) -> bool:
        return media_type in SUPPORTED_MEDIA_TYPES

    def extract(self, data: bytes, media_type: str) -> str:
        if media_type == PDF_MEDIA_TYPE:
            text = self._extract_pdf(data)
        elif media_type == DOCX_MEDIA_TYPE:
            text = self._extract_docx(data)
        else:
            raise UnsupportedDocument(f"No parser for media type '{media_type}'")

        logger.debug("Document parsed | type=%s chars=%d", media_type, len(text))
        return text

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        from pypdf import PdfReader

        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n\n".join(p for p in pages if p.strip())

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        import docx

        document = docx.Document(io.BytesIO(data))
        return "\n".join(para.text for para in document.paragraphs if para.text.strip())
