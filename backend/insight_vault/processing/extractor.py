"""
Content Extraction
══════════════════

Turns a source descriptor into bounded plain text for classification.

Source kinds:
  FileSource              uploaded bytes + media type + filename
  VideoSource             single video metadata
  CollectionMemberSource  video metadata + the collection it came from

Routing for FileSource:
  text/*, application/json, .txt/.md/.markdown/.csv  → decoded (utf-8, latin-1 fallback)
  application/pdf, DOCX                               → DocumentTextExtractor
  anything else (images)                              → empty text + placeholder diagnostic

Every path truncates to max_chars. extract() never raises for malformed
bytes: a parse failure yields empty text, degraded=True and a diagnostic,
and is logged as ExtractionDegraded.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Union

from insight_vault.core.errors import ExtractionDegraded
from insight_vault.integrations.youtube import VideoMetadata
from insight_vault.processing.documents import (
    DOCX_MEDIA_TYPE,
    PDF_MEDIA_TYPE,
    DocumentTextExtractor,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 4000

_TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv"}
_TEXT_MEDIA_TYPES = {"application/json"}

# Magic-byte signatures checked before trusting extension or declared type
_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF", PDF_MEDIA_TYPE),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
]

_EXTENSION_TYPES: dict[str, str] = {
    ".pdf":      PDF_MEDIA_TYPE,
    ".docx":     DOCX_MEDIA_TYPE,
    ".txt":      "text/plain",
    ".md":       "text/markdown",
    ".markdown": "text/markdown",
    ".csv":      "text/csv",
    ".json":     "application/json",
    ".png":      "image/png",
    ".jpg":      "image/jpeg",
    ".jpeg":     "image/jpeg",
    ".webp":     "image/webp",
}


# ---------------------------------------------------------------------------
# Source descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileSource:
    data:       bytes
    media_type: str
    filename:   str


@dataclass(frozen=True)
class VideoSource:
    metadata: VideoMetadata


@dataclass(frozen=True)
class CollectionMemberSource:
    metadata:      VideoMetadata
    collection_id: str


Source = Union[FileSource, VideoSource, CollectionMemberSource]


@dataclass(frozen=True)
class ExtractedText:
    """
    Extraction output.

    text        : extracted content, at most max_chars long
    truncated   : True when content beyond the cap was dropped
    degraded    : True when a parser failed and text is empty
    diagnostic  : bracketed note used in place of empty text
    """
    text:       str
    truncated:  bool = False
    degraded:   bool = False
    diagnostic: str | None = None

    @property
    def grounding_text(self) -> str:
        """Text handed to the classifier; the diagnostic when nothing was extracted."""
        if self.text:
            return self.text
        return self.diagnostic or ""


# ---------------------------------------------------------------------------
# Media type resolution
# ---------------------------------------------------------------------------

def resolve_media_type(filename: str, declared: str | None, head: bytes = b"") -> str:
    """
    Decide the effective media type of an upload.

    Order: magic bytes, then file extension, then the declared type.
    """
    for signature, media_type in _SIGNATURES:
        if head.startswith(signature):
            return media_type
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"

    ext = os.path.splitext(filename or "")[1].lower()
    if head.startswith(b"PK\x03\x04") and ext == ".docx":
        return DOCX_MEDIA_TYPE
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]

    return (declared or "application/octet-stream").split(";")[0].strip().lower()


def _is_text_like(media_type: str, filename: str) -> bool:
    ext = os.path.splitext(filename or "")[1].lower()
    return (
        media_type.startswith("text/")
        or media_type in _TEXT_MEDIA_TYPES
        or ext in _TEXT_EXTENSIONS
    )


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace")


def video_text(metadata: VideoMetadata) -> str:
    """Classification text for a video: title, channel and description."""
    return (
        f"Title: {metadata.title}\n"
        f"Channel: {metadata.channel}\n\n"
        f"Description: {metadata.description}"
    )


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class ContentExtractor:
    """
    Stateless extractor; safe to share between concurrent pipelines.

    Usage:
        extractor = ContentExtractor(max_chars=settings.max_extracted_chars)
        extracted = extractor.extract(FileSource(data, "application/pdf", "a.pdf"))
    """

    def __init__(
        self,
        max_chars: int = DEFAULT_MAX_CHARS,
        documents: DocumentTextExtractor | None = None,
    ) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars
        self._documents = documents or DocumentTextExtractor()

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def extract(self, source: Source) -> ExtractedText:
        if isinstance(source, FileSource):
            return self._extract_file(source)
        if isinstance(source, (VideoSource, CollectionMemberSource)):
            return self._bounded(video_text(source.metadata))
        raise TypeError(f"Unsupported source type: {type(source).__name__}")

    def _extract_file(self, source: FileSource) -> ExtractedText:
        media_type = source.media_type

        if self._documents.supports(media_type):
            try:
                raw = self._documents.extract(source.data, media_type)
            except Exception as exc:
                return self._degraded(source, exc)
            return self._bounded(raw)

        if _is_text_like(media_type, source.filename):
            return self._bounded(_decode(source.data))

        logger.info(
            "No text extraction | file=%s type=%s", source.filename, media_type,
        )
        return ExtractedText(
            text="",
            diagnostic=f"[No text extraction for {media_type} - classified from filename]",
        )

    def _degraded(self, source: FileSource, exc: Exception) -> ExtractedText:
        label = "PDF" if source.media_type == PDF_MEDIA_TYPE else "Document"
        degraded = ExtractionDegraded(
            f"{label} could not be read",
            {"file": source.filename, "media_type": source.media_type, "reason": str(exc)},
        )
        logger.warning("Extraction degraded | %s", degraded)
        return ExtractedText(
            text="",
            degraded=True,
            diagnostic=f"[{label} could not be read: {exc}]",
        )

    def _bounded(self, text: str) -> ExtractedText:
        if len(text) > self._max_chars:
            return ExtractedText(text=text[: self._max_chars], truncated=True)
        return ExtractedText(text=text)
