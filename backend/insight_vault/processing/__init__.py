"""
Content Processing Package
══════════════════════════

Source descriptor → bounded plain text.

Modules
───────
  extractor.py  ContentExtractor, source descriptors, media type resolution
  documents.py  PDF (pypdf) and DOCX (python-docx) parsers

Extraction is synchronous and CPU-bound; the ingestion service runs it
through asyncio.to_thread.
"""

from insight_vault.processing.extractor import (
    CollectionMemberSource,
    ContentExtractor,
    ExtractedText,
    FileSource,
    VideoSource,
    resolve_media_type,
)

__all__ = [
    "CollectionMemberSource",
    "ContentExtractor",
    "ExtractedText",
    "FileSource",
    "VideoSource",
    "resolve_media_type",
]
