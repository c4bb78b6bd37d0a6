"""Data models."""

from epub_extract.models.book import (
    BookMetadata,
    Chapter,
    ParsedBook,
)
from epub_extract.models.extraction import (
    EPUB_MEDIA_TYPE,
    ZIP_MEDIA_TYPE,
    ChapterWithPath,
    ExtractionOptions,
    ExtractionResult,
    ProcessingState,
    ProcessingStatus,
)

__all__ = [
    # Book models
    "Chapter",
    "BookMetadata",
    "ParsedBook",
    # Extraction models
    "ProcessingStatus",
    "ProcessingState",
    "ChapterWithPath",
    "ExtractionOptions",
    "ExtractionResult",
    "EPUB_MEDIA_TYPE",
    "ZIP_MEDIA_TYPE",
]
