"""Data models for extraction progress and results."""

from enum import Enum

from pydantic import BaseModel, Field

from epub_extract.models.book import Chapter

EPUB_MEDIA_TYPE = "application/epub+zip"
ZIP_MEDIA_TYPE = "application/zip"


class ProcessingStatus(str, Enum):
    """Lifecycle of a parse/extract session."""

    IDLE = "idle"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    ZIPPING = "zipping"
    COMPLETE = "complete"
    ERROR = "error"


class ProcessingState(BaseModel):
    """Snapshot reported to progress sinks."""

    status: ProcessingStatus = ProcessingStatus.IDLE
    current_unit: int = 0
    total_units: int = 0
    elapsed_ms: int = 0
    estimated_remaining_ms: int = 0
    error_message: str | None = None

    @property
    def fraction(self) -> float:
        """Completed share of the units, 0.0 when nothing is scheduled."""
        if self.total_units == 0:
            return 0.0
        return self.current_unit / self.total_units


class ChapterWithPath(BaseModel):
    """Planner output: a selected chapter and where it lands in the export."""

    chapter: Chapter
    output_path: str
    has_selected_children: bool = False


class ExtractionOptions(BaseModel):
    """Knobs for a single extraction run."""

    flatten: bool = False
    prune_navigation: bool = True
    compression_level: int = Field(default=6, ge=0, le=9)


class ExtractionResult(BaseModel):
    """Output of an extraction: one EPUB or a ZIP of EPUBs."""

    data: bytes
    media_type: str
    is_single_epub: bool
    chapter_count: int

    @property
    def extension(self) -> str:
        return "epub" if self.is_single_epub else "zip"
