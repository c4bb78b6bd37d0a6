"""Stateful parse/extract workflow with a reportable processing state."""

import logging

from epub_extract.core.extractor import ChapterExtractor
from epub_extract.core.progress import CancellationToken, ProgressSink
from epub_extract.exceptions import ExtractionCancelled
from epub_extract.models.book import ParsedBook
from epub_extract.models.extraction import (
    ExtractionOptions,
    ExtractionResult,
    ProcessingState,
    ProcessingStatus,
)

log = logging.getLogger(__name__)

_BUSY = (ProcessingStatus.PARSING, ProcessingStatus.EXTRACTING, ProcessingStatus.ZIPPING)


class ExtractionSession:
    """Holds one parsed book and drives extractions against it.

    Parsing moves idle -> parsing -> idle (or error, clearing the book).
    Extraction moves idle -> extracting -> zipping -> complete (or error,
    keeping the book so the caller can retry).
    """

    def __init__(self, progress: ProgressSink | None = None):
        self.progress = progress
        self.state = ProcessingState()
        self.extractor: ChapterExtractor | None = None
        self.result: ExtractionResult | None = None

    @property
    def book(self) -> ParsedBook | None:
        return self.extractor.book if self.extractor else None

    def _set_state(self, state: ProcessingState) -> None:
        self.state = state
        if self.progress is not None:
            self.progress.report(state)

    def _fail(self, message: str) -> None:
        self._set_state(
            self.state.model_copy(
                update={"status": ProcessingStatus.ERROR, "error_message": message}
            )
        )

    def parse_file(self, data: bytes) -> ParsedBook:
        """Parse an EPUB buffer, replacing any previously parsed book."""
        if self.state.status in _BUSY:
            raise RuntimeError(f"Session is busy ({self.state.status.value})")

        self.extractor = None
        self.result = None
        self._set_state(ProcessingState(status=ProcessingStatus.PARSING))

        try:
            self.extractor = ChapterExtractor.from_bytes(data)
        except Exception as e:
            log.error("Failed to parse EPUB: %s", e)
            self._fail(str(e) or "Failed to parse EPUB")
            raise

        self._set_state(ProcessingState(status=ProcessingStatus.IDLE))
        return self.extractor.book

    def extract(
        self,
        selected_ids: set[str],
        options: ExtractionOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExtractionResult | None:
        """Run one extraction; returns None if it was cancelled."""
        if self.extractor is None:
            raise RuntimeError("No EPUB has been parsed")
        if self.state.status in _BUSY:
            raise RuntimeError(f"Session is busy ({self.state.status.value})")

        self.result = None
        self._set_state(
            self.state.model_copy(
                update={"status": ProcessingStatus.EXTRACTING, "error_message": None}
            )
        )

        try:
            result = self.extractor.extract(
                selected_ids, options, progress=_SessionSink(self), cancel_token=cancel_token
            )
        except ExtractionCancelled:
            log.info("Extraction cancelled")
            self._set_state(ProcessingState(status=ProcessingStatus.IDLE))
            return None
        except Exception as e:
            log.error("Extraction failed: %s", e)
            self._fail(str(e) or "Failed to extract chapters")
            raise

        self.result = result
        self._set_state(
            self.state.model_copy(update={"status": ProcessingStatus.COMPLETE})
        )
        return result

    def reset(self) -> None:
        """Forget the parsed book and any result."""
        self.extractor = None
        self.result = None
        self._set_state(ProcessingState())


class _SessionSink:
    """Mirrors extractor progress into the owning session's state."""

    def __init__(self, session: ExtractionSession):
        self.session = session

    def report(self, state: ProcessingState) -> None:
        self.session._set_state(state)
