"""Extraction of selected chapters into an EPUB or a ZIP of EPUBs."""

import logging

from epub_extract.core.archive import ArchiveStore, write_archive
from epub_extract.core.navigation import parse_book
from epub_extract.core.path_planner import plan_chapter_paths
from epub_extract.core.progress import CancellationToken, ProgressSink, ProgressTracker
from epub_extract.core.rebuilder import PackageRebuilder, compose_unit_title
from epub_extract.exceptions import NoChaptersSelectedError
from epub_extract.models.book import ParsedBook
from epub_extract.models.extraction import (
    EPUB_MEDIA_TYPE,
    ZIP_MEDIA_TYPE,
    ChapterWithPath,
    ExtractionOptions,
    ExtractionResult,
    ProcessingStatus,
)

log = logging.getLogger(__name__)


class ChapterExtractor:
    """Extract chapters from one parsed EPUB.

    The archive and chapter tree are read-only once parsed, so ``extract``
    may be called repeatedly with different selections.
    """

    def __init__(self, store: ArchiveStore, book: ParsedBook):
        self.store = store
        self.book = book

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChapterExtractor":
        """Decode and parse an EPUB buffer."""
        store = ArchiveStore.from_bytes(data)
        book = parse_book(store)
        log.info(
            "Parsed %r by %s: %d chapters",
            book.metadata.title,
            book.metadata.author,
            book.metadata.chapter_count,
        )
        return cls(store, book)

    def plan(self, selected_ids: set[str], flatten: bool = False) -> list[ChapterWithPath]:
        return plan_chapter_paths(self.book.chapters, set(selected_ids), flatten)

    def extract(
        self,
        selected_ids: set[str],
        options: ExtractionOptions | None = None,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExtractionResult:
        """Extract the selection as one EPUB, or as a ZIP of per-chapter EPUBs.

        A single selected chapter with no selected descendants becomes a
        standalone EPUB; anything else becomes a ZIP with one
        ``<output_path>.epub`` entry per planned chapter.
        """
        options = options or ExtractionOptions()
        tracker = ProgressTracker(progress)
        cancel_token = cancel_token or CancellationToken()

        planned = self.plan(selected_ids, options.flatten)
        if not planned:
            raise NoChaptersSelectedError("No chapters selected for extraction")

        rebuilder = PackageRebuilder(self.store, options)
        if len(planned) == 1 and not planned[0].has_selected_children:
            return self._extract_single(planned[0], rebuilder, tracker, cancel_token)
        return self._extract_multiple(planned, rebuilder, tracker, cancel_token)

    def _unit_title(self, item: ChapterWithPath) -> str:
        return compose_unit_title(item.output_path, self.book.metadata.title)

    def _extract_single(
        self,
        item: ChapterWithPath,
        rebuilder: PackageRebuilder,
        tracker: ProgressTracker,
        cancel_token: CancellationToken,
    ) -> ExtractionResult:
        cancel_token.raise_if_cancelled()
        data = rebuilder.rebuild([item.chapter], self._unit_title(item))
        tracker.report(ProcessingStatus.EXTRACTING, 1, 1)
        tracker.report(ProcessingStatus.ZIPPING, 1, 1)

        log.info("Extracted %r as a single EPUB", item.chapter.title)
        return ExtractionResult(
            data=data,
            media_type=EPUB_MEDIA_TYPE,
            is_single_epub=True,
            chapter_count=1,
        )

    def _extract_multiple(
        self,
        planned: list[ChapterWithPath],
        rebuilder: PackageRebuilder,
        tracker: ProgressTracker,
        cancel_token: CancellationToken,
    ) -> ExtractionResult:
        total = len(planned)
        epubs: dict[str, bytes] = {}

        for i, item in enumerate(planned):
            cancel_token.raise_if_cancelled()
            epubs[f"{item.output_path}.epub"] = rebuilder.rebuild(
                [item.chapter], self._unit_title(item)
            )
            tracker.report(ProcessingStatus.EXTRACTING, i + 1, total)

        cancel_token.raise_if_cancelled()
        tracker.report(ProcessingStatus.ZIPPING, total, total)
        data = write_archive(epubs, rebuilder.options.compression_level)

        log.info("Extracted %d chapters into a ZIP archive", total)
        return ExtractionResult(
            data=data,
            media_type=ZIP_MEDIA_TYPE,
            is_single_epub=False,
            chapter_count=total,
        )
