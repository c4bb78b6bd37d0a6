"""Rebuild a reduced EPUB package around a set of chapters."""

import logging
import re
import time
import warnings

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from lxml import etree

from epub_extract.core.archive import (
    CONTAINER_PATH,
    MIMETYPE_PATH,
    ArchiveStore,
    directory_of,
    strip_fragment,
    write_archive,
)
from epub_extract.core.xml import (
    element_text,
    find_child,
    find_children,
    find_first,
    parse_xml,
    serialize_xml,
)
from epub_extract.exceptions import MalformedPackageError
from epub_extract.models.book import Chapter
from epub_extract.models.extraction import ExtractionOptions

# Suppress XML parsing warnings - EPUB files often use XHTML
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

log = logging.getLogger(__name__)

SHARED_ASSET_PATTERN = re.compile(r"\.(css|ttf|otf|woff2?)$", re.IGNORECASE)
MEDIA_ASSET_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|svg|webp|mp3|mp4|ogg)$", re.IGNORECASE
)
EXTERNAL_REFERENCE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)
NUMBERED_SEGMENT = re.compile(r"^(\d+)_(.+)$")


def find_asset_references(content: bytes) -> list[str]:
    """``src``/``href`` values in an XHTML document that name media files."""
    soup = BeautifulSoup(content, "lxml")
    references = []
    for tag in soup.find_all(True):
        for name, value in tag.attrs.items():
            if not (name in ("src", "href") or name.endswith(":href")):
                continue
            if not isinstance(value, str):
                continue
            value = value.strip()
            if EXTERNAL_REFERENCE.match(value) or not MEDIA_ASSET_PATTERN.search(value):
                continue
            references.append(value)
    return references


def _clean_title_segment(segment: str) -> str:
    segment = segment.replace("•", "").replace("_", " ")
    return re.sub(r"\s+", " ", segment).strip()


def build_metadata_title(output_path: str) -> tuple[str, str]:
    """Split an export path into a numeric prefix and a readable title path.

    ``"01_Part_1/02_Chapter_1_Mr_Sherlock_Holmes"`` becomes
    ``("01_02", "Part 1/Chapter 1 Mr Sherlock Holmes")``.
    """
    numbers: list[int] = []
    titles: list[str] = []

    for part in output_path.split("/"):
        match = NUMBERED_SEGMENT.match(part)
        if match:
            numbers.append(int(match.group(1)))
            titles.append(_clean_title_segment(match.group(2)))
        else:
            titles.append(_clean_title_segment(part))

    number_prefix = "_".join(f"{n:02d}" for n in numbers)
    return number_prefix, "/".join(titles)


def compose_unit_title(output_path: str, book_title: str) -> str:
    """Package title for one extracted unit: ``01_02_Book/Part/Chapter``."""
    number_prefix, title_path = build_metadata_title(output_path)
    title = f"{number_prefix}_{book_title}/{title_path}"
    return title.replace(f"/{book_title}/", "/")


def make_identifier(title: str) -> str:
    """Fresh package identifier derived from the title and the clock."""
    slug = re.sub(r"[^a-zA-Z0-9]", "", title)[:20]
    return f"extracted-{int(time.time() * 1000)}-{slug}"


class PackageRebuilder:
    """Assemble a standalone EPUB from selected chapters of a parsed archive.

    The source store is only read; every rebuild starts from fresh copies
    of the package and navigation documents.
    """

    def __init__(self, store: ArchiveStore, options: ExtractionOptions | None = None):
        self.store = store
        self.options = options or ExtractionOptions()

    def rebuild(self, chapters: list[Chapter], title: str | None = None) -> bytes:
        """Build EPUB bytes containing exactly the given chapters."""
        entries = self.collect_entries(chapters)
        kept_paths = self._content_archive_paths(chapters)

        self._copy_navigation(entries, kept_paths, title)

        entries[self.store.root_path] = self.rewrite_package_document(
            chapters, entries, title
        )

        log.debug(
            "Rebuilt package with %d entries for %s",
            len(entries),
            ", ".join(c.id for c in chapters),
        )
        return write_archive(entries, self.options.compression_level)

    def collect_entries(self, chapters: list[Chapter]) -> dict[str, bytes]:
        """Base files, shared assets, the cover, chapter content and its media."""
        entries: dict[str, bytes] = {}
        for path in (MIMETYPE_PATH, CONTAINER_PATH):
            content = self.store.get(path)
            if content is not None:
                entries[path] = content

        for path in self.store.paths:
            if SHARED_ASSET_PATTERN.search(path):
                entries[path] = self.store.get(path)

        cover = self.store.cover_image_path
        if cover and cover in self.store:
            entries[cover] = self.store.get(cover)

        for chapter in chapters:
            self._copy_chapter_files(chapter, entries)

        return entries

    def _copy_chapter_files(self, chapter: Chapter, entries: dict[str, bytes]) -> None:
        """Copy every content file of a chapter plus the media each one references."""
        for href in chapter.content_paths or [chapter.primary_path]:
            path = self.store.resolve_href(href)
            content = self.store.get(path)
            if content is None:
                log.debug("Content file %s missing from archive", path)
                continue
            entries[path] = content
            self._copy_referenced_assets(path, content, entries)

    def _copy_referenced_assets(
        self, content_path: str, content: bytes, entries: dict[str, bytes]
    ) -> None:
        content_dir = directory_of(content_path)
        for reference in find_asset_references(content):
            # Document-relative first, then relative to the package directory
            candidates = (
                self.store.resolve_href(reference, content_dir),
                self.store.resolve_href(reference),
            )
            for candidate in candidates:
                if candidate in self.store:
                    entries[candidate] = self.store.get(candidate)
                    break
            else:
                log.debug("Asset %r referenced from %s not found", reference, content_path)

    def _content_archive_paths(self, chapters: list[Chapter]) -> set[str]:
        return {
            self.store.resolve_href(href)
            for chapter in chapters
            for href in chapter.content_paths
        }

    # ------------------------------------------------------------------
    # Package document
    # ------------------------------------------------------------------

    def rewrite_package_document(
        self,
        chapters: list[Chapter],
        entries: dict[str, bytes],
        title: str | None = None,
    ) -> bytes:
        """Retitle the OPF and prune its spine, manifest and guide.

        Spine itemrefs survive only when their manifest href belongs to one
        of the chapters. Manifest items and guide references whose files
        were not copied into ``entries`` are dropped.
        """
        opf = self.store.package_document()
        if title:
            self._update_metadata_title(opf, title)

        selected_hrefs = {href for c in chapters for href in c.content_paths}
        manifest = find_first(opf, "manifest")
        spine = find_first(opf, "spine")

        hrefs_by_id: dict[str, str] = {}
        if manifest is not None:
            hrefs_by_id = {
                item.get("id"): strip_fragment(item.get("href") or "")
                for item in find_children(manifest, "item")
                if item.get("id")
            }

        if spine is not None:
            for itemref in find_children(spine, "itemref"):
                href = hrefs_by_id.get(itemref.get("idref"))
                if href and href not in selected_hrefs:
                    spine.remove(itemref)

        if manifest is not None:
            for item in find_children(manifest, "item"):
                href = item.get("href")
                if href and self.store.resolve_href(href) not in entries:
                    manifest.remove(item)
                    hrefs_by_id.pop(item.get("id"), None)

        if spine is not None:
            for itemref in find_children(spine, "itemref"):
                if itemref.get("idref") not in hrefs_by_id:
                    spine.remove(itemref)

        guide = find_first(opf, "guide")
        if guide is not None:
            for reference in find_children(guide, "reference"):
                href = reference.get("href")
                if href and self.store.resolve_href(href) not in entries:
                    guide.remove(reference)

        return serialize_xml(opf)

    @staticmethod
    def _update_metadata_title(opf: etree._Element, title: str) -> None:
        """Replace the title and regenerate the unique identifier."""
        metadata = find_first(opf, "metadata")
        if metadata is None:
            return

        title_element = find_first(metadata, "title")
        if title_element is not None:
            title_element.text = title

        identifiers = list(metadata.iter("{*}identifier"))
        unique_id = opf.get("unique-identifier")
        identifier = next(
            (i for i in identifiers if unique_id and i.get("id") == unique_id),
            identifiers[0] if identifiers else None,
        )
        if identifier is not None:
            identifier.text = make_identifier(title)

    # ------------------------------------------------------------------
    # Navigation documents
    # ------------------------------------------------------------------

    def _copy_navigation(
        self, entries: dict[str, bytes], kept_paths: set[str], title: str | None
    ) -> None:
        """Copy the NCX (pruned unless disabled) and any EPUB 3 nav document."""
        opf = self.store.package_document()
        manifest = find_first(opf, "manifest")
        if manifest is None:
            return

        for item in find_children(manifest, "item"):
            href = item.get("href")
            if not href:
                continue
            path = self.store.resolve_href(href)
            content = self.store.get(path)
            if content is None:
                continue

            if "ncx" in (item.get("media-type") or ""):
                if self.options.prune_navigation:
                    content = self.prune_navigation(path, content, kept_paths, title)
                entries[path] = content
            elif "nav" in (item.get("properties") or "").split():
                entries.setdefault(path, content)

    def prune_navigation(
        self,
        ncx_path: str,
        content: bytes,
        kept_paths: set[str],
        title: str | None = None,
    ) -> bytes:
        """Drop navPoints whose targets were removed and renumber playOrder.

        Kept descendants of a dropped navPoint move up into its place. The
        original document is returned unchanged if it cannot be parsed or
        nothing would remain.
        """
        try:
            ncx = parse_xml(content, ncx_path)
        except MalformedPackageError as e:
            log.warning("%s; copying navigation document unchanged", e)
            return content

        nav_map = find_first(ncx, "navMap")
        if nav_map is None:
            return content

        self._prune_nav_points(nav_map, kept_paths, directory_of(ncx_path))
        nav_points = list(nav_map.iter("{*}navPoint"))
        if not nav_points:
            log.debug("No navigation entries left in %s; copying unchanged", ncx_path)
            return content

        for play_order, nav_point in enumerate(nav_points, start=1):
            if nav_point.get("playOrder") is not None:
                nav_point.set("playOrder", str(play_order))

        if title:
            doc_title = find_first(ncx, "docTitle")
            text = find_first(doc_title, "text") if doc_title is not None else None
            if text is not None:
                text.text = title

        return serialize_xml(ncx)

    def _prune_nav_points(
        self, parent: etree._Element, kept_paths: set[str], ncx_dir: str
    ) -> None:
        for nav_point in find_children(parent, "navPoint"):
            self._prune_nav_points(nav_point, kept_paths, ncx_dir)

            content = find_child(nav_point, "content")
            src = (content.get("src") or "") if content is not None else ""
            if src and self.store.resolve_href(src, ncx_dir) in kept_paths:
                continue

            label = element_text(find_first(nav_point, "text"))
            log.debug("Dropping navigation entry %r (%s)", label, src)
            index = parent.index(nav_point)
            for child in find_children(nav_point, "navPoint"):
                parent.insert(index, child)
                index += 1
            parent.remove(nav_point)
