"""Chapter tree reconstruction from the OPF spine and NCX navigation map."""

import logging
from dataclasses import dataclass, field

from lxml import etree

from epub_extract.core.archive import ArchiveStore, directory_of, strip_fragment
from epub_extract.core.selection import flatten_chapters
from epub_extract.core.xml import (
    element_text,
    find_child,
    find_children,
    find_first,
    parse_xml,
)
from epub_extract.exceptions import MalformedPackageError
from epub_extract.models.book import BookMetadata, Chapter, ParsedBook

log = logging.getLogger(__name__)

NCX_MEDIA_TYPE_MARKER = "ncx"

# UTF-8 punctuation mis-decoded as Windows-1252. The bare "â€"
# prefix (right double quote, whose last byte is unmapped) must run last.
MOJIBAKE_REPLACEMENTS: list[tuple[str, str]] = [
    ("\u00e2\u20ac\u00a2", "\u2022"),  # bullet
    ("\u00e2\u20ac\u201d", "\u2014"),  # em dash
    ("\u00e2\u20ac\u201c", "\u2013"),  # en dash
    ("\u00e2\u20ac\u2122", "'"),  # right single quote
    ("\u00e2\u20ac\u0153", '"'),  # left double quote
    ("\u00e2\u20ac\u00a6", "\u2026"),  # ellipsis
    ("\u00e2\u20ac\u009d", '"'),  # right double quote
    ("\u00e2\u20ac", '"'),  # right double quote, trailing byte lost
]


def normalize_title(title: str) -> str:
    """Replace mojibake punctuation with the intended characters."""
    for broken, fixed in MOJIBAKE_REPLACEMENTS:
        title = title.replace(broken, fixed)
    return title.strip()


@dataclass
class SpineEntry:
    """One itemref of the spine, resolved through the manifest."""

    id: str
    href: str


@dataclass
class _NavNode:
    """Navigation point resolved to a reading-order range, before ordering."""

    label: str
    start: int
    end: int
    children: list["_NavNode"] = field(default_factory=list)


class _ReadingOrder:
    """Reading-order lookup for navigation targets."""

    def __init__(self, store: ArchiveStore, hrefs: list[str], nav_dir: str):
        self.store = store
        self.hrefs = hrefs
        self.nav_dir = nav_dir
        self.archive_paths = [store.resolve_href(h) for h in hrefs]

    def index_of(self, src: str) -> int:
        """Reading-order index of a navigation target, or -1."""
        target = strip_fragment(src)
        if not target:
            return -1

        archive_path = self.store.resolve_href(target, self.nav_dir)
        if archive_path in self.archive_paths:
            return self.archive_paths.index(archive_path)

        # Navigation documents occasionally use hrefs relative to another
        # directory; fall back to comparing the trailing segments.
        for i, href in enumerate(self.hrefs):
            if href == target or href.endswith("/" + target) or target.endswith("/" + href):
                return i
        return -1


class NavigationParser:
    """Parse the package and navigation documents into a chapter tree."""

    def __init__(self, store: ArchiveStore):
        self.store = store
        self.opf = store.package_document()
        self.warnings: list[str] = []

    def parse(self) -> ParsedBook:
        """Parse metadata and the chapter tree."""
        spine = self._get_spine()
        chapters = self._get_chapters(spine)
        metadata = self._get_metadata()
        metadata.chapter_count = len(flatten_chapters(chapters))

        return ParsedBook(
            metadata=metadata,
            chapters=chapters,
            spine_order=[entry.href for entry in spine],
            warnings=self.warnings,
        )

    def _get_metadata(self) -> BookMetadata:
        """Extract title and author from the package metadata."""
        metadata = find_first(self.opf, "metadata")
        if metadata is None:
            return BookMetadata()

        title = element_text(find_first(metadata, "title"))
        author = element_text(find_first(metadata, "creator"))
        return BookMetadata(
            title=title or "Untitled",
            author=author or "Unknown Author",
        )

    def _get_spine(self) -> list[SpineEntry]:
        """Reading order as manifest hrefs, fragments stripped."""
        manifest = find_first(self.opf, "manifest")
        spine = find_first(self.opf, "spine")
        if manifest is None or spine is None:
            log.warning("Package document has no manifest or spine")
            return []

        hrefs_by_id = {
            item.get("id"): item.get("href") or ""
            for item in find_children(manifest, "item")
            if item.get("id")
        }

        entries = []
        for index, itemref in enumerate(find_children(spine, "itemref")):
            idref = itemref.get("idref")
            if idref not in hrefs_by_id:
                log.debug("Spine itemref %r has no manifest item", idref)
                continue
            entries.append(
                SpineEntry(
                    id=idref or f"item-{index}",
                    href=strip_fragment(hrefs_by_id[idref]),
                )
            )
        return entries

    def _get_chapters(self, spine: list[SpineEntry]) -> list[Chapter]:
        nav_points, nav_dir = self._find_nav_points()
        if not nav_points:
            return self._chapters_from_spine(spine)

        reading_order = _ReadingOrder(
            self.store, [entry.href for entry in spine], nav_dir
        )
        nodes = self._parse_nav_points(nav_points, reading_order, len(spine) - 1)

        ids_by_href: dict[str, str] = {}
        for entry in spine:
            ids_by_href.setdefault(entry.href, entry.id)

        chapters, _ = self._assign_order(
            nodes, reading_order.hrefs, ids_by_href, set(), counter=0, depth=0
        )
        return chapters

    def _find_nav_points(self) -> tuple[list[etree._Element], str]:
        """Top-level navPoints of the NCX and the NCX directory."""
        manifest = find_first(self.opf, "manifest")
        if manifest is None:
            return [], ""

        ncx_item = next(
            (
                item
                for item in find_children(manifest, "item")
                if NCX_MEDIA_TYPE_MARKER in (item.get("media-type") or "")
            ),
            None,
        )
        if ncx_item is None or not ncx_item.get("href"):
            log.info("No NCX navigation document, using spine order")
            return [], ""

        ncx_path = self.store.resolve_href(ncx_item.get("href"))
        content = self.store.get(ncx_path)
        if content is None:
            self._warn(f"Navigation document {ncx_path} is missing, using spine order")
            return [], ""

        try:
            ncx = parse_xml(content, ncx_path)
        except MalformedPackageError as e:
            self._warn(f"{e}; using spine order")
            return [], ""

        nav_map = find_first(ncx, "navMap")
        if nav_map is None:
            return [], ""
        return find_children(nav_map, "navPoint"), directory_of(ncx_path)

    def _parse_nav_points(
        self,
        nav_points: list[etree._Element],
        reading_order: _ReadingOrder,
        upper_bound: int,
    ) -> list[_NavNode]:
        """Resolve sibling navPoints to ranges, recursing into children.

        A sibling's range ends just before the next resolvable sibling's
        start; the last sibling ends at ``upper_bound`` (the parent's end).
        """
        srcs = [self._nav_src(point) for point in nav_points]
        starts = [reading_order.index_of(src) for src in srcs]

        nodes = []
        for i, point in enumerate(nav_points):
            start = starts[i]
            label = self._nav_label(point)
            if start == -1:
                self._warn(
                    f"Navigation entry {label or srcs[i]!r} points to "
                    f"{srcs[i]!r}, which is not in the reading order; skipped"
                )
                continue

            end = upper_bound
            next_start = next((s for s in starts[i + 1 :] if s != -1), None)
            if next_start is not None:
                if next_start > start:
                    end = min(next_start - 1, upper_bound)
                elif next_start == start:
                    # Next sibling is a fragment of the same document
                    end = start
            end = max(end, start)

            children = self._parse_nav_points(
                find_children(point, "navPoint"), reading_order, end
            )
            nodes.append(_NavNode(label=label, start=start, end=end, children=children))

        return nodes

    def _assign_order(
        self,
        nodes: list[_NavNode],
        hrefs: list[str],
        ids_by_href: dict[str, str],
        used_ids: set[str],
        counter: int,
        depth: int,
        parent_id: str | None = None,
    ) -> tuple[list[Chapter], int]:
        """Depth-first pre-order pass that numbers nodes and builds Chapters.

        Returns the chapters and the next free order value.
        """
        chapters = []
        for node in nodes:
            order = counter
            counter += 1

            primary = hrefs[node.start]
            chapter_id = _unique_id(
                ids_by_href.get(primary) or f"chapter-{order}", order, used_ids
            )
            children, counter = self._assign_order(
                node.children,
                hrefs,
                ids_by_href,
                used_ids,
                counter,
                depth + 1,
                chapter_id,
            )

            chapters.append(
                Chapter(
                    id=chapter_id,
                    title=normalize_title(node.label) or f"Chapter {order + 1}",
                    primary_path=primary,
                    content_paths=hrefs[node.start : node.end + 1],
                    order=order,
                    depth=depth,
                    children=children,
                    parent_id=parent_id,
                )
            )
        return chapters, counter

    def _chapters_from_spine(self, spine: list[SpineEntry]) -> list[Chapter]:
        """One flat chapter per spine entry."""
        used_ids: set[str] = set()
        return [
            Chapter(
                id=_unique_id(entry.id, index, used_ids),
                title=f"Chapter {index + 1}",
                primary_path=entry.href,
                content_paths=[entry.href],
                order=index,
            )
            for index, entry in enumerate(spine)
        ]

    @staticmethod
    def _nav_src(nav_point: etree._Element) -> str:
        content = find_child(nav_point, "content")
        return (content.get("src") or "") if content is not None else ""

    @staticmethod
    def _nav_label(nav_point: etree._Element) -> str:
        nav_label = find_child(nav_point, "navLabel")
        if nav_label is None:
            return ""
        return element_text(find_first(nav_label, "text"))

    def _warn(self, message: str) -> None:
        log.warning(message)
        self.warnings.append(message)


def _unique_id(candidate: str, order: int, used_ids: set[str]) -> str:
    chapter_id = candidate if candidate not in used_ids else f"{candidate}-{order}"
    used_ids.add(chapter_id)
    return chapter_id


def parse_book(store: ArchiveStore) -> ParsedBook:
    """Parse an opened archive into metadata and a chapter tree."""
    return NavigationParser(store).parse()
