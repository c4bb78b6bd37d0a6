"""In-memory EPUB archive: decoded entries plus derived package paths."""

import io
import logging
import posixpath
import zipfile
import zlib
from urllib.parse import unquote

from lxml import etree

from epub_extract.core.xml import find_children, find_first, parse_xml
from epub_extract.exceptions import (
    MalformedArchiveError,
    MissingPackageDocumentError,
    MissingRootError,
    SerializationError,
)

log = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
MIMETYPE_PATH = "mimetype"
DEFAULT_ROOT_PATH = "OEBPS/content.opf"


def normalize_path(path: str) -> str:
    """Resolve ``.`` and ``..`` segments and drop empty ones.

    ``..`` above the archive root is discarded rather than kept.
    """
    result: list[str] = []
    for part in path.split("/"):
        if part == "..":
            if result:
                result.pop()
        elif part not in (".", ""):
            result.append(part)
    return "/".join(result)


def strip_fragment(href: str) -> str:
    return href.split("#", 1)[0]


def read_zip_entries(data: bytes) -> dict[str, bytes]:
    """Decode every file entry of a ZIP buffer into a path -> bytes dict."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return {
                info.filename: zf.read(info)
                for info in zf.infolist()
                if not info.is_dir()
            }
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error) as e:
        raise MalformedArchiveError(f"Not a readable ZIP archive: {e}") from e
    except RuntimeError as e:
        # Encrypted entries; NotImplementedError (unknown compression) is a subclass
        raise MalformedArchiveError(f"Unsupported archive entry: {e}") from e


def write_archive(entries: dict[str, bytes], compression_level: int = 6) -> bytes:
    """Serialize entries into a ZIP buffer.

    ``mimetype`` is written first and stored uncompressed, as the OCF
    container format requires.
    """
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w") as zf:
            if MIMETYPE_PATH in entries:
                zf.writestr(
                    MIMETYPE_PATH, entries[MIMETYPE_PATH], compress_type=zipfile.ZIP_STORED
                )
            for path, content in entries.items():
                if path == MIMETYPE_PATH:
                    continue
                zf.writestr(
                    path,
                    content,
                    compress_type=zipfile.ZIP_DEFLATED,
                    compresslevel=compression_level,
                )
    except (zipfile.LargeZipFile, OSError, ValueError) as e:
        raise SerializationError(f"Failed to write archive: {e}") from e
    return buffer.getvalue()


def find_root_file_path(container_xml: bytes) -> str:
    """Package document path from container.xml, with the common default."""
    root = parse_xml(container_xml, CONTAINER_PATH)
    rootfile = find_first(root, "rootfile")
    full_path = rootfile.get("full-path") if rootfile is not None else None
    if not full_path:
        log.warning("container.xml has no rootfile reference, trying %s", DEFAULT_ROOT_PATH)
        return DEFAULT_ROOT_PATH
    return full_path


def find_cover_image(opf_root: etree._Element) -> str | None:
    """Manifest href of the cover image, if one can be identified.

    Checks, in order: ``<meta name="cover">``, an item with the
    ``cover-image`` property, then any image item whose id or href
    mentions "cover".
    """
    manifest = find_first(opf_root, "manifest")
    if manifest is None:
        return None
    items = find_children(manifest, "item")
    by_id = {item.get("id"): item for item in items if item.get("id")}

    for meta in opf_root.iter("{*}meta"):
        if meta.get("name") == "cover" and meta.get("content"):
            item = by_id.get(meta.get("content"))
            if item is not None and item.get("href"):
                return item.get("href")

    for item in items:
        if "cover-image" in (item.get("properties") or "").split() and item.get("href"):
            return item.get("href")

    for item in items:
        item_id = (item.get("id") or "").lower()
        href = item.get("href") or ""
        media_type = item.get("media-type") or ""
        if media_type.startswith("image/") and ("cover" in item_id or "cover" in href.lower()):
            return href

    return None


class ArchiveStore:
    """Decoded entries of an EPUB plus the paths derived from them.

    Entries are never modified after construction; rebuilders copy
    references into their own dicts.
    """

    def __init__(self, entries: dict[str, bytes]):
        self._entries = dict(entries)

        container = self._entries.get(CONTAINER_PATH)
        if container is None:
            raise MissingRootError(f"{CONTAINER_PATH} not found in EPUB")

        self.root_path = find_root_file_path(container)
        if self.root_path not in self._entries:
            if self.root_path == DEFAULT_ROOT_PATH:
                raise MissingRootError(
                    f"{CONTAINER_PATH} has no rootfile and {DEFAULT_ROOT_PATH} is absent"
                )
            raise MissingPackageDocumentError(
                f"Package document {self.root_path} not found in EPUB"
            )

        self.base_path = self.root_path[: self.root_path.rfind("/") + 1]

        cover_href = find_cover_image(self.package_document())
        self.cover_image_path: str | None = None
        if cover_href:
            self.cover_image_path = self.resolve_href(cover_href)
            log.debug("Cover image located at %s", self.cover_image_path)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ArchiveStore":
        """Decode an EPUB buffer."""
        return cls(read_zip_entries(data))

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def get(self, path: str) -> bytes | None:
        return self._entries.get(path)

    def package_document(self) -> etree._Element:
        """Freshly parsed package document; callers may mutate it."""
        return parse_xml(self._entries[self.root_path], self.root_path)

    def resolve_href(self, href: str, relative_to: str | None = None) -> str:
        """Archive path for an href.

        Relative hrefs resolve against ``relative_to`` (a directory ending
        in "/") or the package document directory. Absolute hrefs resolve
        from the archive root.
        """
        href = unquote(strip_fragment(href))
        if href.startswith("/"):
            return normalize_path(href)
        directory = self.base_path if relative_to is None else relative_to
        return normalize_path(directory + href)


def directory_of(path: str) -> str:
    """Directory part of an archive path, with trailing slash (or empty)."""
    directory = posixpath.dirname(path)
    return f"{directory}/" if directory else ""
