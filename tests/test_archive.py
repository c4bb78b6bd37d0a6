"""Tests for the in-memory archive store."""

import io
import zipfile

import pytest

from conftest import NESTED_SPINE, Resource, corrupt_entry
from epub_extract.core.archive import (
    ArchiveStore,
    find_root_file_path,
    normalize_path,
    read_zip_entries,
    write_archive,
)
from epub_extract.exceptions import (
    MalformedArchiveError,
    MalformedPackageError,
    MissingPackageDocumentError,
    MissingRootError,
)


class TestNormalizePath:
    """Tests for normalize_path."""

    def test_resolves_parent_segments(self):
        """Should collapse '..' against the preceding segment."""
        assert normalize_path("OEBPS/Text/../Images/a.png") == "OEBPS/Images/a.png"

    def test_drops_dot_and_empty_segments(self):
        """Should drop '.' and empty segments."""
        assert normalize_path("OEBPS/./Images//a.png") == "OEBPS/Images/a.png"

    def test_parent_above_root_is_discarded(self):
        """Should not escape the archive root."""
        assert normalize_path("../../a.png") == "a.png"


class TestFindRootFilePath:
    """Tests for container.xml parsing."""

    def test_reads_full_path(self):
        """Should return the rootfile full-path attribute."""
        xml = b'<container><rootfiles><rootfile full-path="pkg/book.opf"/></rootfiles></container>'
        assert find_root_file_path(xml) == "pkg/book.opf"

    def test_defaults_when_rootfile_missing(self):
        """Should fall back to OEBPS/content.opf."""
        assert find_root_file_path(b"<container/>") == "OEBPS/content.opf"

    def test_raises_on_malformed_xml(self):
        """Should raise MalformedPackageError for broken XML."""
        with pytest.raises(MalformedPackageError):
            find_root_file_path(b"<container><rootfiles>")


class TestArchiveStore:
    """Tests for ArchiveStore construction and lookups."""

    def test_derives_paths(self, nested_store):
        """Should locate the package document and base directory."""
        assert nested_store.root_path == "OEBPS/content.opf"
        assert nested_store.base_path == "OEBPS/"
        assert "OEBPS/Text/ch1.xhtml" in nested_store

    def test_rejects_non_zip(self):
        """Should raise MalformedArchiveError for random bytes."""
        with pytest.raises(MalformedArchiveError):
            ArchiveStore.from_bytes(b"definitely not a zip")

    def test_missing_container(self):
        """Should raise MissingRootError without container.xml."""
        with pytest.raises(MissingRootError):
            ArchiveStore({"mimetype": b"application/epub+zip"})

    def test_missing_package_document(self, epub_builder):
        """Should raise MissingPackageDocumentError for a dangling rootfile."""
        data = epub_builder(
            NESTED_SPINE[:1],
            container_xml=(
                '<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container">'
                '<rootfiles><rootfile full-path="nowhere/book.opf"/></rootfiles></container>'
            ),
        )
        with pytest.raises(MissingPackageDocumentError) as exc_info:
            ArchiveStore.from_bytes(data)
        assert "nowhere/book.opf" in str(exc_info.value)

    def test_rootfile_missing_uses_default(self, epub_builder):
        """Should accept a container without rootfile if the default exists."""
        data = epub_builder(NESTED_SPINE[:1], container_xml="<container/>")
        store = ArchiveStore.from_bytes(data)
        assert store.root_path == "OEBPS/content.opf"

    def test_rootfile_missing_and_default_absent(self, epub_builder):
        """Should raise MissingRootError when neither path is usable."""
        data = epub_builder(
            NESTED_SPINE[:1], root_path="book/content.opf", container_xml="<container/>"
        )
        with pytest.raises(MissingRootError):
            ArchiveStore.from_bytes(data)

    def test_malformed_package_document(self, epub_builder):
        """Should raise MalformedPackageError for a broken OPF."""
        data = epub_builder(NESTED_SPINE[:1], opf_override="<package><manifest>")
        with pytest.raises(MalformedPackageError):
            ArchiveStore.from_bytes(data)

    def test_root_level_package_document(self, epub_builder):
        """Should use an empty base path when the OPF sits at the root."""
        data = epub_builder(NESTED_SPINE[:1], root_path="content.opf")
        store = ArchiveStore.from_bytes(data)
        assert store.base_path == ""
        assert store.resolve_href("Text/part1.xhtml") == "Text/part1.xhtml"

    def test_corrupt_entry(self, nested_epub):
        """Should report a damaged compressed entry as a malformed archive."""
        data = corrupt_entry(nested_epub, "OEBPS/Text/ch1.xhtml")
        with pytest.raises(MalformedArchiveError, match="Not a readable ZIP archive"):
            ArchiveStore.from_bytes(data)

    def test_resolve_href(self, nested_store):
        """Should resolve relative, absolute and encoded hrefs."""
        assert nested_store.resolve_href("Text/ch1.xhtml#x") == "OEBPS/Text/ch1.xhtml"
        assert nested_store.resolve_href("../Images/a.png", "OEBPS/Text/") == "OEBPS/Images/a.png"
        assert nested_store.resolve_href("/OEBPS/a.png") == "OEBPS/a.png"
        assert nested_store.resolve_href("Text/my%20file.xhtml") == "OEBPS/Text/my file.xhtml"


class TestCoverDetection:
    """Tests for cover image lookup."""

    def test_cover_from_meta(self, nested_store):
        """Should follow <meta name="cover"> to the manifest item."""
        assert nested_store.cover_image_path == "OEBPS/Images/cover.jpg"

    def test_cover_from_properties(self, epub_builder):
        """Should use the cover-image manifest property."""
        data = epub_builder(
            NESTED_SPINE[:1],
            resources=[
                Resource("img1", "Images/front.png", "image/png", b"png", properties="cover-image"),
            ],
        )
        assert ArchiveStore.from_bytes(data).cover_image_path == "OEBPS/Images/front.png"

    def test_cover_from_heuristic(self, epub_builder):
        """Should fall back to an image whose href mentions cover."""
        data = epub_builder(
            NESTED_SPINE[:1],
            resources=[
                Resource("img1", "Images/plate.png", "image/png", b"png"),
                Resource("img2", "Images/Cover-art.png", "image/png", b"png"),
            ],
        )
        assert ArchiveStore.from_bytes(data).cover_image_path == "OEBPS/Images/Cover-art.png"

    def test_no_cover(self, epub_builder):
        """Should return None when nothing looks like a cover."""
        data = epub_builder(NESTED_SPINE[:1])
        assert ArchiveStore.from_bytes(data).cover_image_path is None


class TestWriteArchive:
    """Tests for archive serialization."""

    def test_mimetype_first_and_stored(self):
        """Should write mimetype first without compression."""
        data = write_archive(
            {"OEBPS/a.xhtml": b"<html/>", "mimetype": b"application/epub+zip"}
        )
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            infos = zf.infolist()
        assert infos[0].filename == "mimetype"
        assert infos[0].compress_type == zipfile.ZIP_STORED
        assert infos[1].compress_type == zipfile.ZIP_DEFLATED

    def test_entries_survive(self):
        """Should be readable back with identical contents."""
        entries = {"a/b.txt": b"hello", "c.bin": bytes(range(256))}
        assert read_zip_entries(write_archive(entries)) == entries
