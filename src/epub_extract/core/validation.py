"""Lightweight structural checks run before handing bytes to the parser."""

from epub_extract.core.archive import CONTAINER_PATH, MIMETYPE_PATH, read_zip_entries
from epub_extract.exceptions import MalformedArchiveError
from epub_extract.models.extraction import EPUB_MEDIA_TYPE

ZIP_MAGIC = b"PK"


def validate_epub_bytes(data: bytes) -> tuple[bool, str | None]:
    """Check ZIP magic, the mimetype entry and container.xml.

    Returns (is_valid, error_message).
    """
    if not data.startswith(ZIP_MAGIC):
        return False, "File is not a valid ZIP archive"

    try:
        entries = read_zip_entries(data)
    except MalformedArchiveError:
        return False, "Failed to read EPUB archive"

    if MIMETYPE_PATH not in entries:
        return False, "Missing mimetype file"
    mimetype = entries[MIMETYPE_PATH].decode("utf-8", errors="replace")
    if EPUB_MEDIA_TYPE not in mimetype.strip():
        return False, "Invalid mimetype content"

    if CONTAINER_PATH not in entries:
        return False, "Missing container.xml"
    container = entries[CONTAINER_PATH].decode("utf-8", errors="replace")
    if "rootfile" not in container:
        return False, "Invalid container.xml structure"

    return True, None
