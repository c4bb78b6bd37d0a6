"""Data models for the parsed chapter tree."""

from pydantic import BaseModel, Field


class Chapter(BaseModel):
    """Logical chapter reconstructed from the navigation document.

    ``primary_path`` and ``content_paths`` are hrefs relative to the
    package document directory, exactly as they appear in the manifest.
    """

    id: str
    title: str
    primary_path: str
    content_paths: list[str]
    order: int
    depth: int = 0
    children: list["Chapter"] = Field(default_factory=list)
    parent_id: str | None = None


class BookMetadata(BaseModel):
    """Book-level metadata."""

    title: str = "Untitled"
    author: str = "Unknown Author"
    chapter_count: int = 0


class ParsedBook(BaseModel):
    """Complete parse result: metadata plus the chapter tree."""

    metadata: BookMetadata
    chapters: list[Chapter] = Field(default_factory=list)
    spine_order: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
