"""Output path planning for selected chapters."""

import re

from epub_extract.core.selection import has_selected_descendant
from epub_extract.models.book import Chapter
from epub_extract.models.extraction import ChapterWithPath

MAX_FILENAME_LENGTH = 50

_BULLET = re.compile("•")
_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")


def zero_padding(count: int) -> int:
    """Digits needed to number ``count`` siblings."""
    if count < 10:
        return 1
    if count < 100:
        return 2
    if count < 1000:
        return 3
    return 4


def sanitize_filename(title: str, index: int) -> str:
    """Filesystem-safe name for a chapter title.

    Falls back to ``chapter_NN`` (1-indexed position) when nothing
    usable is left.
    """
    cleaned = _BULLET.sub("", title)
    cleaned = _ILLEGAL_CHARS.sub("", cleaned)
    cleaned = _WHITESPACE.sub("_", cleaned)
    cleaned = _UNDERSCORES.sub("_", cleaned).strip("_")
    cleaned = cleaned[:MAX_FILENAME_LENGTH].rstrip("_")
    return cleaned or f"chapter_{index:02d}"


def plan_chapter_paths(
    chapters: list[Chapter],
    selected_ids: set[str],
    flatten: bool = False,
    parent_path: str = "",
    parent_number_prefix: str = "",
) -> list[ChapterWithPath]:
    """Compute export paths for every selected chapter, in tree order.

    Hierarchical paths look like ``1_Part/02_Chapter``; an unselected
    parent still contributes its folder when descendants are selected.
    Flattened paths concatenate the numeric prefixes instead:
    ``1_02_Chapter``.
    """
    result: list[ChapterWithPath] = []
    padding = zero_padding(len(chapters))

    for i, chapter in enumerate(chapters):
        number = str(i + 1).zfill(padding)
        number_prefix = f"{parent_number_prefix}_{number}" if parent_number_prefix else number
        safe_name = sanitize_filename(chapter.title, i + 1)

        if flatten:
            output_path = f"{number_prefix}_{safe_name}"
        else:
            numbered_name = f"{number}_{safe_name}"
            output_path = f"{parent_path}/{numbered_name}" if parent_path else numbered_name

        if chapter.id in selected_ids:
            result.append(
                ChapterWithPath(
                    chapter=chapter,
                    output_path=output_path,
                    has_selected_children=any(
                        has_selected_descendant(c, selected_ids) for c in chapter.children
                    ),
                )
            )

        if chapter.children and has_selected_descendant(chapter, selected_ids):
            result.extend(
                plan_chapter_paths(
                    chapter.children,
                    selected_ids,
                    flatten,
                    parent_path="" if flatten else output_path,
                    parent_number_prefix=number_prefix if flatten else "",
                )
            )

    return result
