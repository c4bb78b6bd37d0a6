"""Helpers for walking the chapter tree and building selections."""

import re
from collections.abc import Iterable
from math import inf

from epub_extract.models.book import Chapter


def flatten_chapters(chapters: list[Chapter], max_depth: float = inf) -> list[Chapter]:
    """Pre-order list of chapters, descending only while depth < max_depth."""
    result: list[Chapter] = []

    def traverse(items: list[Chapter]) -> None:
        for chapter in items:
            result.append(chapter)
            if chapter.children and chapter.depth < max_depth:
                traverse(chapter.children)

    traverse(chapters)
    return result


def get_max_depth(chapters: list[Chapter]) -> int:
    """Deepest nesting level in the tree (0 for a flat list)."""
    return max((c.depth for c in flatten_chapters(chapters)), default=0)


def find_chapter(chapters: list[Chapter], chapter_id: str) -> Chapter | None:
    for chapter in flatten_chapters(chapters):
        if chapter.id == chapter_id:
            return chapter
    return None


def has_selected_descendant(chapter: Chapter, selected_ids: set[str]) -> bool:
    """True if the chapter or anything below it is selected."""
    if chapter.id in selected_ids:
        return True
    return any(has_selected_descendant(c, selected_ids) for c in chapter.children)


def select_to_depth(chapters: list[Chapter], depth: int) -> set[str]:
    """Ids of every chapter nested no deeper than ``depth``."""
    return {c.id for c in flatten_chapters(chapters) if c.depth <= depth}


def ids_for_orders(chapters: list[Chapter], orders: Iterable[int]) -> set[str]:
    """Map 0-based ``order`` values to chapter ids, ignoring unknown ones."""
    wanted = set(orders)
    return {c.id for c in flatten_chapters(chapters) if c.order in wanted}


def parse_chapter_selection(selection: str, total_chapters: int) -> list[int]:
    """Parse user chapter selection string to list of indices.

    Supports: "1,3,5-7", "all", "1-10", etc.
    Returns 0-based indices.
    """
    selection = selection.strip().lower()

    if selection == "all":
        return list(range(total_chapters))

    indices = set()
    for part in selection.split(","):
        part = part.strip()
        if not part:
            continue

        if "-" in part:
            match = re.match(r"(\d+)\s*-\s*(\d+)", part)
            if match:
                start, end = int(match.group(1)), int(match.group(2))
                indices.update(range(start - 1, end))  # Convert to 0-based
        else:
            try:
                indices.add(int(part) - 1)  # Convert to 0-based
            except ValueError:
                continue

    # Filter valid indices
    return sorted(i for i in indices if 0 <= i < total_chapters)
