"""Info command implementation."""

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from epub_extract.core.extractor import ChapterExtractor
from epub_extract.core.selection import get_max_depth
from epub_extract.models.book import Chapter, ParsedBook


def display_book_info(parsed: ParsedBook, console: Console) -> None:
    """Display the book info panel, including parse warnings."""
    info_lines = [
        f"[bold]{parsed.metadata.title}[/]",
        f"[dim]Author:[/] {parsed.metadata.author}",
        f"[dim]Chapters:[/] {parsed.metadata.chapter_count}",
        f"[dim]Nesting depth:[/] {get_max_depth(parsed.chapters)}",
        f"[dim]Content files:[/] {len(parsed.spine_order)}",
    ]

    if parsed.warnings:
        info_lines.append("")
        for warning in parsed.warnings:
            info_lines.append(f"[yellow]! {warning}[/]")

    console.print(Panel("\n".join(info_lines), title="Book Info", border_style="green"))


def build_chapter_tree(
    chapters: list[Chapter], max_depth: int | None = None
) -> Tree:
    """Rich tree of chapters labelled with their selection numbers."""
    tree = Tree("[bold cyan]Table of Contents[/]")

    def add(branch: Tree, items: list[Chapter]) -> None:
        for chapter in items:
            files = len(chapter.content_paths)
            label = (
                f"[dim]{chapter.order + 1:>3}[/] {chapter.title} "
                f"[dim]({chapter.id}, {files} file{'s' if files != 1 else ''})[/]"
            )
            node = branch.add(label)
            if chapter.children and (max_depth is None or chapter.depth < max_depth):
                add(node, chapter.children)

    add(tree, chapters)
    return tree


def execute_info(book_path: Path, depth: int | None, console: Console) -> None:
    """Execute the info command."""
    extractor = ChapterExtractor.from_bytes(book_path.read_bytes())

    console.print()
    display_book_info(extractor.book, console)

    max_depth = get_max_depth(extractor.book.chapters)
    if depth is not None and depth > max_depth:
        console.print(f"[yellow]Depth {depth} exceeds the deepest level ({max_depth}); showing all[/]")
    console.print()
    console.print(build_chapter_tree(extractor.book.chapters, depth))
