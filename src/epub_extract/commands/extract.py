"""Extract command implementation."""

import logging
import re
from datetime import date
from pathlib import Path

import questionary
from questionary import Style
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn

from epub_extract.commands.info import display_book_info
from epub_extract.core.progress import (
    CancellationToken,
    calculate_progress,
    format_duration,
)
from epub_extract.core.selection import (
    find_chapter,
    flatten_chapters,
    get_max_depth,
    ids_for_orders,
    parse_chapter_selection,
    select_to_depth,
)
from epub_extract.core.session import ExtractionSession
from epub_extract.core.validation import validate_epub_bytes
from epub_extract.exceptions import EpubExtractError
from epub_extract.models.book import ParsedBook
from epub_extract.models.extraction import (
    ExtractionOptions,
    ProcessingState,
    ProcessingStatus,
)

log = logging.getLogger(__name__)

SELECT_STYLE = Style([
    ("qmark", "fg:cyan bold"),
    ("question", "bold"),
    ("pointer", "fg:cyan bold"),
    ("highlighted", "fg:cyan bold"),
    ("selected", "fg:green"),
    ("instruction", "fg:gray"),
])


def generate_export_filename(
    original_name: str,
    chapter_count: int,
    is_single_epub: bool,
    today: date | None = None,
) -> str:
    """Download name like ``Book_3chapters_2024-05-01.zip``."""
    base_name = re.sub(r"\.epub$", "", original_name, flags=re.IGNORECASE)
    timestamp = (today or date.today()).isoformat()
    extension = "epub" if is_single_epub else "zip"
    label = "chapter" if chapter_count == 1 else "chapters"
    return f"{base_name}_{chapter_count}{label}_{timestamp}.{extension}"


def resolve_selection(
    parsed: ParsedBook,
    chapters: str | None,
    ids: str | None,
    depth: int | None,
) -> set[str]:
    """Turn CLI selection options into a set of chapter ids."""
    selected: set[str] = set()

    if chapters:
        orders = parse_chapter_selection(chapters, parsed.metadata.chapter_count)
        selected |= ids_for_orders(parsed.chapters, orders)

    if ids:
        for chapter_id in (part.strip() for part in ids.split(",")):
            if not chapter_id:
                continue
            if find_chapter(parsed.chapters, chapter_id) is None:
                raise EpubExtractError(f"Unknown chapter id: {chapter_id}")
            selected.add(chapter_id)

    if depth is not None:
        max_depth = get_max_depth(parsed.chapters)
        if depth > max_depth:
            log.warning("Depth %d exceeds the deepest chapter level (%d)", depth, max_depth)
        selected |= select_to_depth(parsed.chapters, depth)

    return selected


def interactive_select(parsed: ParsedBook) -> set[str]:
    """Checkbox prompt over the whole chapter tree."""
    choices = [
        questionary.Choice(
            title=f"{'  ' * chapter.depth}{chapter.order + 1}. {chapter.title}",
            value=chapter.id,
        )
        for chapter in flatten_chapters(parsed.chapters)
    ]

    result = questionary.checkbox(
        "Select chapters to extract:",
        choices=choices,
        style=SELECT_STYLE,
        instruction="(Space to toggle, Enter to confirm)",
    ).ask()

    return set(result or [])


class RichProgressSink:
    """Forwards extraction progress to a rich progress bar."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.task = progress.add_task("Extracting chapters...", total=None)

    def report(self, state: ProcessingState) -> None:
        if state.status == ProcessingStatus.ZIPPING:
            description = "Packaging..."
        elif state.status == ProcessingStatus.EXTRACTING:
            percent = calculate_progress(state.current_unit, state.total_units)
            description = f"Extracting {state.current_unit}/{state.total_units} ({percent}%)"
        else:
            return
        self.progress.update(
            self.task,
            completed=state.fraction,
            total=1.0,
            description=description,
        )


def execute_extract(
    book_path: Path,
    chapters: str | None,
    ids: str | None,
    depth: int | None,
    interactive: bool,
    output: Path | None,
    options: ExtractionOptions,
    quiet: bool,
    console: Console,
    cancel_token: CancellationToken | None = None,
) -> Path | None:
    """Execute the extract command. Returns the written file, if any."""
    data = book_path.read_bytes()
    valid, error = validate_epub_bytes(data)
    if not valid:
        raise EpubExtractError(f"{book_path.name}: {error}")

    session = ExtractionSession()
    parsed = session.parse_file(data)

    if not quiet:
        console.print()
        display_book_info(parsed, console)

    if interactive or not (chapters or ids or depth is not None):
        selected = interactive_select(parsed)
    else:
        selected = resolve_selection(parsed, chapters, ids, depth)

    if not selected:
        console.print("[yellow]No chapters selected. Exiting.[/]")
        return None

    if quiet:
        result = session.extract(selected, options, cancel_token)
    else:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TimeRemainingColumn(),
            console=console,
        ) as progress:
            session.progress = RichProgressSink(progress)
            result = session.extract(selected, options, cancel_token)

    if result is None:
        console.print("[yellow]Extraction cancelled.[/]")
        return None

    filename = generate_export_filename(
        book_path.name, result.chapter_count, result.is_single_epub
    )
    if output is None:
        output_path = book_path.parent / filename
    elif output.is_dir():
        output_path = output / filename
    else:
        output_path = output
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.data)

    if not quiet:
        kind = "EPUB" if result.is_single_epub else "ZIP of EPUBs"
        summary_lines = [
            f"[green]Extracted {result.chapter_count} chapter(s) as {kind}[/]",
            "",
            f"[dim]Output:[/] {output_path}",
            f"[dim]Elapsed:[/] {format_duration(session.state.elapsed_ms)}",
        ]
        console.print()
        console.print(Panel("\n".join(summary_lines), title="Complete", border_style="green"))

    return output_path
