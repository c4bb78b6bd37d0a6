"""Main CLI application."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from epub_extract.commands.extract import execute_extract
from epub_extract.commands.info import execute_info
from epub_extract.models.extraction import ExtractionOptions

app = typer.Typer(
    name="epub-extract",
    help="Extract selected chapters from an EPUB into standalone EPUB files.",
    add_completion=False,
)

console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


BookPath = Annotated[
    Path,
    typer.Argument(
        help="Path to the EPUB file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


@app.command()
def info(
    book_path: BookPath,
    depth: Annotated[
        Optional[int],
        typer.Option(
            "--depth",
            "-d",
            help="Only show chapters nested up to this depth (0 = top level)",
            min=0,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Show book metadata and the chapter tree."""
    configure_logging(verbose)
    try:
        execute_info(book_path, depth, console)
    except Exception as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@app.command()
def extract(
    book_path: BookPath,
    chapters: Annotated[
        Optional[str],
        typer.Option(
            "--chapters",
            "-c",
            help="Chapters to extract by number: '1,3,5-7' or 'all' (see 'epub-extract info')",
        ),
    ] = None,
    ids: Annotated[
        Optional[str],
        typer.Option(
            "--ids",
            help="Comma-separated chapter ids to extract",
        ),
    ] = None,
    depth: Annotated[
        Optional[int],
        typer.Option(
            "--depth",
            "-d",
            help="Select every chapter nested up to this depth (0 = top level)",
            min=0,
        ),
    ] = None,
    interactive: Annotated[
        bool,
        typer.Option(
            "--interactive",
            "-i",
            help="Pick chapters from a checklist",
        ),
    ] = False,
    flatten: Annotated[
        bool,
        typer.Option(
            "--flatten",
            help="Put every EPUB at the top level of the ZIP instead of nesting folders",
        ),
    ] = False,
    keep_stale_nav: Annotated[
        bool,
        typer.Option(
            "--keep-stale-nav",
            help="Copy the navigation document unchanged instead of pruning it",
        ),
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Output file or directory (default: next to the book)",
        ),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress progress output",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Extract chapters into a single EPUB or a ZIP of EPUBs."""
    configure_logging(verbose)
    options = ExtractionOptions(flatten=flatten, prune_navigation=not keep_stale_nav)

    try:
        written = execute_extract(
            book_path=book_path,
            chapters=chapters,
            ids=ids,
            depth=depth,
            interactive=interactive,
            output=output,
            options=options,
            quiet=quiet,
            console=console,
        )
    except Exception as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    if written is None:
        raise typer.Exit(1)
    if quiet:
        console.print(str(written))


if __name__ == "__main__":
    app()
