"""Progress reporting and cooperative cancellation for extraction runs."""

import time
from typing import Protocol

from epub_extract.exceptions import ExtractionCancelled
from epub_extract.models.extraction import ProcessingState, ProcessingStatus


class ProgressSink(Protocol):
    """Receives a state snapshot after each measurable unit of work."""

    def report(self, state: ProcessingState) -> None: ...


class NullProgressSink:
    """Sink that ignores every report."""

    def report(self, state: ProcessingState) -> None:
        pass


class CancellationToken:
    """Flag checked by the extractor between units."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ExtractionCancelled("Extraction cancelled")


class ProgressTracker:
    """Builds timed ProcessingState snapshots and forwards them to a sink."""

    def __init__(self, sink: ProgressSink | None = None):
        self.sink = sink or NullProgressSink()
        self.start_time = time.monotonic()

    def report(self, status: ProcessingStatus, current: int, total: int) -> ProcessingState:
        elapsed = int((time.monotonic() - self.start_time) * 1000)
        average = elapsed / current if current > 0 else 0
        state = ProcessingState(
            status=status,
            current_unit=current,
            total_units=total,
            elapsed_ms=elapsed,
            estimated_remaining_ms=round(average * (total - current)),
        )
        self.sink.report(state)
        return state


def format_duration(ms: int) -> str:
    """Human-readable duration such as ``"< 1s"``, ``"42s"`` or ``"1m 30s"``."""
    if ms < 1000:
        return "< 1s"

    seconds = ms // 1000
    minutes, remaining_seconds = divmod(seconds, 60)
    if minutes == 0:
        return f"{seconds}s"
    return f"{minutes}m {remaining_seconds}s"


def calculate_progress(current: int, total: int) -> int:
    """Completion percentage, 0-100."""
    if total == 0:
        return 0
    return round(current / total * 100)
