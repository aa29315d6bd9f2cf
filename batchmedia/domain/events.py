"""Domain events for the batch conversion pipeline.

Events flow through the EventBus and decouple the orchestrator from the
console reporter and the HTML report writer.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel

from .models import DirectoryStats, FileKind, FileRecord, GlobalStats


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class RunStarted(Event):
    """Emitted after directory discovery, before any directory is processed."""

    total_directories: int
    pending_directories: int
    resumed: bool = False
    dry_run: bool = False


class DirectoryStarted(Event):
    directory: Path
    index: int
    total: int
    worker_id: int = 0


class DirectoryCompleted(Event):
    """Emitted once per finished directory with its own statistics scope.

    The HTML report writer listens to this event.
    """

    directory: Path
    stats: DirectoryStats
    dry_run: bool = False


class DirectoryFailed(Event):
    """Emitted when a directory-scope error leaves the directory uncompleted."""

    directory: Path
    error_message: str


class FileStarted(Event):
    """Emitted before a file is routed to its pipeline."""

    path: Path
    kind: FileKind
    position: int
    total: int
    size_bytes: int
    worker_id: int = 0
    output_path: Optional[Path] = None
    dry_run: bool = False


class FileFinished(Event):
    record: FileRecord


class FileFailed(Event):
    path: Path
    error_message: str


class TranscodeProgress(Event):
    """Emitted as ffmpeg reports its position in the source."""

    path: Path
    progress_percent: float


class RunFinished(Event):
    stats: GlobalStats
    completed_directories: int
    failed_directories: int
    elapsed_seconds: float
