from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from batchmedia.domain.events import (
    DirectoryCompleted,
    DirectoryFailed,
    DirectoryStarted,
    FileFailed,
    FileFinished,
    FileStarted,
    RunFinished,
    RunStarted,
)
from batchmedia.domain.models import FileKind, GlobalStats, RecordKind
from batchmedia.infrastructure.event_bus import EventBus

KIND_LABELS = {
    FileKind.IMAGE: "image",
    FileKind.VIDEO: "video",
    FileKind.COPY: "file",
}

RECORD_STYLES = {
    RecordKind.PROCESSED: "green",
    RecordKind.VIDEO_PROCESSED: "cyan",
    RecordKind.COPIED: "yellow",
    RecordKind.SKIPPED: "magenta",
}


def format_size(size: float) -> str:
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}TB"


def build_summary_table(stats: GlobalStats, title: str = "Processing Summary") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total files", str(stats.total_files))
    table.add_row("Processed", str(stats.processed_images))
    table.add_row("Copied", str(stats.copied_files))
    table.add_row("Skipped", str(stats.skipped_images))
    table.add_row("Failed", str(stats.failed_files))
    table.add_row("Input size", format_size(stats.total_input_size))
    table.add_row("Output size", format_size(stats.total_output_size))
    table.add_row("Space saved", f"{stats.space_saved_percent:.1f}%")
    return table


class ConsoleReporter:
    """Subscribes to EventBus and prints progress lines with Rich."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console()
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(DirectoryStarted, self.on_directory_started)
        self.bus.subscribe(FileStarted, self.on_file_started)
        self.bus.subscribe(FileFinished, self.on_file_finished)
        self.bus.subscribe(FileFailed, self.on_file_failed)
        self.bus.subscribe(DirectoryCompleted, self.on_directory_completed)
        self.bus.subscribe(DirectoryFailed, self.on_directory_failed)
        self.bus.subscribe(RunFinished, self.on_run_finished)

    def on_run_started(self, event: RunStarted):
        mode = " [bold yellow](dry run)[/]" if event.dry_run else ""
        if event.resumed:
            self.console.print(
                f"Resuming: {event.pending_directories}/{event.total_directories} directories pending{mode}"
            )
        else:
            self.console.print(f"Found {event.total_directories} directories to process{mode}")

    def on_directory_started(self, event: DirectoryStarted):
        self.console.print(
            f"\\[thread-{event.worker_id}] [{event.index}/{event.total}] [bold]Directory:[/] {escape(str(event.directory))}",
            highlight=False,
        )

    def on_file_started(self, event: FileStarted):
        percent = event.position / event.total * 100 if event.total else 100.0
        verb = "Would process" if event.dry_run else "Processing"
        self.console.print(
            f"[thread-{event.worker_id}] [{event.position}/{event.total}] ({percent:.1f}%) "
            f"{verb} {KIND_LABELS[event.kind]}: {event.path}",
            highlight=False,
            markup=False,
        )

    def on_file_finished(self, event: FileFinished):
        record = event.record
        style = RECORD_STYLES.get(record.kind, "white")
        self.console.print(
            f"  [{style}]{record.kind.value}[/] {escape(record.path)} "
            f"({format_size(record.input_size)} -> {format_size(record.output_size)}, "
            f"ratio {record.compression_ratio:.2f})",
            highlight=False,
        )

    def on_file_failed(self, event: FileFailed):
        self.console.print(f"[yellow]Warning:[/] failed to process {escape(str(event.path))}: {escape(event.error_message)}", highlight=False)

    def on_directory_completed(self, event: DirectoryCompleted):
        stats = event.stats
        self.console.print(
            f"[green]Completed[/] {escape(str(event.directory))}: {stats.total_files} files, "
            f"{stats.processed_images} processed, {stats.copied_files} copied, "
            f"{stats.skipped_images} skipped, {stats.failed_files} failed",
            highlight=False,
        )

    def on_directory_failed(self, event: DirectoryFailed):
        self.console.print(
            f"[red]Directory failed[/] {escape(str(event.directory))}: {escape(event.error_message)} (will be retried next run)",
            highlight=False,
        )

    def on_run_finished(self, event: RunFinished):
        self.console.print(build_summary_table(event.stats))
        self.console.print(
            f"Directories: {event.completed_directories} completed, {event.failed_directories} failed "
            f"in {event.elapsed_seconds:.1f}s"
        )
