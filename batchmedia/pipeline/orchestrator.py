import concurrent.futures
import logging
import threading
import time
from pathlib import Path
from typing import List, Optional

from batchmedia.config.models import RunConfig
from batchmedia.domain.errors import DirectoryError, ProgressFileError
from batchmedia.domain.events import (
    DirectoryCompleted,
    DirectoryFailed,
    DirectoryStarted,
    RunFinished,
    RunStarted,
)
from batchmedia.domain.models import DirectoryStats, FileKind, GlobalStats
from batchmedia.infrastructure.directory_scanner import DirectoryScanner
from batchmedia.infrastructure.event_bus import EventBus
from batchmedia.infrastructure.ffmpeg import FFmpegAdapter
from batchmedia.infrastructure.ffprobe import FFprobeAdapter
from batchmedia.infrastructure.progress_store import ProgressTracker
from batchmedia.pipeline.classifier import FileClassifier
from batchmedia.pipeline.copy_pipeline import CopyPipeline
from batchmedia.pipeline.directory_processor import DirectoryProcessor
from batchmedia.pipeline.image_pipeline import ImagePipeline
from batchmedia.pipeline.stats import StatsAggregator
from batchmedia.pipeline.thresholds import ThresholdPolicy
from batchmedia.pipeline.video_pipeline import VideoPipeline

WORKER_THREAD_PREFIX = "worker"


def build_directory_processor(config: RunConfig, event_bus: EventBus) -> DirectoryProcessor:
    """Wires the classifier and one pipeline per FileKind."""
    policy = ThresholdPolicy(config)
    pipelines = {
        FileKind.IMAGE: ImagePipeline(config, policy),
        FileKind.VIDEO: VideoPipeline(
            config,
            FFprobeAdapter(),
            FFmpegAdapter(event_bus, debug=config.debug),
            policy,
        ),
        FileKind.COPY: CopyPipeline(),
    }
    return DirectoryProcessor(config, event_bus, FileClassifier(config), pipelines)


def _worker_id() -> int:
    # ThreadPoolExecutor names its threads '<prefix>_<n>'
    name = threading.current_thread().name
    suffix = name.rsplit("_", 1)[-1]
    return int(suffix) + 1 if suffix.isdigit() else 0


class Orchestrator:
    """Schedules directories onto workers and owns the progress file.

    Workers only process a directory into their own DirectoryStats scope.
    Marking directories completed, persisting progress and merging
    statistics all happen on the thread that called run().
    """

    def __init__(
        self,
        config: RunConfig,
        event_bus: EventBus,
        scanner: Optional[DirectoryScanner] = None,
        tracker: Optional[ProgressTracker] = None,
        processor: Optional[DirectoryProcessor] = None,
        aggregator: Optional[StatsAggregator] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.scanner = scanner or DirectoryScanner()
        self.tracker = tracker or ProgressTracker(config.progress_file, persist=not config.dry_run)
        self.processor = processor or build_directory_processor(config, event_bus)
        self.aggregator = aggregator or StatsAggregator()
        self.logger = logging.getLogger(__name__)
        self.completed_directories = 0
        self.failed_directories = 0

    def run(self, reset_progress: bool = False) -> GlobalStats:
        start_time = time.monotonic()
        if reset_progress:
            self.tracker.reset()

        resumed = self.tracker.resume_or_seed(lambda: self.scanner.work_units(self.config.input_dir))
        pending = self.tracker.uncompleted()
        total = len(self.tracker.state.directories)

        self.logger.info(
            f"Run started: {len(pending)}/{total} directories pending "
            f"(workers={self.config.workers}, dry_run={self.config.dry_run}, resumed={resumed})"
        )
        self.event_bus.publish(RunStarted(
            total_directories=total,
            pending_directories=len(pending),
            resumed=resumed,
            dry_run=self.config.dry_run,
        ))

        if self.config.workers <= 1 or len(pending) <= 1:
            self._run_sequential(pending)
        else:
            self._run_concurrent(pending)

        stats = self.aggregator.snapshot()
        elapsed = time.monotonic() - start_time
        self.logger.info(
            f"Run finished: completed={self.completed_directories}, failed={self.failed_directories}, "
            f"files={stats.total_files}, processed={stats.processed_images}, copied={stats.copied_files}, "
            f"skipped={stats.skipped_images}, errors={stats.failed_files}, elapsed={elapsed:.2f}s"
        )
        self.event_bus.publish(RunFinished(
            stats=stats,
            completed_directories=self.completed_directories,
            failed_directories=self.failed_directories,
            elapsed_seconds=elapsed,
        ))
        return stats

    def _process_directory(self, directory: str, index: int, total: int) -> DirectoryStats:
        """Runs on a worker thread (or inline in sequential mode)."""
        worker_id = _worker_id()
        self.event_bus.publish(DirectoryStarted(
            directory=Path(directory), index=index, total=total, worker_id=worker_id
        ))
        return self.processor.process(Path(directory), worker_id=worker_id)

    def _run_sequential(self, pending: List[str]) -> None:
        total = len(pending)
        for index, directory in enumerate(pending, start=1):
            try:
                stats = self._process_directory(directory, index, total)
            except DirectoryError as exc:
                self._on_failed(directory, exc)
                continue
            except Exception as exc:
                self.logger.exception(f"Directory failed unexpectedly: {directory}")
                self._on_failed(directory, exc)
                continue
            self._on_completed(directory, stats)

    def _run_concurrent(self, pending: List[str]) -> None:
        total = len(pending)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix=WORKER_THREAD_PREFIX
        )
        finished = False
        try:
            futures = {
                executor.submit(self._process_directory, directory, index, total): directory
                for index, directory in enumerate(pending, start=1)
            }
            for future in concurrent.futures.as_completed(futures):
                directory = futures[future]
                try:
                    stats = future.result()
                except DirectoryError as exc:
                    self._on_failed(directory, exc)
                    continue
                except Exception as exc:
                    self.logger.exception(f"Directory worker failed unexpectedly: {directory}")
                    self._on_failed(directory, exc)
                    continue
                self._on_completed(directory, stats)
            finished = True
        except KeyboardInterrupt:
            self.logger.info("Ctrl+C detected - cancelling directories not yet started")
            raise
        finally:
            # Any escape from the loop drops directories that have not started
            executor.shutdown(wait=finished, cancel_futures=not finished)

    def _on_completed(self, directory: str, stats: DirectoryStats) -> None:
        try:
            self.tracker.mark_completed(directory)
        except ProgressFileError as exc:
            self.logger.warning(f"Failed to save progress after {directory}: {exc}")
        self.aggregator.merge(stats)
        self.completed_directories += 1
        self.logger.info(
            f"Directory completed: {directory} (files={stats.total_files}, processed={stats.processed_images}, "
            f"copied={stats.copied_files}, skipped={stats.skipped_images}, errors={stats.failed_files})"
        )
        self.event_bus.publish(DirectoryCompleted(
            directory=Path(directory), stats=stats, dry_run=self.config.dry_run
        ))

    def _on_failed(self, directory: str, exc: Exception) -> None:
        self.failed_directories += 1
        self.logger.error(f"Directory failed, will be retried next run: {directory}: {exc}")
        self.event_bus.publish(DirectoryFailed(directory=Path(directory), error_message=str(exc)))
