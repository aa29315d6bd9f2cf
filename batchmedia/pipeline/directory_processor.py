import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from batchmedia.config.models import RunConfig
from batchmedia.domain.errors import DirectoryError, MediaProcessingError
from batchmedia.domain.events import FileFailed, FileFinished, FileStarted
from batchmedia.domain.models import DirectoryStats, FileKind, FileRecord, WorkItem
from batchmedia.infrastructure.event_bus import EventBus
from batchmedia.pipeline.classifier import FileClassifier


class MediaPipeline(Protocol):
    def process(self, item: WorkItem) -> FileRecord:
        ...


class DirectoryProcessor:
    """Processes the immediate files of one directory, strictly in order.

    Results go into a DirectoryStats scope owned by the caller's worker;
    nothing here touches run-wide state except through events.
    """

    def __init__(
        self,
        config: RunConfig,
        event_bus: EventBus,
        classifier: FileClassifier,
        pipelines: Dict[FileKind, MediaPipeline],
    ):
        self.config = config
        self.event_bus = event_bus
        self.classifier = classifier
        self.pipelines = pipelines
        self.logger = logging.getLogger(__name__)

    def relative_dir(self, directory: Path) -> str:
        return directory.relative_to(self.config.input_dir).as_posix()

    def list_candidates(self, directory: Path) -> List[Tuple[Path, int]]:
        """Sorted (path, size) of the directory's own files that pass the filters."""
        candidates: List[Tuple[Path, int]] = []
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if not entry.is_file():
                        continue
                    path = Path(entry.path)
                    if self.classifier.is_candidate(path):
                        candidates.append((path, entry.stat().st_size))
        except OSError as exc:
            raise DirectoryError(f"Failed to read directory {directory}: {exc}") from exc
        candidates.sort(key=lambda candidate: candidate[0].name)
        return candidates

    def process(self, directory: Path, worker_id: int = 0, stats: Optional[DirectoryStats] = None) -> DirectoryStats:
        relative = self.relative_dir(directory)
        stats = stats if stats is not None else DirectoryStats(directory=relative)
        candidates = self.list_candidates(directory)
        total = len(candidates)

        if not self.config.dry_run:
            output_dir = self.config.output_dir / relative
            try:
                output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DirectoryError(f"Failed to create output directory {output_dir}: {exc}") from exc

        self.logger.info(f"Processing directory: {directory} ({total} files)")

        for position, (path, size) in enumerate(candidates, start=1):
            item = self.classifier.classify(path, size)
            if item is None:
                continue
            # Counted before routing so failed files still show up in the totals
            stats.count_file(size)
            self.event_bus.publish(FileStarted(
                path=item.source,
                kind=item.kind,
                position=position,
                total=total,
                size_bytes=size,
                worker_id=worker_id,
                output_path=item.output,
                dry_run=self.config.dry_run,
            ))

            if self.config.dry_run:
                percent = position / total * 100
                self.logger.info(
                    f"[DRY-RUN] [{position}/{total}] ({percent:.1f}%) Would process {item.kind.value}: "
                    f"{item.source} -> {item.output}"
                )
                continue

            record = self._process_file(item, stats)
            if record is not None:
                stats.add_record(record)
                self.event_bus.publish(FileFinished(record=record))

        return stats

    def _process_file(self, item: WorkItem, stats: DirectoryStats) -> Optional[FileRecord]:
        pipeline = self.pipelines[item.kind]
        try:
            return pipeline.process(item)
        except (MediaProcessingError, OSError) as exc:
            stats.mark_failed()
            self.logger.error(f"Failed to process {item.source}: {exc}")
            self.event_bus.publish(FileFailed(path=item.source, error_message=str(exc)))
            return None
