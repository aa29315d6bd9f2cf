from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

Dimensions = Tuple[int, int]


class FileKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    COPY = "copy"


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    HEIC = "heic"
    PNG = "png"


class RecordKind(str, Enum):
    PROCESSED = "processed"
    VIDEO_PROCESSED = "video_processed"
    COPIED = "copied"
    SKIPPED = "skipped"


class WorkItem(BaseModel):
    """A classified file waiting for its pipeline."""

    source: Path
    output: Path
    relative_path: str
    relative_dir: str
    kind: FileKind
    size_bytes: int


class FileRecord(BaseModel):
    """Outcome of one file, created once at the end of its pipeline."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: RecordKind
    input_size: int
    output_size: int
    original_size: Optional[Dimensions] = None
    new_size: Optional[Dimensions] = None
    compression_ratio: float = 1.0

    @classmethod
    def build(
        cls,
        path: str,
        kind: RecordKind,
        input_size: int,
        output_size: int,
        original_size: Optional[Dimensions] = None,
        new_size: Optional[Dimensions] = None,
    ) -> "FileRecord":
        if kind in (RecordKind.COPIED, RecordKind.SKIPPED) or input_size <= 0:
            ratio = 1.0
        else:
            ratio = output_size / input_size
        return cls(
            path=path,
            kind=kind,
            input_size=input_size,
            output_size=output_size,
            original_size=original_size,
            new_size=new_size,
            compression_ratio=ratio,
        )


class StatsCounters(BaseModel):
    total_files: int = 0
    processed_images: int = 0
    copied_files: int = 0
    skipped_images: int = 0
    failed_files: int = 0
    total_input_size: int = 0
    total_output_size: int = 0
    files: List[FileRecord] = Field(default_factory=list)

    def count_file(self, size_bytes: int) -> None:
        self.total_files += 1
        self.total_input_size += size_bytes

    def add_record(self, record: FileRecord) -> None:
        if record.kind in (RecordKind.PROCESSED, RecordKind.VIDEO_PROCESSED):
            self.processed_images += 1
        elif record.kind == RecordKind.COPIED:
            self.copied_files += 1
        else:
            self.skipped_images += 1
        self.total_output_size += record.output_size
        self.files.append(record)

    def mark_failed(self) -> None:
        self.failed_files += 1

    def absorb(self, other: "StatsCounters") -> None:
        """Adds another scope's counters and records to this one."""
        self.total_files += other.total_files
        self.processed_images += other.processed_images
        self.copied_files += other.copied_files
        self.skipped_images += other.skipped_images
        self.failed_files += other.failed_files
        self.total_input_size += other.total_input_size
        self.total_output_size += other.total_output_size
        self.files.extend(other.files)

    @property
    def space_saved_percent(self) -> float:
        if self.total_input_size <= 0:
            return 0.0
        return (1.0 - self.total_output_size / self.total_input_size) * 100


class DirectoryStats(StatsCounters):
    directory: str = ""


class GlobalStats(StatsCounters):
    directories: Dict[str, DirectoryStats] = Field(default_factory=dict)


class VideoMetadata(BaseModel):
    width: int
    height: int
    codec: str = "unknown"
    has_audio: bool = False
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    color_space: Optional[str] = None
    is_hdr: bool = False


class DirectoryProgress(BaseModel):
    path: str
    completed: bool = False
    timestamp: Optional[datetime] = None


class ProgressState(BaseModel):
    directories: List[DirectoryProgress] = Field(default_factory=list)
    last_update: Optional[datetime] = None

    def is_empty(self) -> bool:
        return not self.directories

    def seed(self, paths: List[Path]) -> None:
        self.directories = [DirectoryProgress(path=str(p)) for p in paths]

    def mark_completed(self, path: str, when: Optional[datetime] = None) -> bool:
        """Marks the matching entry completed; returns False if no entry matches."""
        for entry in self.directories:
            if entry.path == path:
                entry.completed = True
                entry.timestamp = when or datetime.now().astimezone()
                return True
        return False

    def uncompleted(self) -> List[str]:
        return [entry.path for entry in self.directories if not entry.completed]
