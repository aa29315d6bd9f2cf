from pathlib import Path
from typing import List, Optional

from batchmedia.config.models import RunConfig
from batchmedia.domain.models import FileKind, ImageFormat, WorkItem

IMAGE_EXTENSIONS = {"jpg", "jpeg", "heic", "png"}
VIDEO_EXTENSIONS = {"mp4", "avi", "mkv", "mov", "wmv", "flv", "webm", "m4v"}
# AppleDouble files written by macOS on foreign filesystems
METADATA_FILE_PREFIX = "._"
JPEG_SUFFIX = ".jpg"


def extension_of(path: Path) -> str:
    """Lowercased extension without the leading dot."""
    return path.suffix.lower().lstrip(".")


def image_format_of(path: Path) -> ImageFormat:
    ext = extension_of(path)
    if ext == "heic":
        return ImageFormat.HEIC
    if ext == "png":
        return ImageFormat.PNG
    return ImageFormat.JPEG


class FileClassifier:
    """Maps a directory entry to a WorkItem, or None when it is filtered out."""

    def __init__(self, config: RunConfig):
        self.input_root = config.input_dir
        self.output_root = config.output_dir
        self.allowed: List[str] = list(config.extensions)
        self.video_disabled = config.video.disabled

    def is_candidate(self, path: Path) -> bool:
        if path.name.startswith(METADATA_FILE_PREFIX):
            return False
        if self.allowed and extension_of(path) not in self.allowed:
            return False
        return True

    def kind_of(self, path: Path) -> FileKind:
        ext = extension_of(path)
        if ext in IMAGE_EXTENSIONS:
            return FileKind.IMAGE
        if ext in VIDEO_EXTENSIONS and not self.video_disabled:
            return FileKind.VIDEO
        return FileKind.COPY

    def output_path_for(self, path: Path, kind: FileKind) -> Path:
        relative = path.relative_to(self.input_root)
        output = self.output_root / relative
        if kind == FileKind.IMAGE and image_format_of(path) == ImageFormat.HEIC:
            output = output.with_suffix(JPEG_SUFFIX)
        return output

    def classify(self, path: Path, size_bytes: int) -> Optional[WorkItem]:
        if not self.is_candidate(path):
            return None
        kind = self.kind_of(path)
        relative = path.relative_to(self.input_root)
        return WorkItem(
            source=path,
            output=self.output_path_for(path, kind),
            relative_path=relative.as_posix(),
            relative_dir=relative.parent.as_posix(),
            kind=kind,
            size_bytes=size_bytes,
        )
