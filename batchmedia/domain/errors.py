"""Exception hierarchy for the batch pipeline.

Errors are grouped by the scope they abort:

- startup (``ConfigError``, ``ScanError``, ``ProgressFileError``): the run never starts
- directory (``DirectoryError``): the directory stays uncompleted and is retried next run
- file (``MediaProcessingError`` subclasses): the file is logged and left out of the stats
- soft (``MetadataError``, ``ProbeError``): logged as warnings, processing continues
"""


class BatchMediaError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(BatchMediaError):
    """Raised when the run configuration is invalid."""


class ScanError(BatchMediaError):
    """Raised when the input tree cannot be walked."""


class ProgressFileError(BatchMediaError):
    """Raised when the progress file cannot be read or written."""


class DirectoryError(BatchMediaError):
    """Raised when a whole directory cannot be processed."""


class MediaProcessingError(BatchMediaError):
    """Raised when a single file fails in its pipeline."""


class ImageProcessingError(MediaProcessingError):
    """Raised when an image cannot be read, decoded, encoded or written."""


class TranscodeError(MediaProcessingError):
    """Raised when ffmpeg fails for every transcode strategy."""


class MetadataError(BatchMediaError):
    """Raised when an EXIF segment is missing or malformed."""


class ProbeError(BatchMediaError):
    """Raised when ffprobe cannot read a file."""
