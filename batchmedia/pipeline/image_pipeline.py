import io
import logging
from pathlib import Path
from typing import Optional

import pillow_heif
from PIL import Image

from batchmedia.config.models import RunConfig
from batchmedia.domain.errors import ImageProcessingError, MetadataError
from batchmedia.domain.models import FileRecord, ImageFormat, RecordKind, WorkItem
from batchmedia.infrastructure.file_ops import copy_preserving_mtime, preserve_mtime
from batchmedia.infrastructure.jpeg_segments import (
    extract_exif,
    insert_exif,
    normalize_exif,
    read_orientation,
    set_orientation,
)
from batchmedia.pipeline.classifier import image_format_of
from batchmedia.pipeline.thresholds import ThresholdPolicy, compute_target_size

pillow_heif.register_heif_opener()

JPEG_QUALITY = 85
NORMAL_ORIENTATION = 1

# EXIF orientation value -> transform that brings the pixels upright
ORIENTATION_TRANSFORMS = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def apply_orientation(image: Image.Image, orientation: Optional[int]) -> Image.Image:
    """Returns the upright image; unknown or absent orientation is left alone."""
    transform = ORIENTATION_TRANSFORMS.get(orientation) if orientation else None
    if transform is None:
        return image
    return image.transpose(transform)


class ImagePipeline:
    """Decode, orient, resize and re-encode one image as JPEG, keeping its EXIF."""

    def __init__(self, config: RunConfig, policy: Optional[ThresholdPolicy] = None):
        self.config = config
        self.policy = policy or ThresholdPolicy(config)
        self.logger = logging.getLogger(__name__)

    def _decode(self, data: bytes, source: Path) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            return image
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageProcessingError(f"failed to decode image {source}: {exc}") from exc

    def _extract_metadata(self, data: bytes, fmt: ImageFormat, image: Image.Image) -> Optional[bytes]:
        """Returns bare TIFF EXIF bytes; PNG carries none."""
        if fmt == ImageFormat.JPEG:
            return extract_exif(data)
        if fmt == ImageFormat.HEIC:
            blob = image.info.get("exif")
            if not blob:
                raise MetadataError("EXIF data not found")
            return normalize_exif(blob)
        return None

    def _encode(self, image: Image.Image, source: Path) -> bytes:
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        try:
            image.save(buffer, format="JPEG", quality=JPEG_QUALITY)
        except (OSError, ValueError) as exc:
            raise ImageProcessingError(f"failed to encode image {source}: {exc}") from exc
        return buffer.getvalue()

    def _copy_through(self, item: WorkItem, fmt: ImageFormat) -> int:
        # A skipped HEIC is not re-encoded, so it keeps its own extension
        target = item.output
        if fmt == ImageFormat.HEIC:
            target = item.output.with_suffix(item.source.suffix)
        try:
            return copy_preserving_mtime(item.source, target)
        except OSError as exc:
            raise ImageProcessingError(f"failed to copy skipped image {item.source}: {exc}") from exc

    def process(self, item: WorkItem) -> FileRecord:
        source = item.source
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise ImageProcessingError(f"failed to read input file {source}: {exc}") from exc

        fmt = image_format_of(source)
        image = self._decode(data, source)

        exif: Optional[bytes] = None
        orientation: Optional[int] = None
        try:
            exif = self._extract_metadata(data, fmt, image)
            if exif:
                orientation = read_orientation(exif)
        except MetadataError as exc:
            self.logger.warning(f"Unable to extract EXIF information from {source}: {exc}")
            exif = None

        image = apply_orientation(image, orientation)
        width, height = image.size

        if self.policy.should_skip(width, height):
            self.logger.info(
                f"Skipping {source}: resolution {width}x{height} is outside threshold range "
                f"(size: {item.size_bytes} bytes)"
            )
            output_size = self._copy_through(item, fmt)
            return FileRecord.build(
                path=item.relative_path,
                kind=RecordKind.SKIPPED,
                input_size=item.size_bytes,
                output_size=output_size,
                original_size=(width, height),
                new_size=(width, height),
            )

        new_width, new_height = compute_target_size(width, height, self.config)
        if (new_width, new_height) != (width, height):
            image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

        encoded = self._encode(image, source)
        if exif:
            try:
                encoded = insert_exif(encoded, set_orientation(exif, NORMAL_ORIENTATION))
            except MetadataError as exc:
                self.logger.warning(f"EXIF not carried over for {source}: {exc}")

        try:
            item.output.parent.mkdir(parents=True, exist_ok=True)
            item.output.write_bytes(encoded)
            preserve_mtime(source, item.output)
        except OSError as exc:
            raise ImageProcessingError(f"failed to write output file {item.output}: {exc}") from exc

        record = FileRecord.build(
            path=item.relative_path,
            kind=RecordKind.PROCESSED,
            input_size=item.size_bytes,
            output_size=len(encoded),
            original_size=(width, height),
            new_size=(new_width, new_height),
        )
        self.logger.info(
            f"Processing completed: {source} ({width}x{height} -> {new_width}x{new_height}, "
            f"{item.size_bytes} bytes -> {len(encoded)} bytes, ratio: {record.compression_ratio:.2f})"
        )
        return record
