"""Video transcoding: probe, threshold check, parameter building and retry policy.

The ffmpeg parameter set is built here; running it belongs to FFmpegAdapter.
Audio handling is the only thing a retry changes, so it is expressed as an
ordered pair of strategies rather than as edits to a shared command.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from batchmedia.config.models import RunConfig
from batchmedia.domain.errors import ProbeError, TranscodeError
from batchmedia.domain.models import FileRecord, RecordKind, VideoMetadata, WorkItem
from batchmedia.infrastructure.ffmpeg import FFmpegAdapter
from batchmedia.infrastructure.ffprobe import FFprobeAdapter
from batchmedia.infrastructure.file_ops import copy_preserving_mtime, preserve_mtime
from batchmedia.pipeline.thresholds import ThresholdPolicy

# Used when ffprobe cannot read the source
FALLBACK_DIMENSIONS = (1920, 1080)
# Containers that understand the hvc1 tag and the faststart flag
MP4_FAMILY = {".mp4", ".mov", ".m4v"}


class AudioStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    args: Tuple[str, ...]


COPY_AUDIO = AudioStrategy(name="copy", args=("-c:a", "copy"))
REENCODE_AUDIO = AudioStrategy(name="aac", args=("-c:a", "aac", "-b:a", "192k"))


class TranscodePolicy(BaseModel):
    """Audio stream copy first; AAC re-encode only if that fails and audio exists."""

    model_config = ConfigDict(frozen=True)

    primary: AudioStrategy = COPY_AUDIO
    fallback: AudioStrategy = REENCODE_AUDIO

    def strategies(self, has_audio: bool) -> List[Optional[AudioStrategy]]:
        if not has_audio:
            return [None]
        return [self.primary, self.fallback]


def _even(value: float) -> int:
    return max(2, int(round(value)) // 2 * 2)


def build_scale_filter(config: RunConfig, width: int, height: int) -> Optional[str]:
    """Explicit resolution wins over ratio, ratio over width."""
    if config.video.resolution:
        return config.video.resolution.replace("x", ":")
    if config.scaling_ratio > 0:
        return f"{_even(width * config.scaling_ratio)}:{_even(height * config.scaling_ratio)}"
    if config.width > 0:
        return f"{config.width}:-2"
    return None


def build_encode_args(config: RunConfig, metadata: VideoMetadata, container: str) -> List[str]:
    video = config.video
    args = ["-c:v", video.codec, "-preset", video.preset]

    if video.bitrate:
        args.extend(["-b:v", video.bitrate])
    elif video.crf > 0:
        args.extend(["-crf", str(video.crf)])

    mp4_family = container.lower() in MP4_FAMILY
    if video.codec == "libx265":
        args.extend(["-pix_fmt", "yuv420p10le", "-profile:v", "main10", "-level", "5.1"])
        if metadata.is_hdr:
            args.extend([
                "-x265-params",
                f"hdr-opt=1:repeat-headers=1:colorprim=bt2020:transfer={metadata.color_transfer}:colormatrix=bt2020nc",
            ])
        if mp4_family:
            args.extend(["-tag:v", "hvc1"])
    elif video.codec == "libx264":
        args.extend(["-pix_fmt", "yuv420p", "-profile:v", "high", "-level", "4.1"])
        if mp4_family:
            args.extend(["-movflags", "+faststart"])

    if metadata.is_hdr:
        args.extend([
            "-color_primaries", "bt2020",
            "-color_trc", metadata.color_transfer or "smpte2084",
            "-colorspace", "bt2020nc",
        ])
    else:
        args.extend(["-color_primaries", "bt709", "-color_trc", "bt709", "-colorspace", "bt709"])
    return args


def build_command(
    source: Path,
    output: Path,
    encode_args: List[str],
    scale_filter: Optional[str],
    audio: Optional[AudioStrategy],
    audio_optional: bool = False,
) -> List[str]:
    cmd = ["ffmpeg", "-y", "-i", str(source), "-map", "0:v:0"]
    if audio is not None:
        cmd.extend(["-map", "0:a?" if audio_optional else "0:a"])
    if scale_filter:
        cmd.extend(["-vf", f"scale={scale_filter}"])
    cmd.extend(encode_args)
    if audio is None:
        cmd.append("-an")
    else:
        cmd.extend(audio.args)
    cmd.append(str(output))
    return cmd


class VideoPipeline:
    def __init__(
        self,
        config: RunConfig,
        ffprobe: FFprobeAdapter,
        ffmpeg: FFmpegAdapter,
        policy: Optional[ThresholdPolicy] = None,
        transcode_policy: Optional[TranscodePolicy] = None,
    ):
        self.config = config
        self.ffprobe = ffprobe
        self.ffmpeg = ffmpeg
        self.policy = policy or ThresholdPolicy(config)
        self.transcode_policy = transcode_policy or TranscodePolicy()
        self.logger = logging.getLogger(__name__)

    def _probe(self, source: Path) -> Tuple[VideoMetadata, bool]:
        """Returns metadata and whether it came from ffprobe."""
        try:
            return self.ffprobe.probe(source), True
        except ProbeError as exc:
            self.logger.warning(f"Could not get video resolution for {source}, proceeding with defaults: {exc}")
            width, height = FALLBACK_DIMENSIONS
            return VideoMetadata(width=width, height=height, has_audio=True), False

    def process(self, item: WorkItem) -> FileRecord:
        source = item.source
        metadata, probed = self._probe(source)
        width, height = metadata.width, metadata.height

        if self.policy.should_skip(width, height):
            self.logger.info(
                f"Skipping video (resolution {width}x{height} is outside threshold range): "
                f"{source} (size: {item.size_bytes} bytes)"
            )
            try:
                output_size = copy_preserving_mtime(source, item.output)
            except OSError as exc:
                raise TranscodeError(f"failed to copy skipped video {source}: {exc}") from exc
            return FileRecord.build(
                path=item.relative_path,
                kind=RecordKind.SKIPPED,
                input_size=item.size_bytes,
                output_size=output_size,
                original_size=(width, height),
                new_size=(width, height),
            )

        item.output.parent.mkdir(parents=True, exist_ok=True)
        scale_filter = build_scale_filter(self.config, width, height)
        encode_args = build_encode_args(self.config, metadata, item.output.suffix)
        strategies = self.transcode_policy.strategies(metadata.has_audio)

        for attempt, audio in enumerate(strategies, start=1):
            cmd = build_command(source, item.output, encode_args, scale_filter, audio, audio_optional=not probed)
            try:
                self.ffmpeg.run(cmd, source)
                break
            except TranscodeError as exc:
                if item.output.exists():
                    item.output.unlink()
                if attempt == len(strategies):
                    raise
                self.logger.warning(
                    f"Transcode failed for {source} with audio '{audio.name if audio else 'none'}', "
                    f"retrying with '{strategies[attempt].name}': {exc}"
                )

        try:
            output_size = item.output.stat().st_size
            preserve_mtime(source, item.output)
        except OSError as exc:
            raise TranscodeError(f"failed to finalize output {item.output}: {exc}") from exc

        record = FileRecord.build(
            path=item.relative_path,
            kind=RecordKind.VIDEO_PROCESSED,
            input_size=item.size_bytes,
            output_size=output_size,
            original_size=(width, height) if probed else None,
        )
        self.logger.info(
            f"Video processing completed: {source} ({item.size_bytes} bytes -> {output_size} bytes, "
            f"ratio: {record.compression_ratio:.2f})"
        )
        return record
