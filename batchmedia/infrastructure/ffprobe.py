import subprocess
import json
from pathlib import Path
from typing import Any, Dict

from batchmedia.domain.errors import ProbeError
from batchmedia.domain.models import VideoMetadata

HDR_PRIMARIES = {"bt2020"}
HDR_TRANSFERS = {"smpte2084", "arib-std-b67"}


class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ProbeError(f"ffprobe could not be started for {file_path}: {exc}") from exc
        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {file_path}: {result.stderr.strip()}")

        try:
            return json.loads(result.stdout)
        except ValueError as exc:
            raise ProbeError(f"ffprobe returned invalid JSON for {file_path}: {exc}") from exc

    def probe(self, file_path: Path) -> VideoMetadata:
        data = self.get_stream_info(file_path)
        streams = data.get("streams", []) or []

        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeError(f"No video stream found in {file_path}")

        has_audio = any(s.get("codec_type") == "audio" for s in streams)

        primaries = video_stream.get("color_primaries")
        transfer = video_stream.get("color_transfer")
        is_hdr = primaries in HDR_PRIMARIES and transfer in HDR_TRANSFERS

        return VideoMetadata(
            width=int(video_stream.get("width", 0)),
            height=int(video_stream.get("height", 0)),
            codec=video_stream.get("codec_name", "unknown"),
            has_audio=has_audio,
            color_primaries=primaries,
            color_transfer=transfer,
            color_space=video_stream.get("color_space"),
            is_hdr=is_hdr,
        )
