import subprocess
import re
import logging
import time
from collections import deque
from pathlib import Path
from typing import List, Optional
from batchmedia.domain.errors import TranscodeError
from batchmedia.domain.events import TranscodeProgress
from batchmedia.infrastructure.event_bus import EventBus

# Lines kept from ffmpeg output for the error message of a failed run
OUTPUT_TAIL_LINES = 15


class FFmpegAdapter:
    """Runs a prepared ffmpeg command and reports its progress."""

    def __init__(self, event_bus: Optional[EventBus] = None, debug: bool = False):
        self.event_bus = event_bus
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def run(self, cmd: List[str], source: Path) -> None:
        """Executes ffmpeg synchronously; raises TranscodeError on a non-zero exit."""
        filename = source.name
        start_time = time.monotonic()

        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1
            )
        except OSError as exc:
            raise TranscodeError(f"ffmpeg could not be started for {filename}: {exc}") from exc

        # ffmpeg prints 'Duration: 00:01:02.50' once, then 'time=00:00:10.00' while encoding
        duration_regex = re.compile(r"Duration:\s*(\d+):(\d+):(\d+\.\d+)")
        time_regex = re.compile(r"time=(\d+):(\d+):(\d+\.\d+)")
        total_duration = 0.0
        tail: "deque[str]" = deque(maxlen=OUTPUT_TAIL_LINES)

        if process.stdout:
            for line in process.stdout:
                tail.append(line.rstrip())

                if total_duration <= 0:
                    match = duration_regex.search(line)
                    if match:
                        h, m, s = map(float, match.groups())
                        total_duration = h * 3600 + m * 60 + s
                        continue

                match = time_regex.search(line)
                if match and total_duration > 0 and self.event_bus:
                    h, m, s = map(float, match.groups())
                    current_seconds = h * 3600 + m * 60 + s
                    progress_percent = min(100.0, (current_seconds / total_duration) * 100.0)
                    self.event_bus.publish(TranscodeProgress(path=source, progress_percent=progress_percent))

        process.wait()
        elapsed = time.monotonic() - start_time

        if process.returncode != 0:
            self.logger.debug(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            details = " | ".join(line for line in tail if line)
            raise TranscodeError(f"ffmpeg exited with code {process.returncode} for {filename}: {details}")

        self.logger.debug(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")
