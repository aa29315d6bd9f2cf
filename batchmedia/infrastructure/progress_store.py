"""Durable per-directory progress for resumable runs.

The progress file is a JSON document under the output root::

    {"directories": [{"path": "...", "completed": true, "timestamp": "..."}],
     "last_update": "..."}

It is written atomically (temp file + rename) so a crash mid-write leaves the
previous snapshot intact.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
from pydantic import ValidationError

from batchmedia.domain.errors import ProgressFileError
from batchmedia.domain.models import ProgressState

logger = logging.getLogger(__name__)


def load_progress(progress_file: Path) -> ProgressState:
    """Returns the persisted state, or an empty one if the file does not exist."""
    if not progress_file.exists():
        return ProgressState()
    try:
        data = json.loads(progress_file.read_text(encoding="utf-8"))
        return ProgressState.model_validate(data)
    except (OSError, ValueError, ValidationError) as exc:
        raise ProgressFileError(f"Failed to load progress file {progress_file}: {exc}") from exc


def save_progress(state: ProgressState, progress_file: Path) -> None:
    """Stamps last_update and writes the state atomically."""
    state.last_update = datetime.now().astimezone()
    payload = {
        "directories": [entry.model_dump(mode="json", exclude_none=True) for entry in state.directories],
        "last_update": state.last_update.isoformat(),
    }
    progress_file.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{progress_file.name}.", suffix=".tmp", dir=str(progress_file.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, progress_file)
    except OSError as exc:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ProgressFileError(f"Failed to save progress file {progress_file}: {exc}") from exc


class ProgressTracker:
    """Owns the progress state of one run and its file.

    Only the scheduler thread calls mark_completed/save, which keeps writes
    to the progress file serialized. With persist=False (dry-run) the state
    lives in memory only.
    """

    def __init__(self, progress_file: Path, persist: bool = True):
        self.progress_file = progress_file
        self.persist = persist
        self.state = ProgressState()

    def load(self) -> ProgressState:
        self.state = load_progress(self.progress_file)
        return self.state

    def save(self) -> None:
        if self.persist:
            save_progress(self.state, self.progress_file)

    def reset(self) -> None:
        """Forgets all progress so the next load rescans the tree."""
        self.state = ProgressState()
        if self.persist and self.progress_file.exists():
            self.progress_file.unlink()
            logger.info(f"Progress file removed: {self.progress_file}")

    def resume_or_seed(self, scan: Callable[[], List[Path]]) -> bool:
        """Loads persisted progress; scans and persists a seed only when it is empty.

        Returns True when an existing directory list was reused.
        """
        self.load()
        if not self.state.is_empty():
            logger.info(
                f"Resuming from {self.progress_file}: "
                f"{len(self.state.uncompleted())}/{len(self.state.directories)} directories pending"
            )
            return True

        directories = scan()
        self.state.seed(directories)
        self.save()
        logger.info(f"Scanned {len(directories)} directories")
        return False

    def mark_completed(self, directory: str, when: Optional[datetime] = None) -> None:
        if not self.state.mark_completed(directory, when):
            logger.warning(f"Directory not found in progress list: {directory}")
            return
        self.save()

    def uncompleted(self) -> List[str]:
        return self.state.uncompleted()
