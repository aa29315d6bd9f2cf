import os
from pathlib import Path
from typing import List
from batchmedia.domain.errors import ScanError

HIDDEN_PREFIX = "."


class DirectoryScanner:
    """Walks the input tree once and lists its directories deepest-first.

    Files are read later per directory without recursion, so every directory
    must be its own unit of work; the deepest-first order schedules leaves
    before their ancestors.
    """

    def scan(self, root_dir: Path) -> List[Path]:
        """Returns every non-hidden directory below root_dir, deepest first.

        The root itself is excluded unless it has no subdirectories, in which
        case it is the only unit of work.
        """
        directories: List[Path] = []

        def _on_error(err: OSError):
            raise ScanError(f"Failed to scan {err.filename}: {err.strerror or err}") from err

        for root, dirs, _files in os.walk(str(root_dir), onerror=_on_error):
            # Hidden directories are pruned, not just skipped
            dirs[:] = sorted(d for d in dirs if not d.startswith(HIDDEN_PREFIX))
            root_path = Path(root)
            for name in dirs:
                directories.append(root_path / name)

        # list.sort is stable: siblings keep walk order within a depth
        directories.sort(key=lambda p: str(p).count(os.sep), reverse=True)

        if not directories:
            return [Path(root_dir)]
        return directories

    def work_units(self, root_dir: Path) -> List[Path]:
        """scan() plus the root itself when it directly holds files."""
        units = self.scan(root_dir)
        root_path = Path(root_dir)
        if units == [root_path]:
            return units
        try:
            with os.scandir(root_path) as entries:
                has_files = any(entry.is_file() for entry in entries)
        except OSError as exc:
            raise ScanError(f"Failed to scan {root_path}: {exc}") from exc
        if has_files:
            units.append(root_path)
        return units
