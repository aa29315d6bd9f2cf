import threading

from batchmedia.domain.models import DirectoryStats, GlobalStats


class StatsAggregator:
    """Run-wide statistics, safe to update from several worker threads.

    Workers fill a private DirectoryStats per directory and the scheduler
    merges it once the directory is done. Counters only ever grow, so the
    totals do not depend on the order in which directories finish.
    """

    def __init__(self):
        self._stats = GlobalStats()
        self._lock = threading.Lock()

    def _directory(self, relative_dir: str) -> DirectoryStats:
        scope = self._stats.directories.get(relative_dir)
        if scope is None:
            scope = DirectoryStats(directory=relative_dir)
            self._stats.directories[relative_dir] = scope
        return scope

    def merge(self, directory_stats: DirectoryStats) -> None:
        """Folds a worker's private directory scope into the run totals."""
        with self._lock:
            self._stats.absorb(directory_stats)
            self._directory(directory_stats.directory).absorb(directory_stats)

    def snapshot(self) -> GlobalStats:
        with self._lock:
            return self._stats.model_copy(deep=True)
