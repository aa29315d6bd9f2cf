import threading
from batchmedia.domain.models import DirectoryStats, FileRecord, RecordKind
from batchmedia.pipeline.stats import StatsAggregator


def _directory(name: str, files: int, size: int) -> DirectoryStats:
    stats = DirectoryStats(directory=name)
    for i in range(files):
        stats.count_file(size)
        stats.add_record(FileRecord.build(
            path=f"{name}/{i}.jpg", kind=RecordKind.PROCESSED, input_size=size, output_size=size // 2,
        ))
    return stats


def test_merge_updates_global_and_directory_scope():
    aggregator = StatsAggregator()
    aggregator.merge(_directory("a", 2, 100))
    aggregator.merge(_directory("b", 1, 50))

    snapshot = aggregator.snapshot()

    assert snapshot.total_files == 3
    assert snapshot.processed_images == 3
    assert snapshot.total_input_size == 250
    assert snapshot.total_output_size == 125
    assert set(snapshot.directories) == {"a", "b"}
    assert snapshot.directories["a"].total_files == 2
    assert snapshot.directories["b"].total_output_size == 25


def test_merge_carries_failures_and_copies():
    scope = DirectoryStats(directory="a")
    scope.count_file(10)
    scope.add_record(FileRecord.build(path="a/x.txt", kind=RecordKind.COPIED, input_size=10, output_size=10))
    scope.count_file(5)
    scope.mark_failed()

    aggregator = StatsAggregator()
    aggregator.merge(scope)
    snapshot = aggregator.snapshot()

    assert snapshot.total_files == 2
    assert snapshot.copied_files == 1
    assert snapshot.failed_files == 1
    assert snapshot.total_input_size == 15
    assert snapshot.directories["a"].failed_files == 1
    assert [r.path for r in snapshot.directories["a"].files] == ["a/x.txt"]


def test_snapshot_is_detached():
    aggregator = StatsAggregator()
    aggregator.merge(_directory("a", 1, 10))

    snapshot = aggregator.snapshot()
    snapshot.total_files = 99
    snapshot.directories["a"].total_files = 99

    fresh = aggregator.snapshot()
    assert fresh.total_files == 1
    assert fresh.directories["a"].total_files == 1


def test_concurrent_merges_sum_exactly():
    aggregator = StatsAggregator()

    def worker(n):
        for i in range(20):
            aggregator.merge(_directory(f"d{n}-{i}", 3, 10))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    snapshot = aggregator.snapshot()
    assert snapshot.total_files == 6 * 20 * 3
    assert snapshot.total_input_size == 6 * 20 * 3 * 10
    assert len(snapshot.directories) == 120
    assert sum(d.total_files for d in snapshot.directories.values()) == snapshot.total_files
