import concurrent.futures
import threading
import pytest
from pathlib import Path
from unittest.mock import MagicMock

from batchmedia.domain.errors import DirectoryError
from batchmedia.domain.events import (
    DirectoryCompleted,
    DirectoryFailed,
    DirectoryStarted,
    RunFinished,
    RunStarted,
)
from batchmedia.domain.models import DirectoryStats
from batchmedia.infrastructure.progress_store import ProgressTracker
from batchmedia.pipeline.orchestrator import Orchestrator, _worker_id


class FakeProcessor:
    """Returns one counted file per directory; fails the directories it is told to."""

    def __init__(self, input_dir, fail=(), crash=()):
        self.input_dir = input_dir
        self.fail = set(fail)
        self.crash = set(crash)
        self.calls = []
        self.threads = set()
        self._lock = threading.Lock()

    def process(self, directory, worker_id=0, stats=None):
        with self._lock:
            self.calls.append(directory)
            self.threads.add(threading.current_thread().name)
        if directory.name in self.fail:
            raise DirectoryError(f"Failed to read directory {directory}")
        if directory.name in self.crash:
            raise RuntimeError("unexpected")
        relative = directory.relative_to(self.input_dir).as_posix()
        result = DirectoryStats(directory=relative)
        result.count_file(100)
        return result


@pytest.fixture
def three_dirs(test_input_dir):
    for name in ("a", "b", "c"):
        (test_input_dir / name).mkdir()
    return test_input_dir


def _events(event_bus):
    events = []
    for event_type in (RunStarted, DirectoryStarted, DirectoryCompleted, DirectoryFailed, RunFinished):
        event_bus.subscribe(event_type, events.append)
    return events


def test_sequential_run(make_config, event_bus, three_dirs):
    config = make_config(workers=1)
    processor = FakeProcessor(three_dirs)
    events = _events(event_bus)

    stats = Orchestrator(config, event_bus, processor=processor).run()

    assert [p.name for p in processor.calls] == ["a", "b", "c"]
    assert stats.total_files == 3
    assert set(stats.directories) == {"a", "b", "c"}
    assert isinstance(events[0], RunStarted)
    assert events[0].total_directories == 3
    assert isinstance(events[-1], RunFinished)
    assert events[-1].completed_directories == 3
    assert config.progress_file.exists()


def test_failed_directory_stays_pending(make_config, event_bus, three_dirs):
    config = make_config(workers=1)
    events = _events(event_bus)

    orchestrator = Orchestrator(config, event_bus, processor=FakeProcessor(three_dirs, fail={"b"}))
    stats = orchestrator.run()

    assert stats.total_files == 2
    assert "b" not in stats.directories
    assert orchestrator.failed_directories == 1
    failed = [e for e in events if isinstance(e, DirectoryFailed)]
    assert [e.directory.name for e in failed] == ["b"]

    tracker = ProgressTracker(config.progress_file)
    tracker.load()
    assert tracker.uncompleted() == [str(three_dirs / "b")]


def test_unexpected_error_fails_only_that_directory(make_config, event_bus, three_dirs, caplog):
    config = make_config(workers=1)

    orchestrator = Orchestrator(config, event_bus, processor=FakeProcessor(three_dirs, crash={"a"}))
    stats = orchestrator.run()

    assert orchestrator.completed_directories == 2
    assert stats.total_files == 2
    assert "Directory failed unexpectedly" in caplog.text


def test_resume_processes_only_pending(make_config, event_bus, three_dirs):
    config = make_config(workers=1)
    Orchestrator(config, event_bus, processor=FakeProcessor(three_dirs, fail={"c"})).run()

    processor = FakeProcessor(three_dirs)
    scanner = MagicMock()
    stats = Orchestrator(config, event_bus, scanner=scanner, processor=processor).run()

    scanner.work_units.assert_not_called()
    assert [p.name for p in processor.calls] == ["c"]
    assert stats.total_files == 1


def test_reset_progress_rescans(make_config, event_bus, three_dirs):
    config = make_config(workers=1)
    Orchestrator(config, event_bus, processor=FakeProcessor(three_dirs)).run()

    processor = FakeProcessor(three_dirs)
    Orchestrator(config, event_bus, processor=processor).run(reset_progress=True)

    assert len(processor.calls) == 3


def test_concurrent_run_uses_worker_threads(make_config, event_bus, three_dirs):
    config = make_config(workers=3)
    processor = FakeProcessor(three_dirs, fail={"b"})
    events = _events(event_bus)

    orchestrator = Orchestrator(config, event_bus, processor=processor)
    stats = orchestrator.run()

    assert all(name.startswith("worker_") for name in processor.threads)
    assert stats.total_files == 2
    assert orchestrator.completed_directories == 2
    assert orchestrator.failed_directories == 1
    started = [e for e in events if isinstance(e, DirectoryStarted)]
    assert sorted(e.index for e in started) == [1, 2, 3]
    assert all(1 <= e.worker_id <= 3 for e in started)


def test_dry_run_persists_nothing(make_config, event_bus, three_dirs):
    config = make_config(dry_run=True, workers=2)
    events = _events(event_bus)

    Orchestrator(config, event_bus, processor=FakeProcessor(three_dirs)).run()

    assert not config.progress_file.exists()
    completed = [e for e in events if isinstance(e, DirectoryCompleted)]
    assert len(completed) == 3
    assert all(e.dry_run for e in completed)


def test_worker_id_from_thread_name():
    assert _worker_id() == 0

    seen = []
    thread = threading.Thread(target=lambda: seen.append(_worker_id()), name="worker_4")
    thread.start()
    thread.join()
    assert seen == [5]


@pytest.fixture
def shutdown_calls(monkeypatch):
    """Records how the orchestrator shuts its worker pool down."""
    calls = []

    class RecordingExecutor(concurrent.futures.ThreadPoolExecutor):
        def shutdown(self, wait=True, *, cancel_futures=False):
            calls.append((wait, cancel_futures))
            super().shutdown(wait=wait, cancel_futures=cancel_futures)

    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", RecordingExecutor)
    return calls


def test_concurrent_run_waits_for_workers(make_config, event_bus, three_dirs, shutdown_calls):
    Orchestrator(make_config(workers=2), event_bus, processor=FakeProcessor(three_dirs)).run()

    assert shutdown_calls == [(True, False)]


@pytest.mark.parametrize("error", [RuntimeError("report failed"), KeyboardInterrupt()])
def test_scheduler_error_cancels_pending_directories(make_config, event_bus, three_dirs, shutdown_calls, error):
    def explode(event):
        raise error

    event_bus.subscribe(DirectoryCompleted, explode)
    orchestrator = Orchestrator(make_config(workers=2), event_bus, processor=FakeProcessor(three_dirs))

    with pytest.raises(type(error)):
        orchestrator.run()

    assert shutdown_calls == [(False, True)]
    assert orchestrator.completed_directories == 1
