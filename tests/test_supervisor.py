import signal
import threading
import time
from typing import List

import pytest

from totalrecall.config import MergedSettings
from totalrecall.errors import BackupCancelled, BackupLaunchError, FatalWorkerError
from totalrecall.worker import BackupWorker
from totalrecall.worker.ingest import IngestionOutcome

FAST_TIMING = {
    "TOTALRECALL_STARTUP_GRACE_SECONDS": "0",
    "TOTALRECALL_BACKUP_INTERVAL_SECONDS": "0.01",
    "TOTALRECALL_SIGNAL_POLL_INTERVAL": "0.01",
}


class StubSupervisor:
    def __init__(self, errors: List[Exception] = None) -> None:
        self.errors = list(errors or [])
        self.calls = 0

    def run_backup(self) -> int:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return 0


class StubIngestor:
    def __init__(self, stop_after: int) -> None:
        self.stop_after = stop_after
        self.calls = 0
        self.worker = None

    def ingest(self) -> IngestionOutcome:
        self.calls += 1
        if self.calls >= self.stop_after:
            self.worker.request_shutdown()
        return IngestionOutcome()


def _worker(metrics_manager, supervisor, ingestor, environ=None) -> BackupWorker:
    config = MergedSettings(environ=environ or FAST_TIMING)
    worker = BackupWorker(config, db_manager=metrics_manager, backup_supervisor=supervisor, ingestor=ingestor)
    ingestor.worker = worker
    return worker


def test_worker_ensures_schema_once_and_runs_cycles_until_shutdown(fake_db, metrics_manager) -> None:
    supervisor, ingestor = StubSupervisor(), StubIngestor(stop_after=3)
    worker = _worker(metrics_manager, supervisor, ingestor)

    assert worker.run() == 0

    assert supervisor.calls == 3
    assert ingestor.calls == 3
    assert fake_db.count_statements("pg_namespace") == 1
    assert fake_db.count_statements("CREATE SCHEMA") == 1


def test_worker_ingests_after_launch_failure(metrics_manager) -> None:
    supervisor = StubSupervisor(errors=[BackupLaunchError("no such file")])
    ingestor = StubIngestor(stop_after=2)
    worker = _worker(metrics_manager, supervisor, ingestor)

    assert worker.run() == 0

    assert supervisor.calls == 2
    assert ingestor.calls == 2


def test_worker_stops_without_ingesting_when_backup_cancelled(metrics_manager) -> None:
    supervisor = StubSupervisor(errors=[BackupCancelled("shutdown")])
    ingestor = StubIngestor(stop_after=1)
    worker = _worker(metrics_manager, supervisor, ingestor)

    assert worker.run() == 0

    assert supervisor.calls == 1
    assert ingestor.calls == 0


def test_worker_schema_failure_is_fatal(fake_db, metrics_manager) -> None:
    fake_db.count_rows_override = []
    supervisor, ingestor = StubSupervisor(), StubIngestor(stop_after=1)
    worker = _worker(metrics_manager, supervisor, ingestor)

    with pytest.raises(FatalWorkerError):
        worker.run()

    assert supervisor.calls == 0


def test_worker_propagates_fatal_ingestion_error(metrics_manager) -> None:
    class FailingIngestor(StubIngestor):
        def ingest(self) -> IngestionOutcome:
            raise FatalWorkerError("insert failed")

    worker = _worker(metrics_manager, StubSupervisor(), FailingIngestor(stop_after=1))

    with pytest.raises(FatalWorkerError):
        worker.run()


def test_shutdown_during_long_sleep_is_observed_within_a_tick(metrics_manager) -> None:
    environ = dict(FAST_TIMING, TOTALRECALL_BACKUP_INTERVAL_SECONDS="600", TOTALRECALL_SIGNAL_POLL_INTERVAL="0.05")
    supervisor, ingestor = StubSupervisor(), StubIngestor(stop_after=100)
    worker = _worker(metrics_manager, supervisor, ingestor, environ=environ)
    timer = threading.Timer(0.2, worker.request_shutdown)
    timer.start()

    started = time.monotonic()
    try:
        assert worker.run() == 0
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5
    assert supervisor.calls == 1


def test_shutdown_before_first_cycle_skips_backup(metrics_manager) -> None:
    supervisor, ingestor = StubSupervisor(), StubIngestor(stop_after=1)
    worker = _worker(metrics_manager, supervisor, ingestor)
    worker.request_shutdown(signal.SIGTERM)

    assert worker.run() == 0

    assert supervisor.calls == 0


def test_worker_builds_collaborators_from_config(tmp_path) -> None:
    config = MergedSettings(environ={
        "TOTALRECALL_METRICS_DIR": str(tmp_path),
        "TOTALRECALL_LOCK_DIR": str(tmp_path / "run"),
        "TOTALRECALL_BACKUP_EXECUTABLE": "/opt/totalrecall/bin/totalrecall",
    })

    worker = BackupWorker(config)

    assert worker.ingestor.metrics_path == tmp_path / "totalrecall.metrics"
    assert worker.ingestor.lock_path == tmp_path / "run" / "totalrecall.lock"
    assert worker.backup_supervisor.executable == "/opt/totalrecall/bin/totalrecall"
    assert worker.backup_supervisor.arguments == ("backup", "--scheduled")
    assert worker.backup_supervisor.shutdown_event is worker.shutdown_signal_received
