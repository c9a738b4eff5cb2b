import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import psycopg

from totalrecall.errors import FatalWorkerError
from totalrecall.database import MetricRecord, MetricsDBManager
from totalrecall.worker.locking import FileLock
from totalrecall.worker.parsing import parse_metric_line

log = logging.getLogger(__name__)


@dataclass
class IngestionOutcome:
    rows_ingested: int = 0
    lines_rejected: int = 0
    file_found: bool = False


class MetricsIngestor:
    """
    Loads the metrics file written by the backup utility into the metrics table.

    Each pass holds the shared lock file, inserts every parseable line in one
    transaction and deletes the file once the transaction has committed.
    Malformed lines are skipped; a failed insert aborts the whole batch.
    """

    def __init__(self, db_manager: MetricsDBManager, metrics_path: Path, lock_path: Path):
        """
        :param db_manager: The metrics store that receives the parsed records.
        :param metrics_path: The path of the metrics file.
        :param lock_path: The path of the lock file shared with the backup utility.
        """
        self.db_manager = db_manager
        self.metrics_path = Path(metrics_path)
        self.lock_path = Path(lock_path)

    def ingest(self) -> IngestionOutcome:
        """
        Runs one ingestion pass.

        :return IngestionOutcome: The number of rows inserted and lines rejected.
        :raises FatalWorkerError: If the lock cannot be taken or an insert fails.
        """
        lock = FileLock(self.lock_path)
        try:
            lock.acquire()
        except OSError as e:
            log.critical(f"Failed to obtain lock on {self.lock_path}: {e}", exc_info=True)
            raise FatalWorkerError(f"Cannot lock '{self.lock_path}'.") from e

        try:
            return self._ingest_locked()
        finally:
            lock.release()

    def _ingest_locked(self) -> IngestionOutcome:
        outcome = IngestionOutcome()
        try:
            f = open(self.metrics_path, "rb")
        except FileNotFoundError:
            log.info("No metrics file found.")
            return outcome
        except OSError as e:
            log.error(f"Failed to open metrics file '{self.metrics_path}': {e}")
            return outcome

        outcome.file_found = True
        with f:
            try:
                with self.db_manager.transaction() as conn:
                    for raw_line in f:
                        record = self._parse_raw_line(raw_line)
                        if record is None:
                            log.warning(f"Failed to read line in metrics file: {raw_line.rstrip()!r}")
                            outcome.lines_rejected += 1
                            continue

                        self.db_manager.insert_metric(conn, record)
                        log.debug(f"Ingested line: {raw_line.rstrip()!r}")
                        outcome.rows_ingested += 1
            except psycopg.Error as e:
                log.critical(f"Metrics batch from '{self.metrics_path}' was rolled back: {e}", exc_info=True)
                raise FatalWorkerError("Failed to store metrics batch.") from e
            except OSError as e:
                log.error(f"Failed to read metrics file '{self.metrics_path}', batch rolled back: {e}")
                return IngestionOutcome(file_found=True)

        log.info(f"Ingested {outcome.rows_ingested} metric record(s), skipped {outcome.lines_rejected} malformed line(s).")
        self._remove_metrics_file()
        return outcome

    @staticmethod
    def _parse_raw_line(raw_line: bytes) -> Optional[MetricRecord]:
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError:
            return None
        return parse_metric_line(line)

    def _remove_metrics_file(self) -> None:
        try:
            self.metrics_path.unlink()
        except OSError as e:
            # Rows are already committed; the file will be ingested again next cycle.
            log.error(f"Failed to delete metrics file '{self.metrics_path}': {e}")
