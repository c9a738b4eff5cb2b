import signal
import logging
import threading
from typing import Optional

from totalrecall.config import MergedSettings, effective_settings
from totalrecall.database import MetricsDBManager
from totalrecall.errors import BackupCancelled, BackupLaunchError
from totalrecall.worker.ingest import MetricsIngestor
from totalrecall.worker.process_utils import BackupSupervisor
from totalrecall.worker.waiting import WaitResult, interruptible_sleep

log = logging.getLogger(__name__)


class BackupWorker:
    """
    The scheduling loop of the worker.

    Ensures the metrics schema once at startup, then repeatedly runs a backup,
    ingests the metrics it produced and sleeps until the next cycle. Every
    wait is bounded so a shutdown request is observed within one tick.
    """

    def __init__(self, config: Optional[MergedSettings] = None,
                 db_manager: Optional[MetricsDBManager] = None,
                 backup_supervisor: Optional[BackupSupervisor] = None,
                 ingestor: Optional[MetricsIngestor] = None) -> None:
        """
        Initializes the worker and its collaborators from the configuration.

        :param config: The settings to use. Defaults to the global effective settings.
        :param db_manager: An optional pre-built metrics store.
        :param backup_supervisor: An optional pre-built backup supervisor.
        :param ingestor: An optional pre-built metrics ingestor.
        """
        self.config = config or effective_settings
        self.shutdown_signal_received = threading.Event()

        self.db_manager = db_manager or MetricsDBManager(
            self.config.DATABASE_NAME,
            self.config.METRICS_SCHEMA_NAME,
            self.config.METRICS_TABLE_NAME,
            connect_timeout=self.config.DATABASE_CONNECT_TIMEOUT,
        )
        self.backup_supervisor = backup_supervisor or BackupSupervisor(
            self.config.BACKUP_EXECUTABLE,
            self.config.BACKUP_ARGUMENTS,
            self.shutdown_signal_received,
            poll_interval=self.config.BACKUP_POLL_INTERVAL,
            termination_timeout=self.config.GRACEFUL_SHUTDOWN_TIMEOUT,
        )
        self.ingestor = ingestor or MetricsIngestor(
            self.db_manager,
            self.config.METRICS_FILE_PATH,
            self.config.LOCK_FILE_PATH,
        )

    def request_shutdown(self, signum: Optional[int] = None, frame=None) -> None:
        """Asks the loop to stop. Safe to use as a signal handler."""
        if signum is not None:
            log.info(f"Received signal {signal.Signals(signum).name}. Shutting down after the current step.")
        self.shutdown_signal_received.set()

    def install_signal_handlers(self) -> None:
        """Routes SIGTERM and SIGINT to `request_shutdown`. Must be called from the main thread."""
        signal.signal(signal.SIGTERM, self.request_shutdown)
        signal.signal(signal.SIGINT, self.request_shutdown)

    def _sleep(self, duration: float) -> bool:
        """Sleeps interruptibly. Returns True if a shutdown was requested."""
        result = interruptible_sleep(self.shutdown_signal_received, duration, self.config.SIGNAL_POLL_INTERVAL)
        return result is WaitResult.SIGNALED

    def run_cycle(self) -> bool:
        """
        Runs one backup-then-ingest cycle.

        :return bool: False if the loop should stop.
        """
        try:
            self.backup_supervisor.run_backup()
        except BackupLaunchError as e:
            # A metrics file left by an earlier run may still be waiting.
            log.error(f"Backup did not run this cycle: {e}")
        except BackupCancelled as e:
            log.info(str(e))
            return False

        if self.shutdown_signal_received.is_set():
            return False

        self.ingestor.ingest()
        return not self.shutdown_signal_received.is_set()

    def run(self) -> int:
        """
        Runs the worker until a shutdown is requested.

        :return int: The process exit code.
        :raises FatalWorkerError: On any unrecoverable error; the process is expected to exit.
        """
        log.info("Starting TotalRecall worker.")
        self.db_manager.ensure_schema()

        if self._sleep(self.config.STARTUP_GRACE_SECONDS):
            log.info("TotalRecall worker stopped before its first cycle.")
            return 0

        try:
            while not self.shutdown_signal_received.is_set():
                log.info("Waking up.")
                if not self.run_cycle():
                    break

                log.info("Going to sleep.")
                if self._sleep(self.config.BACKUP_INTERVAL_SECONDS):
                    break
        except KeyboardInterrupt:
            log.info("Worker loop interrupted by user.")

        log.info("TotalRecall worker stopped.")
        return 0
