import logging
import threading
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from totalrecall.errors import BackupCancelled, BackupLaunchError, FatalWorkerError
from totalrecall.worker.shutdown import terminate_process_tree
from totalrecall.worker.waiting import WaitResult, wait_with_timeout

log = logging.getLogger(__name__)


@dataclass
class SupervisedProcess:
    """The backup child currently being supervised."""
    pid: int
    launch_command: str
    argv: List[str]
    popen: subprocess.Popen


#* --- Process Output ---
def _read_pipe(pipe, process_name: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str) -> None:
    """Starts background threads to consume and log a process's stdout/stderr."""
    if process.stdout:
        threading.Thread(target=_read_pipe, args=(process.stdout, name, logging.INFO), daemon=True).start()
    if process.stderr:
        threading.Thread(target=_read_pipe, args=(process.stderr, name, logging.ERROR), daemon=True).start()


#* --- Process Creation ---
def get_backup_args(executable: str, arguments: Sequence[str]) -> List[str]:
    """Returns the command-line arguments for a scheduled backup run."""
    return [executable, *arguments]


def launch_backup(executable: str, arguments: Sequence[str]) -> SupervisedProcess:
    """
    Launches the backup utility as a child process.

    :param executable: The backup executable, resolved through PATH if not absolute.
    :param arguments: The arguments passed after the executable.
    :return SupervisedProcess: The launched child.
    :raises BackupLaunchError: If the executable cannot be started.
    """
    args = get_backup_args(executable, arguments)
    log.info(f"Launching backup process: {' '.join(args)}")
    try:
        p = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        log.error(f"Failed to launch backup process '{executable}': {e}")
        raise BackupLaunchError(f"Failed to launch '{executable}': {e}") from e

    log_process_output(p, "backup")
    log.info(f"Backup process started with PID: {p.pid}")
    return SupervisedProcess(pid=p.pid, launch_command=executable, argv=args, popen=p)


#* --- Supervision ---
class BackupSupervisor:
    """
    Runs one backup child at a time and waits for it without blocking shutdown handling.
    """

    def __init__(self, executable: str, arguments: Sequence[str], shutdown_event: threading.Event,
                 poll_interval: float = 2.0, termination_timeout: float = 10.0):
        """
        :param executable: The backup executable.
        :param arguments: The arguments for a scheduled run.
        :param shutdown_event: Set when the worker has been asked to stop.
        :param poll_interval: The maximum time to wait between child status checks.
        :param termination_timeout: Seconds to wait for the child to exit after SIGTERM on cancellation.
        """
        self.executable = executable
        self.arguments = tuple(arguments)
        self.shutdown_event = shutdown_event
        self.poll_interval = poll_interval
        self.termination_timeout = termination_timeout
        self.current: Optional[SupervisedProcess] = None

    def run_backup(self) -> int:
        """
        Launches the backup child and waits for it to exit.

        `current` is cleared only once the child has been reaped, so a child
        left running by an error keeps blocking the next launch.

        :return int: The child's exit status.
        :raises BackupLaunchError: If the child could not be started.
        :raises BackupCancelled: If a shutdown was requested while waiting; the child is terminated first.
        :raises FatalWorkerError: If the child's status cannot be checked.
        """
        assert self.current is None, f"Backup process {self.current.pid} has not been reaped."

        self.current = launch_backup(self.executable, self.arguments)
        returncode = self._wait_for_exit(self.current)
        self.current = None
        return returncode

    def _wait_for_exit(self, proc: SupervisedProcess) -> int:
        """Polls the child every tick until it exits or a shutdown is requested."""
        while True:
            if wait_with_timeout(self.shutdown_event, self.poll_interval) is WaitResult.SIGNALED:
                if self._cancel(proc):
                    self.current = None
                raise BackupCancelled(f"Backup process {proc.pid} cancelled by shutdown request.")

            try:
                returncode = proc.popen.poll()
            except OSError as e:
                log.critical(f"Failed to check status of backup process {proc.pid}: {e}", exc_info=True)
                raise FatalWorkerError(f"Cannot check status of backup process {proc.pid}.") from e

            if returncode is None:
                continue

            if returncode == 0:
                log.info("Backup process completed.")
            else:
                log.warning(f"Backup process exited with status {returncode}.")
            return returncode

    def _cancel(self, proc: SupervisedProcess) -> bool:
        """
        Terminates the child's process tree and reaps the child.

        :return bool: True if the child was reaped.
        """
        if proc.popen.poll() is not None:
            return True
        log.warning(f"Shutdown requested while backup process {proc.pid} is running. Terminating it.")
        terminate_process_tree(proc.pid, self.termination_timeout)
        try:
            proc.popen.wait(timeout=self.termination_timeout)
        except subprocess.TimeoutExpired:
            log.error(f"Backup process {proc.pid} did not exit after being killed.")
            return False
        return True
