import psutil
import logging
from typing import List, Set

log = logging.getLogger(__name__)


def identify_processes_to_stop(pid: int) -> Set[psutil.Process]:
    """
    Identifies the backup child and all of its descendants.

    :param pid: The PID of the backup child.
    :return: A set of psutil.Process objects to be stopped.
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return set()

    all_procs_to_stop: Set[psutil.Process] = {parent}
    try:
        all_procs_to_stop.update(parent.children(recursive=True))
    except psutil.NoSuchProcess:
        log.warning(f"Process {pid} no longer exists, skipping children retrieval.")
    return all_procs_to_stop


def _terminate_processes(processes: Set[psutil.Process]) -> None:
    """Sends SIGTERM to all given processes."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping termination.")
            continue


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping forceful kill.")
            continue


def terminate_process_tree(pid: int, timeout: float) -> None:
    """
    Stops the backup child and its descendants: SIGTERM first, SIGKILL after `timeout` seconds.

    The caller remains responsible for reaping its own direct child.

    :param pid: The PID of the backup child.
    :param timeout: Seconds to wait for a graceful exit before killing.
    """
    processes = identify_processes_to_stop(pid)
    if not processes:
        return

    log.info(f"Terminating backup process tree rooted at PID {pid} ({len(processes)} processes)...")
    _terminate_processes(processes)

    procs_list = list(processes)
    try:
        _, alive = psutil.wait_procs(procs_list, timeout=timeout)
    except psutil.NoSuchProcess:
        alive = []

    # If any processes are still alive after the timeout, forcefully kill them.
    _forceful_kill(alive)
