import os
import fcntl
import logging
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


class FileLock:
    """
    Exclusive advisory lock on a well-known file, using fcntl.flock().

    The lock is shared with every other process that locks the same path,
    including the backup utility when it appends metrics. Acquisition blocks
    until the lock is free. The lock file is created if it does not exist and
    its content is never read or written.

    Locks are attached to the open file description, so two FileLock objects
    on the same path exclude each other even within one process.
    """

    def __init__(self, path: Path):
        """
        :param path: The path of the lock file.
        """
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """
        Opens the lock file and blocks until an exclusive lock is obtained.

        :raises OSError: If the lock file cannot be opened or locked.
        """
        if self._fd is not None:
            raise RuntimeError(f"Lock '{self.path}' is already held by this object.")

        # flock() needs no write access; a lock file owned by another user still works.
        fd = os.open(self.path, os.O_CREAT | os.O_RDONLY, 0o644)
        try:
            log.debug(f"Waiting for lock on {self.path}...")
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        log.debug(f"Acquired lock on {self.path}.")

    def release(self) -> None:
        """Releases the lock and closes the lock file. Does nothing if the lock is not held."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        log.debug(f"Released lock on {self.path}.")

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
