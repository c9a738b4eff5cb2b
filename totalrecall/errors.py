"""
Exception types raised by the TotalRecall worker.

Fatal errors terminate the worker process so the service manager can restart it;
the others are handled by the scheduling loop.
"""


class TotalRecallError(Exception):
    """Base class for all worker errors."""


class FatalWorkerError(TotalRecallError):
    """An invariant about the lock, the transaction or the destination store is broken."""


class BackupLaunchError(TotalRecallError):
    """The backup executable could not be started."""


class BackupCancelled(TotalRecallError):
    """A shutdown was requested while waiting for the backup child."""
