"""
The worker package.
Runs the scheduled backup and loads the metrics it produces.

This package contains the central BackupWorker class and its helper modules,
which together handle launching and supervising the backup child, locking
and ingesting the metrics file, and the interruptible waits between them.
"""
from .supervisor import BackupWorker

__all__ = ['BackupWorker']
