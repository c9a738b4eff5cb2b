"""
This module initializes the database layer of the worker.
It imports the connection manager and the metrics store built on top of it.
"""

from .base import BaseDBManager
from .metrics import MetricRecord, MetricsDBManager

__all__ = ["BaseDBManager", "MetricRecord", "MetricsDBManager"]
