"""
TotalRecall worker.

A background process that periodically runs the TotalRecall backup utility
and stores the metrics it reports in PostgreSQL.
"""

__version__ = "0.1.0"
