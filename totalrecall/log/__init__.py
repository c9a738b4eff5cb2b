"""
Logging module for the worker.
This module provides functionality to set up console logging for the worker and its backup child.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
