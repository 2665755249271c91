"""Utility functions for the deployer."""

from app.utils.logging import configure_logging, get_logger
from app.utils.process import ProcessResult, ProcessTimeoutError, run_process

__all__ = [
    "configure_logging",
    "get_logger",
    "ProcessResult",
    "ProcessTimeoutError",
    "run_process",
]
