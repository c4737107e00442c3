"""
Structured logging for the diffcheck batch job.

Console output is human readable by default; JSON output is meant for log
shippers when the job runs under a scheduler or container runtime.

Usage:
    from utils.logging import setup_logging, ContextLogger

    setup_logging(level="INFO", json_format=True)

    log = ContextLogger(__name__, run_id="a1b2c3")
    log.info("Chunk committed", chunk=3, inserted=120)
"""

from .config import configure_from_env, get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
