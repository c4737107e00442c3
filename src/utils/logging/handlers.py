"""
ContextLogger: a logger wrapper that stamps fixed fields on every record.
"""

import logging
from typing import Any


class ContextLogger:
    """
    Logger wrapper that merges a fixed context into every call's ``extra``.

    Usage:
        log = ContextLogger("diffcheck.engine", run_id="a1b2c3")
        log.info("Chunk committed", chunk=2, inserted=10)

        chunk_log = log.bind(chunk=3)
        chunk_log.warning("Chunk rolled back")
    """

    def __init__(self, name: str, **context):
        self.logger = logging.getLogger(name)
        self.context = context

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra = {**self.context, **kwargs}
        self.logger.log(level, msg, *args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        """Log at ERROR with the active exception attached."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def bind(self, **context) -> "ContextLogger":
        """
        Return a new ContextLogger with additional context.

        The receiver is left unchanged.

        Args:
            **context: Extra key-value pairs for the child logger

        Returns:
            New ContextLogger sharing the same underlying logger
        """
        child = ContextLogger(self.logger.name, **self.context)
        child.context.update(context)
        return child

    def update_context(self, **context) -> None:
        self.context.update(context)

    def get_context(self) -> dict[str, Any]:
        return self.context.copy()
