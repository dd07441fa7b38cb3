"""
Queue-based logging for the edge process.

Loggers only enqueue records; a listener thread owns the console and file
handlers, so handler I/O never stalls the event loop that serves requests
and runs background cache refreshes.
"""

import logging
import sys
from datetime import UTC, datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue

from arbedge.config.constants import LOG_DATE_FORMAT, LOG_FORMAT, MAX_LOG_QUEUE_SIZE


# Loggers whose records go through the queue
EDGE_LOGGERS = ("arbedge", "uvicorn.error")

# Third-party loggers capped at WARNING
NOISY_LOGGERS = ("aiohttp", "asyncio", "uvicorn.access")


class UtcFormatter(logging.Formatter):
    """Formats ``asctime`` as UTC with millisecond precision (``...T12:00:00.123Z``)."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{created.strftime(datefmt or LOG_DATE_FORMAT)}.{int(record.msecs):03d}Z"


class QueueLogging:
    """
    Owns the queue, its listener and the handlers behind it.

    Args:
        level: Minimum level for the edge loggers and the console.
        log_file: Optional file receiving every record at DEBUG and above.
        loggers: Logger names attached to the queue.
    """

    def __init__(
        self,
        level: int = logging.INFO,
        log_file: Path | None = None,
        loggers: tuple[str, ...] = EDGE_LOGGERS,
    ) -> None:
        self._level = level
        self._log_file = log_file
        self._logger_names = loggers
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=MAX_LOG_QUEUE_SIZE)
        self._queue_handler = QueueHandler(self._queue)
        self._listener: QueueListener | None = None

    def _handlers(self) -> list[logging.Handler]:
        formatter = UtcFormatter(LOG_FORMAT, LOG_DATE_FORMAT)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(self._level)
        console.setFormatter(formatter)
        handlers: list[logging.Handler] = [console]

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self._log_file, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        return handlers

    def start(self) -> None:
        if self._listener is not None:
            return

        self._listener = QueueListener(self._queue, *self._handlers(), respect_handler_level=True)
        self._listener.start()

        for name in self._logger_names:
            logger = logging.getLogger(name)
            logger.addHandler(self._queue_handler)
            logger.setLevel(logging.DEBUG if self._log_file else self._level)
            logger.propagate = False

    def stop(self) -> None:
        """Detach from the loggers and flush whatever is still queued."""
        if self._listener is None:
            return

        for name in self._logger_names:
            logger = logging.getLogger(name)
            logger.removeHandler(self._queue_handler)
            logger.propagate = True

        self._listener.stop()
        for handler in self._listener.handlers:
            handler.close()
        self._listener = None

    @property
    def running(self) -> bool:
        return self._listener is not None

    def __enter__(self) -> "QueueLogging":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> QueueLogging:
    """
    Route the edge loggers through a started :class:`QueueLogging`.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path.

    Returns:
        The running queue logging; call ``stop()`` at shutdown.
    """
    queue_logging = QueueLogging(level=getattr(logging, level.upper(), logging.INFO), log_file=log_file)
    queue_logging.start()

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return queue_logging
