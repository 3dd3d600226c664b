import logging
import sys
import threading
from collections import deque

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
RECENT_CAPACITY = 500


class RecentLogHandler(logging.Handler):
    """Keeps the newest formatted records in memory for the ``/logs`` command."""

    def __init__(self, capacity: int = RECENT_CAPACITY) -> None:
        super().__init__()
        self._lines: deque[str] = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._lines.append(line)

    def tail(self, limit: int = 50) -> list[str]:
        with self._buffer_lock:
            lines = list(self._lines)
        return lines[-limit:] if limit > 0 else []


_recent: RecentLogHandler | None = None


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    global _recent
    logger = logging.getLogger("roster")
    if logger.handlers:
        return logger  # already configured
    logger.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    _recent = RecentLogHandler()
    _recent.setFormatter(fmt)
    logger.addHandler(_recent)
    # reduce discord noise unless debugging
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.client").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    return logger


def recent_logs(limit: int = 50) -> list[str]:
    """Newest ``limit`` log lines captured since :func:`setup_logging`."""
    if _recent is None:
        return []
    return _recent.tail(limit)
