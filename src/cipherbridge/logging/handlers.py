"""Log handlers for CipherBridge.

Console output for normal runs and an in-memory buffer for tests and
diagnostics.
"""

import sys
from typing import Any, Dict, List, Optional

from .core import LogEntry, LogHandler


class ConsoleHandler(LogHandler):
    """Console log handler.

    Writes to ``stream`` or, when none was given, to whatever ``sys.stderr``
    is at emit time.
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to console."""
        with self._lock:
            if self.formatter:
                formatted = self.formatter.format(entry)
            else:
                formatted = f"{entry.timestamp} [{entry.level.value.upper()}] {entry.logger_name}: {entry.message}"

            stream = self.stream or sys.stderr
            stream.write(formatted + "\n")
            stream.flush()


class MemoryHandler(LogHandler):
    """Memory log handler."""

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: List[Dict[str, Any]] = []

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to memory."""
        with self._lock:
            self.buffer.append(
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "context": entry.context.to_dict(),
                    "formatted": self.formatter.format(entry)
                    if self.formatter
                    else entry.message,
                }
            )

            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get buffered logs, optionally only one level."""
        with self._lock:
            if level is None:
                return self.buffer.copy()
            return [item for item in self.buffer if item["level"] == level]

    def messages(self) -> List[str]:
        """Get buffered messages only."""
        with self._lock:
            return [item["message"] for item in self.buffer]

    def clear_logs(self) -> None:
        """Clear all logs from memory."""
        with self._lock:
            self.buffer.clear()

    def close(self) -> None:
        """Close handler."""
        self.clear_logs()
