"""
Error Log - append-only sink for swallowed errors.

Every error that a context operation absorbs (instead of raising to its
caller) is written here as one line:

    <timestamp>\t<operation>\t<detail>\r\n
"""

import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TextIO

from dataman.core.config import Settings, get_logger

logger = get_logger("storage.errorlog")


class ErrorLog:
    """Line-oriented error sink. Writes to stderr unless given a stream or path."""
    
    def __init__(self, stream: TextIO | None = None, path: Path | None = None):
        self.path = path
        self._owns_stream = stream is None and path is not None
        if stream is not None:
            self._stream = stream
        elif path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = path.open("a", encoding="utf-8", newline="")
        else:
            self._stream = sys.stderr
        self._lock = threading.Lock()
    
    @classmethod
    def from_settings(cls, settings: Settings) -> "ErrorLog":
        return cls(path=settings.error_log)
    
    @staticmethod
    def format_line(operation: str, detail: str, timestamp: datetime | None = None) -> str:
        stamp = (timestamp or datetime.now().astimezone()).strftime("%Y-%m-%d %H:%M:%S %z")
        return f"{stamp}\t{operation}\t{_one_line(detail)}\r\n"
    
    def write(self, operation: str, detail: str) -> None:
        """Append one line for an absorbed error."""
        line = self.format_line(operation, detail)
        with self._lock:
            self._stream.write(line)
            self._stream.flush()
        logger.warning(f"{operation} failed: {_one_line(detail)}")
    
    def error(self, operation: str, error: BaseException) -> None:
        """Append one line describing an exception."""
        self.write(operation, f"{type(error).__name__}: {error}")
    
    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()


def _one_line(detail: str) -> str:
    """Collapse a multi-line detail so each error stays on one line."""
    return " | ".join(line.strip() for line in str(detail).splitlines() if line.strip())
