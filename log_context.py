"""Explicitly owned logging setup.

A ``LogContext`` is built by the entrypoint, opened once, handed to the
components that log, and closed on shutdown. Nothing is configured at import.
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Optional

LOGGER_NAME = "holdtalk"
LOG_FILE_NAME = "holdtalk.log"


class _ElapsedFormatter(logging.Formatter):
    def __init__(self, started_at: float) -> None:
        super().__init__("[%(elapsed)8.3fs] %(levelname)s %(name)s: %(message)s")
        self._started_at = started_at

    def format(self, record: logging.LogRecord) -> str:
        record.elapsed = record.created - self._started_at
        return super().format(record)


class LogContext:
    def __init__(
        self,
        log_dir: Optional[Path] = None,
        level: int = logging.INFO,
        console: bool = True,
    ) -> None:
        self._log_dir = log_dir
        self._level = level
        self._console = console
        self._handlers: list[logging.Handler] = []
        self._logger = logging.getLogger(LOGGER_NAME)

    @property
    def is_open(self) -> bool:
        return bool(self._handlers)

    @property
    def log_path(self) -> Optional[Path]:
        if self._log_dir is None:
            return None
        return self._log_dir / LOG_FILE_NAME

    def open(self) -> logging.Logger:
        if self._handlers:
            return self._logger
        formatter = _ElapsedFormatter(time.time())

        path = self.log_path
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, mode="w", encoding="utf-8")
            file_handler.setFormatter(formatter)
            self._handlers.append(file_handler)
        if self._console:
            stream_handler = logging.StreamHandler(sys.stderr)
            stream_handler.setFormatter(formatter)
            self._handlers.append(stream_handler)

        for handler in self._handlers:
            self._logger.addHandler(handler)
        self._logger.setLevel(self._level)
        self._logger.propagate = False
        if path is not None:
            self._logger.info("logging to %s", path)
        return self._logger

    def close(self) -> None:
        for handler in self._handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._logger.propagate = True

    def child(self, name: str) -> logging.Logger:
        return self._logger.getChild(name)

    def __enter__(self) -> logging.Logger:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
