"""Levelled console output used as the logging channel of every stage."""
from __future__ import annotations

from typing import TextIO
import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(
        self,
        level: str = "info",
        dry_run: bool = False,
        *,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ) -> None:
        normalized = level.strip().lower()
        if normalized not in self.LEVELS:
            raise ValueError(f"Unknown console level '{level}'. Supported: {', '.join(self.LEVELS)}")
        self.level_name = normalized
        self.level = self.LEVELS[normalized]
        self.dry_run = dry_run
        self._stream = stream
        self._error_stream = error_stream

    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def _err(self) -> TextIO:
        return self._error_stream if self._error_stream is not None else sys.stderr

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}", file=self._out())

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=self._err())

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}", file=self._out())

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}", file=self._out())


def quiet_console() -> Console:
    """Console that discards everything; handy for library callers and tests."""

    return Console("none")


__all__ = ["Console", "quiet_console"]
