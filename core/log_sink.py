"""Append-only log stream consumed by the dashboard.

Every process output line and every state-transition notice reaches the
sink through the standard logging tree. Readers poll with the last
sequence number they saw, the same way the log panel tails the bot state.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Optional


@dataclass(frozen=True)
class LogEntry:
    seq: int
    ts: datetime
    level: str
    message: str


class LogSink(logging.Handler):
    """Bounded, ordered buffer of formatted log records."""

    def __init__(self, max_lines: int = 500, level: int = logging.NOTSET):
        super().__init__(level)
        self._entries: Deque[LogEntry] = deque(maxlen=max_lines)
        self._seq = 0
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.append(message, record.levelname, datetime.fromtimestamp(record.created, tz=timezone.utc))

    def append(self, message: str, level: str = "INFO", ts: Optional[datetime] = None) -> LogEntry:
        """Push a line directly, bypassing the logging tree."""
        self.acquire()
        try:
            self._seq += 1
            entry = LogEntry(
                seq=self._seq,
                ts=ts or datetime.now(timezone.utc),
                level=level,
                message=message,
            )
            self._entries.append(entry)
            return entry
        finally:
            self.release()

    @property
    def last_seq(self) -> int:
        return self._seq

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def since(self, seq: int) -> list[LogEntry]:
        """Entries newer than ``seq`` still held in the buffer, oldest first."""
        return [e for e in self._entries if e.seq > seq]

    def messages(self) -> list[str]:
        return [e.message for e in self._entries]


def install_sink(sink: LogSink, logger: Optional[logging.Logger] = None) -> LogSink:
    """Attach ``sink`` to ``logger`` (root by default) once."""
    target = logger or logging.getLogger()
    if sink not in target.handlers:
        target.addHandler(sink)
    return sink


def remove_sink(sink: LogSink, logger: Optional[logging.Logger] = None) -> None:
    target = logger or logging.getLogger()
    target.removeHandler(sink)
