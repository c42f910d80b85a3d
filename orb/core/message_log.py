"""Append-only log of conversation turns."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Sequence

from orb.core.errors import TimestampRegression
from orb.core.visuals import VisualRecord

Role = Literal["user", "assistant"]


def now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True, slots=True)
class ReplyRecord:
    """One exchanged turn. Never modified once appended."""

    role: Role
    text: str
    timestamp: int
    visual: VisualRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp,
            "visual": self.visual.to_dict() if self.visual is not None else None,
        }


class LogView:
    """Read-only ordered view over a log; every iteration starts from the first entry."""

    def __init__(self, entries: list[ReplyRecord], lock: threading.Lock) -> None:
        self._entries = entries
        self._lock = lock

    def __iter__(self) -> Iterator[ReplyRecord]:
        with self._lock:
            count = len(self._entries)
        # entries are only ever appended, so the first ``count`` items are stable
        for index in range(count):
            yield self._entries[index]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MessageLog:
    """Ordered record of turns; insertion order is conversational order."""

    def __init__(self) -> None:
        self._entries: list[ReplyRecord] = []
        self._lock = threading.Lock()

    def append(self, record: ReplyRecord) -> int:
        """Append a record and return its position."""
        with self._lock:
            if self._entries and record.timestamp < self._entries[-1].timestamp:
                raise TimestampRegression(self._entries[-1].timestamp, record.timestamp)
            self._entries.append(record)
            return len(self._entries) - 1

    def last_timestamp(self) -> int | None:
        with self._lock:
            return self._entries[-1].timestamp if self._entries else None

    def entries(self) -> LogView:
        return LogView(self._entries, self._lock)

    def last(self) -> ReplyRecord | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def history(self, limit: int | None = None) -> list[tuple[str, str]]:
        """Recent ``(role, text)`` pairs, oldest first, for prompt construction."""
        with self._lock:
            selected: Sequence[ReplyRecord] = self._entries
            if limit is not None:
                selected = self._entries[-limit:] if limit > 0 else []
            return [(record.role, record.text) for record in selected]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.entries()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __getitem__(self, index: int) -> ReplyRecord:
        with self._lock:
            return self._entries[index]

    def __iter__(self) -> Iterator[ReplyRecord]:
        return iter(self.entries())
