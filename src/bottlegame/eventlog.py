from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Deque, Dict, List, Optional

from bottlegame.config import SEVERITIES

logger = logging.getLogger("bottlegame.events")

# (message, severity) -> None
Sink = Callable[[str, str], None]


@dataclass
class LogEntry:
    message: str
    severity: str
    day: int
    hour: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class EventLog:
    """Bounded in-memory log of game messages, newest first.

    Every entry is also mirrored to the ``bottlegame.events`` logger.
    """

    def __init__(self, capacity: int = 100, clock: Optional[Callable[[], tuple]] = None) -> None:
        self._entries: Deque[LogEntry] = deque(maxlen=max(1, int(capacity)))
        self._clock = clock

    def bind_clock(self, clock: Callable[[], tuple]) -> None:
        self._clock = clock

    def __call__(self, message: str, severity: str = "info") -> None:
        self.add(message, severity)

    def add(self, message: str, severity: str = "info") -> LogEntry:
        sev = severity if severity in SEVERITIES else "info"
        day, hour = self._clock() if self._clock else (0, 0)
        entry = LogEntry(message=str(message), severity=sev, day=int(day), hour=int(hour))
        self._entries.appendleft(entry)
        level = logging.WARNING if sev == "bad" else logging.INFO
        logger.log(level, "[day %s %02d:00] %s", entry.day, entry.hour, entry.message)
        return entry

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        items = list(self._entries)
        return items if limit is None else items[: max(0, int(limit))]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def safe_emit(sink: Optional[Sink], message: str, severity: str = "info") -> None:
    """Deliver a message to an external sink; a failing sink never stops the caller."""

    if sink is None:
        return
    try:
        sink(message, severity)
    except Exception:
        logging.getLogger(__name__).exception("log sink failed for message: %s", message)
