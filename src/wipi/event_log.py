"""Bounded record of progress messages and wireless state changes.

The facade mirrors everything it reports (connection progress, terminal
connection states, status and reachability transitions, scan deltas) into an
:class:`EventLog` so a UI or the ``/api/wifi/log`` endpoint can show what
happened after the fact. Persistence is optional and uses one JSON object per
line.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Deque, Mapping


logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"


@dataclass(slots=True)
class EventLogEntry:
    timestamp: float
    category: str
    event: str
    message: str
    metadata: dict[str, object | None] | None = None

    def to_dict(self) -> dict[str, object | None]:
        payload: dict[str, object | None] = {
            "timestamp": self.timestamp,
            "category": self.category,
            "event": self.event,
            "message": self.message,
        }
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "EventLogEntry | None":
        """Rebuild a persisted entry; returns ``None`` for unusable lines."""

        event = payload.get("event")
        message = payload.get("message")
        if not isinstance(event, str) or not isinstance(message, str):
            return None
        raw_timestamp = payload.get("timestamp")
        timestamp = raw_timestamp if isinstance(raw_timestamp, (int, float)) else time.time()
        metadata = payload.get("metadata")
        return cls(
            timestamp=float(timestamp),
            category=_category(payload.get("category")),
            event=event,
            message=message,
            metadata=dict(metadata) if isinstance(metadata, dict) else None,
        )


def _category(value: object) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_CATEGORY


class EventLog:
    """Keep the newest ``max_entries`` events, optionally mirrored to disk.

    With a ``path`` the file is replayed on construction and every new entry
    is appended to it. Losing the file never affects callers; problems are
    logged and persistence is switched off.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        max_entries: int = 500,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: Deque[EventLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._path = self._prepare(Path(path)) if path is not None else None
        if self._path is not None:
            self._entries.extend(self._replay(self._path))

    @property
    def path(self) -> Path | None:
        return self._path

    def record(
        self,
        category: str,
        event: str,
        message: str,
        *,
        metadata: Mapping[str, object | None] | None = None,
    ) -> EventLogEntry:
        present = {key: value for key, value in (metadata or {}).items() if value is not None}
        entry = EventLogEntry(
            timestamp=time.time(),
            category=_category(category),
            event=event,
            message=message,
            metadata=present or None,
        )
        with self._lock:
            self._entries.append(entry)
            if self._path is not None:
                self._write(entry)
        return entry

    def tail(
        self,
        limit: int | None = None,
        *,
        category: str | None = None,
    ) -> list[EventLogEntry]:
        """Return up to ``limit`` of the newest entries, oldest first."""

        wanted = category.strip() if category else ""
        with self._lock:
            newest_first = (
                entry for entry in reversed(self._entries)
                if not wanted or entry.category == wanted
            )
            if limit is None:
                selected = list(newest_first)
            else:
                selected = list(islice(newest_first, max(1, int(limit))))
        selected.reverse()
        return selected

    # ------------------------------- helpers -------------------------------
    @staticmethod
    def _prepare(path: Path) -> Path | None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - filesystem errors are rare
            logger.warning("Event log disabled, cannot create %s: %s", path.parent, exc)
            return None
        return path

    @staticmethod
    def _replay(path: Path) -> list[EventLogEntry]:
        if not path.exists():
            return []
        restored: list[EventLogEntry] = []
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    try:
                        payload = json.loads(line)
                    except ValueError:
                        logger.debug("Skipping unreadable event log line")
                        continue
                    entry = EventLogEntry.from_dict(payload) if isinstance(payload, dict) else None
                    if entry is not None:
                        restored.append(entry)
        except OSError as exc:  # pragma: no cover - best effort logging
            logger.warning("Unable to replay event log %s: %s", path, exc)
        return restored

    def _write(self, entry: EventLogEntry) -> None:
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                json.dump(entry.to_dict(), handle, separators=(",", ":"))
                handle.write("\n")
        except OSError as exc:  # pragma: no cover - best effort logging
            logger.warning("Unable to append to event log, persistence off: %s", exc)
            self._path = None


__all__ = ["DEFAULT_CATEGORY", "EventLog", "EventLogEntry"]
