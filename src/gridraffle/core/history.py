from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from gridraffle.core.selection import SelectionModel, Snapshot

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


@dataclass(frozen=True)
class HistoryEntry:
    snapshot: Snapshot
    label: str
    timestamp: datetime


class HistoryLog:
    """Named snapshots of a :class:`SelectionModel`; the last entry is the current state.

    Snapshots are tuples of frozen image states, so entries never alias the live
    model. Winners and the view are not part of a snapshot.
    """

    def __init__(
        self,
        model: SelectionModel,
        *,
        limit: int = HISTORY_LIMIT,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.model = model
        self.limit = max(1, limit)
        self.now = now
        self._entries: List[HistoryEntry] = []
        self._future: List[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def current(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    @property
    def can_undo(self) -> bool:
        return len(self._entries) > 1

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def _append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)
        if len(self._entries) > self.limit:
            del self._entries[: len(self._entries) - self.limit]

    def record(self, label: str) -> HistoryEntry:
        entry = HistoryEntry(self.model.snapshot(), label, self.now())
        self._append(entry)
        self._future.clear()
        return entry

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        current = self._entries.pop()
        self._future.append(HistoryEntry(self.model.snapshot(), current.label, current.timestamp))
        self.model.load(self._entries[-1].snapshot)
        logger.info("Undo: %s", current.label)
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        entry = self._future.pop()
        self._append(entry)
        self.model.load(entry.snapshot)
        logger.info("Redo: %s", entry.label)
        return True

    def restore(self, index: int) -> HistoryEntry:
        """Load entry ``index`` and append it again as a new "restored" entry."""
        source = self._entries[index]
        self.model.load(source.snapshot)
        entry = HistoryEntry(source.snapshot, f"restored: {source.label}", self.now())
        self._append(entry)
        self._future.clear()
        logger.info("Restored history entry %d (%s)", index, source.label)
        return entry
