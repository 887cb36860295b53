from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .demographics import compare_to_baseline
from .geo import normalize_geoid
from .models import HistoryEntry, TrendComparison

HISTORY_LIMIT = 10


@dataclass(frozen=True)
class HistoryRow:
    entry: HistoryEntry
    pinned: bool
    trend: TrendComparison | None


HistoryListener = Callable[[list[HistoryEntry], "str | None"], None]


class HistoryTracker:
    """Most-recent-first list of visited counties with an optional pinned baseline."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self._entries: list[HistoryEntry] = []
        self._pinned: str | None = None
        self._listeners: list[HistoryListener] = []

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def pinned_id(self) -> str | None:
        return self._pinned

    def subscribe(self, listener: HistoryListener) -> None:
        self._listeners.append(listener)

    def find(self, unit_id: Any) -> HistoryEntry | None:
        key = normalize_geoid(unit_id)
        return next((entry for entry in self._entries if entry.fips == key), None)

    def record_visit(self, entry: HistoryEntry) -> None:
        entries = [existing for existing in self._entries if existing.fips != entry.fips]
        entries.insert(0, entry)
        self._entries = entries[: self.limit]
        if self._pinned is not None and self.find(self._pinned) is None:
            self._pinned = None
        self._notify()

    def toggle_pin(self, unit_id: Any) -> str | None:
        key = normalize_geoid(unit_id)
        if self._pinned == key:
            self._pinned = None
        elif self.find(key) is not None:
            self._pinned = key
        else:
            return self._pinned
        self._notify()
        return self._pinned

    def ordered_entries(self) -> list[HistoryEntry]:
        """Pinned entry first; everything else keeps its most-recent-first order."""
        pinned = [entry for entry in self._entries if entry.fips == self._pinned]
        rest = [entry for entry in self._entries if entry.fips != self._pinned]
        return pinned + rest

    def baseline(self) -> HistoryEntry | None:
        if self._pinned is not None:
            return self.find(self._pinned)
        return self._entries[0] if self._entries else None

    def trend_for(self, entry: HistoryEntry) -> TrendComparison | None:
        return compare_to_baseline(entry, self.baseline())

    def rows(self) -> list[HistoryRow]:
        return [
            HistoryRow(entry=entry, pinned=entry.fips == self._pinned, trend=self.trend_for(entry))
            for entry in self.ordered_entries()
        ]

    def _notify(self) -> None:
        ordered = self.ordered_entries()
        for listener in self._listeners:
            listener(ordered, self._pinned)
