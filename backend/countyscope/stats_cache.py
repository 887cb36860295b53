from __future__ import annotations

from collections import OrderedDict
from typing import Any

from .geo import normalize_geoid
from .models import DemographicRecord

# Far above the ~3,200 U.S. counties, so a session never evicts in practice.
CACHE_MAX_ENTRIES = 4096


class StatisticsCache:
    """Per-unit memo of computed DemographicRecords for one session.

    Keys go through GEOID normalization, so ``6037``, ``"6037"`` and
    ``"06037"`` share a slot. Records are replaced, never mutated.
    """

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, DemographicRecord] = OrderedDict()

    def get(self, unit_id: Any) -> DemographicRecord | None:
        return self._entries.get(normalize_geoid(unit_id))

    def put(self, unit_id: Any, record: DemographicRecord) -> None:
        key = normalize_geoid(unit_id)
        self._entries.pop(key, None)
        self._entries[key] = record
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def records(self) -> list[DemographicRecord]:
        return list(self._entries.values())

    def __contains__(self, unit_id: Any) -> bool:
        return normalize_geoid(unit_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
