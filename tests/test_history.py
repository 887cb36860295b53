from __future__ import annotations

import pytest
from pydantic import ValidationError

from backend.countyscope.history import HistoryTracker
from backend.countyscope.models import DemographicRecord, HistoryEntry


def _entry(fips: str, population: float = 1000, income: float | None = 50000) -> HistoryEntry:
    return HistoryEntry(fips=fips, name=f"County {fips}", population=population, median_age=38, median_income=income)


A, B, C, D = "55001", "55003", "55005", "55007"


@pytest.fixture
def tracker() -> HistoryTracker:
    history = HistoryTracker()
    for fips in (C, B, A):
        history.record_visit(_entry(fips))
    return history


def test_revisit_replaces_and_moves_to_front() -> None:
    history = HistoryTracker()
    history.record_visit(_entry(A, population=100))
    history.record_visit(_entry(B))
    history.record_visit(_entry(A, population=200))
    assert [entry.fips for entry in history.entries] == [A, B]
    assert history.entries[0].population == 200


def test_unpadded_fips_is_the_same_county() -> None:
    history = HistoryTracker()
    history.record_visit(_entry("6037", population=100))
    history.record_visit(_entry("06037", population=200))
    assert [entry.fips for entry in history.entries] == ["06037"]
    assert history.entries[0].population == 200

    assert history.toggle_pin("6037") == "06037"
    assert history.baseline() is not None
    assert history.baseline().fips == "06037"


def test_records_reject_non_county_ids() -> None:
    assert DemographicRecord(fips=6037, name="Los Angeles County", source="test").fips == "06037"
    with pytest.raises(ValidationError):
        HistoryEntry(fips="06", name="California")
    with pytest.raises(ValidationError):
        DemographicRecord(fips="abc", name="Nowhere", source="test")


def test_pinned_entry_sorts_first(tracker: HistoryTracker) -> None:
    assert tracker.toggle_pin(C) == C
    tracker.record_visit(_entry(D))
    assert [entry.fips for entry in tracker.ordered_entries()] == [C, D, A, B]


def test_toggle_pin_twice_unpins(tracker: HistoryTracker) -> None:
    tracker.toggle_pin(B)
    assert tracker.toggle_pin(B) is None
    assert [entry.fips for entry in tracker.ordered_entries()] == [A, B, C]


def test_pinning_unknown_unit_is_noop(tracker: HistoryTracker) -> None:
    calls = []
    tracker.subscribe(lambda entries, pinned: calls.append(pinned))
    assert tracker.toggle_pin("17031") is None
    assert calls == []


def test_limit_truncates_and_clears_lost_pin() -> None:
    history = HistoryTracker(limit=2)
    history.record_visit(_entry(A))
    history.toggle_pin(A)
    history.record_visit(_entry(B))
    history.record_visit(_entry(C))
    assert [entry.fips for entry in history.entries] == [C, B]
    assert history.pinned_id is None


def test_baseline_defaults_to_most_recent(tracker: HistoryTracker) -> None:
    baseline = tracker.baseline()
    assert baseline is not None
    assert baseline.fips == A
    rows = tracker.rows()
    assert rows[0].entry.fips == A
    assert rows[0].trend is None


def test_trends_against_pinned_baseline() -> None:
    history = HistoryTracker()
    history.record_visit(_entry(A, population=1000, income=50000))
    history.record_visit(_entry(B, population=2000, income=40000))
    history.toggle_pin(A)
    rows = {row.entry.fips: row for row in history.rows()}
    assert rows[A].pinned
    assert rows[A].trend is None
    trend = rows[B].trend
    assert trend is not None
    assert trend.population == "up"
    assert trend.median_age == "same"
    assert trend.median_income == "down"


def test_listeners_get_ordered_entries(tracker: HistoryTracker) -> None:
    seen = []
    tracker.subscribe(lambda entries, pinned: seen.append(([entry.fips for entry in entries], pinned)))
    tracker.toggle_pin(B)
    assert seen == [([B, A, C], B)]


def test_empty_history_has_no_baseline() -> None:
    assert HistoryTracker().baseline() is None
    with pytest.raises(ValueError):
        HistoryTracker(limit=0)
