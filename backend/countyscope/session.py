"""One user's drill-down session: navigation, data lookup and history.

All state lives on a ``DrillDownSession`` instance and is only touched from
the event loop between awaits, so nothing here takes a lock. County data
comes from the local dataset first, then the statistics cache, then the
statistics fetcher. Fetches for the same county share one in-flight task.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from .census_service import UpstreamAPIError
from .demographics import (
    build_income_context,
    compute_ethnicity_breakdown,
    compute_household_insights,
    compute_lgbtq_indicator,
    generational_breakdown_for,
    income_distribution_for,
)
from .geo import GeoUnitId, InvalidGeoUnitIdError
from .history import HistoryTracker
from .models import (
    DemographicRecord,
    EthnicityBreakdown,
    GenerationalBreakdown,
    HistoryEntry,
    HouseholdInsights,
    IncomeContext,
    IncomeDistribution,
    LgbtqIndicator,
)
from .navigation import NavigationSnapshot, NavigationStateMachine, UnknownGeographyError, feature_id
from .stats_cache import StatisticsCache

log = logging.getLogger(__name__)

Fetcher = Callable[[GeoUnitId, bool], Awaitable[DemographicRecord]]
SessionListener = Callable[[str, Any], None]

NAVIGATION_CHANGED = "navigation_changed"
RECORD_READY = "record_ready"
HISTORY_CHANGED = "history_changed"

SEARCH_LIMIT = 10


@dataclass(frozen=True)
class RecordReady:
    fips: str
    record: DemographicRecord | None
    error: str | None = None


@dataclass(frozen=True)
class HistoryChanged:
    entries: list[HistoryEntry]
    pinned_id: str | None


@dataclass(frozen=True)
class RecordOutcome:
    fips: str
    record: DemographicRecord | None
    error: str | None = None
    stale: bool = False
    fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.stale


@dataclass(frozen=True)
class CountyDetail:
    record: DemographicRecord
    generations: GenerationalBreakdown | None
    ethnicity: EthnicityBreakdown | None
    income_distribution: IncomeDistribution | None
    income_context: IncomeContext
    household_insights: HouseholdInsights | None
    lgbtq: LgbtqIndicator | None = None


@dataclass(frozen=True)
class SearchResult:
    fips: str
    name: str
    state: str


class DrillDownSession:
    def __init__(
        self,
        *,
        state_features: Sequence[dict[str, Any]],
        county_features: Sequence[dict[str, Any]],
        local_records: dict[str, DemographicRecord] | None = None,
        fetcher: Fetcher | None = None,
        cache: StatisticsCache | None = None,
        history: HistoryTracker | None = None,
    ) -> None:
        self.navigation = NavigationStateMachine(state_features, county_features)
        self.cache = cache or StatisticsCache()
        self.history = history or HistoryTracker()
        self.local_records = dict(local_records or {})
        self.loading: set[str] = set()

        self._fetcher = fetcher
        self._state_names = {
            state_id: str((feature.get("properties") or {}).get("name") or f"State {state_id}")
            for feature in state_features
            if (state_id := feature_id(feature)) is not None
        }
        self._counties: dict[str, dict[str, Any]] = {}
        for feature in county_features:
            county_id = feature_id(feature)
            if county_id is not None and len(county_id) == 5:
                self._counties[county_id] = feature

        self._interest: str | None = None
        self._in_flight: dict[str, asyncio.Task[DemographicRecord]] = {}
        self._listeners: list[SessionListener] = []

        self.navigation.subscribe(self._on_navigation)
        self.history.subscribe(self._on_history)

    # -- events -----------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: str, payload: Any) -> None:
        for listener in self._listeners:
            listener(event, payload)

    def _on_navigation(self, snapshot: NavigationSnapshot) -> None:
        if self._interest is not None and snapshot.state_id != self._interest[:2]:
            self._interest = None
        self._emit(NAVIGATION_CHANGED, snapshot)

    def _on_history(self, entries: list[HistoryEntry], pinned_id: str | None) -> None:
        self._emit(HISTORY_CHANGED, HistoryChanged(entries=entries, pinned_id=pinned_id))

    # -- navigation -------------------------------------------------------

    def select_state(self, state_id: Any) -> NavigationSnapshot:
        return self.navigation.select_state(state_id)

    def back(self) -> NavigationSnapshot:
        return self.navigation.back()

    # -- county data ------------------------------------------------------

    def _county_unit(self, unit_id: Any) -> GeoUnitId:
        try:
            unit = GeoUnitId.parse(unit_id)
        except InvalidGeoUnitIdError as exc:
            raise UnknownGeographyError(str(exc)) from exc
        if not unit.is_county:
            raise UnknownGeographyError(f"{unit.value!r} is not a county GEOID.")
        if unit.value not in self._counties and unit.value not in self.local_records:
            raise UnknownGeographyError(f"No county with id {unit.value!r} in the loaded geography.")
        return unit

    def _known_record(self, unit: GeoUnitId) -> DemographicRecord | None:
        return self.local_records.get(unit.value) or self.cache.get(unit.value)

    def comparison_records(self) -> list[DemographicRecord]:
        merged = {record.fips: record for record in self.cache.records()}
        merged.update(self.local_records)
        return list(merged.values())

    async def open_county(self, unit_id: Any, *, fresh: bool = False) -> RecordOutcome:
        """Look up a county's record and make it the county of interest.

        With ``fresh`` the local dataset and cache are skipped and the fetcher
        asks for the extra subject tables; if that fetch fails, known data is
        shown instead. A result that arrives after another county (or another
        state) took over is cached but otherwise discarded.
        """
        unit = self._county_unit(unit_id)
        if (
            self.navigation.active_state != unit.state_code
            and unit.state_code in self._state_names
            and unit.value in self._counties
        ):
            self.navigation.select_state(unit.state_code)
        self._interest = unit.value

        if not fresh:
            known = self._known_record(unit)
            if known is not None:
                return self._complete(unit, known)

        try:
            record = await self._fetch_shared(unit, fresh)
        except UpstreamAPIError as exc:
            log.warning("Statistics fetch failed for %s: %s", unit.value, exc)
            if self._interest != unit.value:
                return RecordOutcome(fips=unit.value, record=None, error=str(exc), stale=True)
            known = self._known_record(unit) if fresh else None
            if known is not None:
                return self._complete(unit, known, error=str(exc), fallback=True)
            self._emit(RECORD_READY, RecordReady(fips=unit.value, record=None, error=str(exc)))
            return RecordOutcome(fips=unit.value, record=None, error=str(exc))

        if self._interest != unit.value:
            log.info("Discarding stale result for %s", unit.value)
            return RecordOutcome(fips=unit.value, record=record, stale=True)
        return self._complete(unit, record)

    def _complete(
        self,
        unit: GeoUnitId,
        record: DemographicRecord,
        *,
        error: str | None = None,
        fallback: bool = False,
    ) -> RecordOutcome:
        self.history.record_visit(HistoryEntry.from_record(record))
        self._emit(RECORD_READY, RecordReady(fips=unit.value, record=record, error=error))
        return RecordOutcome(fips=unit.value, record=record, error=error, fallback=fallback)

    async def _fetch_shared(self, unit: GeoUnitId, fresh: bool) -> DemographicRecord:
        task = self._in_flight.get(unit.value)
        if task is None:
            self.loading.add(unit.value)
            task = asyncio.ensure_future(self._run_fetch(unit, fresh))
            self._in_flight[unit.value] = task
        # Shielded so one cancelled caller does not cancel the fetch for the others.
        return await asyncio.shield(task)

    async def _run_fetch(self, unit: GeoUnitId, fresh: bool) -> DemographicRecord:
        try:
            if self._fetcher is None:
                raise UpstreamAPIError("fetch", "No statistics source is configured.")
            record = await self._fetcher(unit, fresh)
            self.cache.put(unit.value, record)
            return record
        finally:
            self.loading.discard(unit.value)
            self._in_flight.pop(unit.value, None)

    def detail_for(self, record: DemographicRecord) -> CountyDetail:
        return CountyDetail(
            record=record,
            generations=generational_breakdown_for(record),
            ethnicity=compute_ethnicity_breakdown(record.ethnicity),
            income_distribution=income_distribution_for(record),
            income_context=build_income_context(record, self.comparison_records()),
            household_insights=compute_household_insights(record.household),
            lgbtq=compute_lgbtq_indicator(record.same_sex),
        )

    async def county_detail(
        self, unit_id: Any, *, fresh: bool = False
    ) -> tuple[RecordOutcome, CountyDetail | None]:
        outcome = await self.open_county(unit_id, fresh=fresh)
        if not outcome.ok or outcome.record is None:
            return outcome, None
        return outcome, self.detail_for(outcome.record)

    # -- history ----------------------------------------------------------

    def toggle_pin(self, unit_id: Any) -> str | None:
        return self.history.toggle_pin(unit_id)

    # -- search -----------------------------------------------------------

    def county_name(self, fips: str) -> str:
        record = self.local_records.get(fips) or self.cache.get(fips)
        if record is not None and record.name:
            return record.name.split(",")[0]
        properties = (self._counties.get(fips) or {}).get("properties") or {}
        return str(properties.get("name") or f"County FIPS: {fips}")

    def state_name(self, state_code: str) -> str:
        return self._state_names.get(state_code, f"State {state_code}")

    def search_counties(self, query: str, limit: int = SEARCH_LIMIT) -> list[SearchResult]:
        term = (query or "").strip().lower()
        if not term:
            return []

        results = []
        for fips in self._counties:
            name = self.county_name(fips)
            state = self.state_name(fips[:2])
            if term in name.lower() or term in fips or term in state.lower():
                results.append(SearchResult(fips=fips, name=name, state=state))

        def _sort_key(result: SearchResult) -> tuple[bool, str]:
            exact = result.name.lower() == term or result.fips == term
            return (not exact, result.name.lower())

        results.sort(key=_sort_key)
        return results[:limit]
