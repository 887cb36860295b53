from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .census_service import make_census_fetcher
from .config import Settings, load_settings
from .geo import InvalidGeoUnitIdError, normalize_geoid
from .history import HistoryTracker
from .local_dataset import load_features, load_local_dataset
from .navigation import NavigationSnapshot, UnknownGeographyError
from .schemas import (
    CountyDetailResponse,
    CountySearchResponse,
    CountySearchResult,
    ErrorResponse,
    HistoryResponse,
    HistoryRowResponse,
    NavigationResponse,
)
from .session import SEARCH_LIMIT, DrillDownSession, Fetcher
from .stats_cache import StatisticsCache

log = logging.getLogger(__name__)

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown state or county"}}
_COUNTY_ERRORS = {
    **_NOT_FOUND,
    409: {"model": ErrorResponse, "description": "Superseded by a newer selection"},
    502: {"model": ErrorResponse, "description": "Census API failure with no known data"},
}


def build_session(settings: Settings, fetcher: Fetcher | None = None) -> DrillDownSession:
    state_features = load_features(settings.states_path)
    county_features = load_features(settings.counties_path)
    local_records = load_local_dataset(settings.demographics_path)
    log.info(
        "Loaded %d states, %d counties, %d local records",
        len(state_features),
        len(county_features),
        len(local_records),
    )
    return DrillDownSession(
        state_features=state_features,
        county_features=county_features,
        local_records=local_records,
        fetcher=fetcher or make_census_fetcher(settings.api_config()),
        cache=StatisticsCache(settings.cache_max_entries),
        history=HistoryTracker(settings.history_limit),
    )


def _session(request: Request) -> DrillDownSession:
    return request.app.state.session


def _navigation_payload(session: DrillDownSession, snapshot: NavigationSnapshot) -> NavigationResponse:
    return NavigationResponse(
        level=snapshot.level.value,
        state_id=snapshot.state_id,
        state_name=session.state_name(snapshot.state_id) if snapshot.state_id else None,
        visible_ids=snapshot.visible_ids,
        loading=sorted(session.loading),
    )


def _history_payload(session: DrillDownSession) -> HistoryResponse:
    baseline = session.history.baseline()
    return HistoryResponse(
        pinned_id=session.history.pinned_id,
        baseline_id=baseline.fips if baseline else None,
        entries=[
            HistoryRowResponse(entry=row.entry, pinned=row.pinned, trend=row.trend)
            for row in session.history.rows()
        ],
    )


def create_app(settings: Settings | None = None, fetcher: Fetcher | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="Countyscope API", version="0.1.0")
    app.state.session = build_session(settings, fetcher)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/navigation", response_model=NavigationResponse)
    async def navigation(request: Request) -> NavigationResponse:
        session = _session(request)
        return _navigation_payload(session, session.navigation.snapshot)

    @app.post(
        "/api/navigation/states/{state_id}",
        response_model=NavigationResponse,
        responses=_NOT_FOUND,
    )
    async def select_state(state_id: str, request: Request) -> NavigationResponse:
        """Drill into a state; selecting the active state again returns to the overview."""
        session = _session(request)
        try:
            snapshot = session.select_state(state_id)
        except UnknownGeographyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _navigation_payload(session, snapshot)

    @app.post("/api/navigation/back", response_model=NavigationResponse)
    async def navigate_back(request: Request) -> NavigationResponse:
        session = _session(request)
        return _navigation_payload(session, session.back())

    @app.get("/api/counties/search", response_model=CountySearchResponse)
    async def search_counties(
        request: Request,
        q: str = Query(..., min_length=1, max_length=100),
        limit: int = Query(SEARCH_LIMIT, ge=1, le=SEARCH_LIMIT),
    ) -> CountySearchResponse:
        results = _session(request).search_counties(q, limit=limit)
        return CountySearchResponse(
            query=q,
            results=[
                CountySearchResult(fips=result.fips, name=result.name, state=result.state)
                for result in results
            ],
        )

    @app.get("/api/counties/{fips}", response_model=CountyDetailResponse, responses=_COUNTY_ERRORS)
    async def county_detail(
        fips: str,
        request: Request,
        fresh: bool = Query(False),
    ) -> CountyDetailResponse:
        """Demographics and derived breakdowns for one county.

        Opening a county also drills into its state and records a history
        visit. ``fresh`` skips the bundled dataset and cache.
        """
        session = _session(request)
        try:
            outcome, detail = await session.county_detail(fips, fresh=fresh)
        except UnknownGeographyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

        if outcome.stale:
            raise HTTPException(
                status_code=409,
                detail=f"County {outcome.fips} was superseded by a newer selection.",
            )
        if detail is None:
            raise HTTPException(status_code=502, detail=outcome.error or "No record available.")

        return CountyDetailResponse(
            record=detail.record,
            generations=detail.generations,
            ethnicity=detail.ethnicity,
            income_distribution=detail.income_distribution,
            income_context=detail.income_context,
            household_insights=detail.household_insights,
            lgbtq=detail.lgbtq,
            fallback=outcome.fallback,
            warning=outcome.error,
        )

    @app.get("/api/history", response_model=HistoryResponse)
    async def history(request: Request) -> HistoryResponse:
        return _history_payload(_session(request))

    @app.post("/api/history/{fips}/pin", response_model=HistoryResponse, responses=_NOT_FOUND)
    async def toggle_pin(fips: str, request: Request) -> HistoryResponse:
        """Pin a visited county as the comparison baseline, or unpin it."""
        session = _session(request)
        try:
            session.toggle_pin(normalize_geoid(fips))
        except InvalidGeoUnitIdError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _history_payload(session)

    return app


app = create_app()
