from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    DemographicRecord,
    EthnicityBreakdown,
    GenerationalBreakdown,
    HistoryEntry,
    HouseholdInsights,
    IncomeContext,
    IncomeDistribution,
    LgbtqIndicator,
    TrendComparison,
)


class ErrorResponse(BaseModel):
    detail: str


class NavigationResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["overview", "state"]
    state_id: str | None = None
    state_name: str | None = None
    visible_ids: list[str] = Field(default_factory=list)
    loading: list[str] = Field(default_factory=list)


class CountySearchResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fips: str = Field(..., min_length=5, max_length=5)
    name: str
    state: str


class CountySearchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str
    results: list[CountySearchResult]


class CountyDetailResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    record: DemographicRecord
    generations: GenerationalBreakdown | None = None
    ethnicity: EthnicityBreakdown | None = None
    income_distribution: IncomeDistribution | None = None
    income_context: IncomeContext
    household_insights: HouseholdInsights | None = None
    lgbtq: LgbtqIndicator | None = None
    fallback: bool = False
    warning: str | None = None


class HistoryRowResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entry: HistoryEntry
    pinned: bool
    trend: TrendComparison | None = None


class HistoryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pinned_id: str | None = None
    baseline_id: str | None = None
    entries: list[HistoryRowResponse]
