from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .geo import GeoUnitId

Trend = Literal["up", "down", "same"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def _county_fips(value: Any) -> str:
    unit = GeoUnitId.parse(value)
    if not unit.is_county:
        raise ValueError(f"Expected a 5-digit county FIPS, got {unit.value!r}")
    return unit.value


class EthnicityCounts(_Frozen):
    """ACS B03002 counts. Race categories are non-Hispanic; hispanic is any race."""

    total: float | None = None
    white: float | None = None
    black: float | None = None
    native: float | None = None
    asian: float | None = None
    pacific_islander: float | None = None
    some_other: float | None = None
    two_or_more: float | None = None
    hispanic: float | None = None


class HouseholdComposition(_Frozen):
    total_households: float | None = None
    non_family_households: float | None = None
    single_person_households: float | None = None
    average_household_size: float | None = None
    total_housing_units: float | None = None
    units_10_to_19: float | None = None
    units_20_to_49: float | None = None
    units_50_plus: float | None = None


class IncomeBrackets(_Frozen):
    """Household income counts, either 17 ACS B19001 cells or 6 local brackets."""

    counts: tuple[float | None, ...]
    total_households: float | None = None


class GenderSplit(_Frozen):
    male: float | None = None
    female: float | None = None


class SameSexHouseholds(_Frozen):
    """ACS B11009 coupled households; same-sex is married plus unmarried partners."""

    total_households: float | None = None
    same_sex_households: float | None = None


class DemographicRecord(_Frozen):
    fips: str
    name: str
    population: float | None = None
    median_age: float | None = None
    median_household_income: float | None = None
    age_buckets: dict[str, float] | None = None
    ethnicity: EthnicityCounts | None = None
    household: HouseholdComposition | None = None
    income_brackets: IncomeBrackets | None = None
    gender: GenderSplit | None = None
    unemployment_rate: float | None = None
    same_sex: SameSexHouseholds | None = None
    insured_pct: float | None = None
    source: str

    @field_validator("fips", mode="before")
    @classmethod
    def normalize_fips(cls, value: Any) -> str:
        return _county_fips(value)


class Cohort(_Frozen):
    name: str
    min_age: int
    max_age: int | None
    count: float
    pct: float


class GenerationalBreakdown(_Frozen):
    cohorts: tuple[Cohort, ...]
    total: float

    @property
    def percentages(self) -> dict[str, float]:
        return {cohort.name: cohort.pct for cohort in self.cohorts}

    @property
    def counts(self) -> dict[str, float]:
        return {cohort.name: cohort.count for cohort in self.cohorts}


class EthnicityBreakdown(_Frozen):
    white: float
    black: float
    hispanic: float
    asian: float
    other: float


class IncomeBracketShare(_Frozen):
    label: str
    pct: float


class IncomeDistribution(_Frozen):
    brackets: tuple[IncomeBracketShare, ...]


class LgbtqIndicator(_Frozen):
    percent_same_sex: float
    same_sex_households: float
    households_total: float


class HouseholdInsights(_Frozen):
    pct_single: float | None = None
    pct_non_family: float | None = None
    avg_household_size: float | None = None
    pct_multi_unit_housing: float | None = None


class HistogramBin(_Frozen):
    lower: float
    upper: float
    count: int
    contains_value: bool = False


class IncomeContext(_Frozen):
    percentile: int | None = None
    state_median: float | None = None
    delta_vs_state: float | None = None
    comparison_count: int = 0
    histogram: tuple[HistogramBin, ...] = Field(default_factory=tuple)


class TrendComparison(_Frozen):
    population: Trend | None = None
    median_age: Trend | None = None
    median_income: Trend | None = None


class HistoryEntry(_Frozen):
    fips: str
    name: str
    population: float | None = None
    median_age: float | None = None
    median_income: float | None = None

    @field_validator("fips", mode="before")
    @classmethod
    def normalize_fips(cls, value: Any) -> str:
        return _county_fips(value)

    @classmethod
    def from_record(cls, record: DemographicRecord) -> HistoryEntry:
        return cls(
            fips=record.fips,
            name=record.name,
            population=record.population,
            median_age=record.median_age,
            median_income=record.median_household_income,
        )
