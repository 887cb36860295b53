from __future__ import annotations

import logging
import math
import statistics
from typing import Any, Iterable, Mapping, Sequence

from .geo import GeoUnitId
from .models import (
    Cohort,
    DemographicRecord,
    EthnicityBreakdown,
    EthnicityCounts,
    GenerationalBreakdown,
    HistogramBin,
    HistoryEntry,
    HouseholdComposition,
    HouseholdInsights,
    IncomeBracketShare,
    IncomeContext,
    IncomeDistribution,
    LgbtqIndicator,
    SameSexHouseholds,
    Trend,
    TrendComparison,
)
from .row_parser import coerce_number

log = logging.getLogger(__name__)

# (cohort, min age, max age, age-band labels). Boundaries at 15/25/40/55.
GENERATIONS: list[tuple[str, int, int | None, tuple[str, ...]]] = [
    ("Gen Alpha", 0, 14, ("Under 5 years", "5 to 9 years", "10 to 14 years")),
    (
        "Gen Z",
        15,
        24,
        ("15 to 17 years", "18 and 19 years", "20 years", "21 years", "22 to 24 years"),
    ),
    ("Millennials", 25, 39, ("25 to 29 years", "30 to 34 years", "35 to 39 years")),
    ("Gen X", 40, 54, ("40 to 44 years", "45 to 49 years", "50 to 54 years")),
    (
        "Baby Boomers",
        55,
        None,
        (
            "55 to 59 years",
            "60 and 61 years",
            "62 to 64 years",
            "65 and 66 years",
            "67 to 69 years",
            "70 to 74 years",
            "75 to 79 years",
            "80 to 84 years",
            "85 years and over",
        ),
    ),
]

INCOME_BRACKET_LABELS = ["< $25k", "$25k–50k", "$50k–75k", "$75k–100k", "> $100k"]

# Positions of the 16 B19001 brackets (B19001_002..017) per canonical range.
_FINE_INCOME_GROUPS = [
    range(0, 4),  # < $10k .. $20k-25k
    range(4, 9),  # $25k-30k .. $45k-50k
    range(9, 11),  # $50k-60k, $60k-75k
    range(11, 12),  # $75k-100k
    range(12, 16),  # $100k-125k .. $200k+
]

# Local brackets: under25k, 25k-50k, 50k-75k, 75k-100k, 100k-150k, 150k+
_LOCAL_INCOME_GROUPS = [range(0, 1), range(1, 2), range(2, 3), range(3, 4), range(4, 6)]

FINE_BRACKET_COUNT = 16
FINE_BRACKET_COUNT_WITH_TOTAL = 17
LOCAL_BRACKET_COUNT = 6

DEFAULT_HISTOGRAM_BINS = 10


def _pct_1dp(part: float, whole: float | None) -> float:
    if whole is None or whole <= 0:
        return 0.0
    return round(part / whole * 100.0, 1)


def _ratio_pct(part: float | None, whole: float | None) -> float | None:
    if part is None or whole is None or whole <= 0:
        return None
    return part / whole * 100.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_generational_breakdown(age_buckets: Any) -> GenerationalBreakdown | None:
    """Group exact age-band counts into the five generational cohorts.

    The total is the sum of every supplied bucket, so percentages describe the
    share of the counted population. A zero total gives all-zero percentages.
    """
    if not isinstance(age_buckets, Mapping):
        log.warning("Generational breakdown: invalid input %r", type(age_buckets).__name__)
        return None

    values = {label: coerce_number(count) or 0.0 for label, count in age_buckets.items()}
    total = sum(values.values())

    cohorts = []
    for name, min_age, max_age, labels in GENERATIONS:
        count = sum(values.get(label, 0.0) for label in labels)
        cohorts.append(
            Cohort(
                name=name,
                min_age=min_age,
                max_age=max_age,
                count=count,
                pct=_pct_1dp(count, total) if total > 0 else 0.0,
            )
        )
    return GenerationalBreakdown(cohorts=tuple(cohorts), total=total)


def compute_ethnicity_breakdown(ethnicity: EthnicityCounts | None) -> EthnicityBreakdown | None:
    """Percent white, black, hispanic, asian and other; ``None`` without a total.

    B03002 categories are mutually exclusive, so "other" is whatever the four
    named groups leave of the total: American Indian, Pacific Islander, some
    other race and two or more races.
    """
    if ethnicity is None or ethnicity.total is None or ethnicity.total <= 0:
        return None

    total = ethnicity.total
    white = ethnicity.white or 0.0
    black = ethnicity.black or 0.0
    hispanic = ethnicity.hispanic or 0.0
    asian = ethnicity.asian or 0.0
    other = max(total - white - black - hispanic - asian, 0.0)

    return EthnicityBreakdown(
        white=_pct_1dp(white, total),
        black=_pct_1dp(black, total),
        hispanic=_pct_1dp(hispanic, total),
        asian=_pct_1dp(asian, total),
        other=_pct_1dp(other, total),
    )


def compute_income_distribution(
    bracket_counts: Sequence[Any] | None,
    total_households: float | None = None,
) -> IncomeDistribution | None:
    """Collapse fine ACS or local income brackets into the five canonical ranges.

    Accepts the 17 B19001 cells (universe total first), the 16 brackets alone,
    or the 6 local brackets. Any other shape has no canonical mapping.
    """
    if bracket_counts is None:
        return None

    counts = [coerce_number(value) for value in bracket_counts]
    if len(counts) == FINE_BRACKET_COUNT_WITH_TOTAL:
        if total_households is None:
            total_households = counts[0]
        counts = counts[1:]

    if len(counts) == FINE_BRACKET_COUNT:
        groups = _FINE_INCOME_GROUPS
    elif len(counts) == LOCAL_BRACKET_COUNT:
        groups = _LOCAL_INCOME_GROUPS
    else:
        log.warning("Income distribution: unsupported bracket count %d", len(bracket_counts))
        return None

    total = coerce_number(total_households)
    brackets = []
    for label, positions in zip(INCOME_BRACKET_LABELS, groups):
        bracket_sum = sum(counts[idx] or 0.0 for idx in positions)
        brackets.append(IncomeBracketShare(label=label, pct=_pct_1dp(bracket_sum, total)))
    return IncomeDistribution(brackets=tuple(brackets))


def compute_income_percentile(value: float | None, comparison_values: Iterable[Any] | None) -> int | None:
    """Share of the comparison set strictly below ``value``, as a whole percent."""
    if value is None or comparison_values is None:
        return None
    values = sorted(v for v in (coerce_number(item) for item in comparison_values) if v is not None)
    if not values:
        return None
    below = sum(1 for v in values if v < value)
    return _round_half_up(below / len(values) * 100.0)


def compute_household_insights(household: HouseholdComposition | None) -> HouseholdInsights | None:
    if household is None:
        return None

    multi_unit_parts = [household.units_10_to_19, household.units_20_to_49, household.units_50_plus]
    multi_unit = None
    if any(part is not None for part in multi_unit_parts):
        multi_unit = sum(part or 0.0 for part in multi_unit_parts)

    return HouseholdInsights(
        pct_single=_ratio_pct(household.single_person_households, household.total_households),
        pct_non_family=_ratio_pct(household.non_family_households, household.total_households),
        avg_household_size=household.average_household_size,
        pct_multi_unit_housing=_ratio_pct(multi_unit, household.total_housing_units),
    )


def compute_lgbtq_indicator(households: SameSexHouseholds | None) -> LgbtqIndicator | None:
    """Share of coupled households that are same-sex; ``None`` without a household total."""
    if households is None or not households.total_households or households.total_households <= 0:
        return None
    same_sex = households.same_sex_households or 0.0
    return LgbtqIndicator(
        percent_same_sex=_pct_1dp(same_sex, households.total_households),
        same_sex_households=same_sex,
        households_total=households.total_households,
    )


def _trend(current: float | None, baseline: float | None) -> Trend | None:
    if current is None or baseline is None:
        return None
    if current > baseline:
        return "up"
    if current < baseline:
        return "down"
    return "same"


def compare_to_baseline(current: HistoryEntry, baseline: HistoryEntry | None) -> TrendComparison | None:
    if baseline is None or baseline.fips == current.fips:
        return None
    return TrendComparison(
        population=_trend(current.population, baseline.population),
        median_age=_trend(current.median_age, baseline.median_age),
        median_income=_trend(current.median_income, baseline.median_income),
    )


def _positive_incomes(records: Iterable[DemographicRecord]) -> list[float]:
    return sorted(
        record.median_household_income
        for record in records
        if record.median_household_income is not None and record.median_household_income > 0
    )


def compute_state_median_income(records: Iterable[DemographicRecord], state_code: str) -> float | None:
    in_state = [record for record in records if GeoUnitId.parse(record.fips).state_code == state_code]
    incomes = _positive_incomes(in_state)
    if not incomes:
        return None
    return float(statistics.median(incomes))


def compute_income_histogram(
    values: Sequence[float],
    value: float | None = None,
    bin_count: int = DEFAULT_HISTOGRAM_BINS,
) -> tuple[HistogramBin, ...]:
    """Equal-width bins over ``values``; the bin holding ``value`` is flagged."""
    if not values or bin_count <= 0:
        return ()

    low = min(values)
    high = max(values)
    if high == low:
        return (
            HistogramBin(
                lower=low,
                upper=high,
                count=len(values),
                contains_value=value is not None and value == low,
            ),
        )

    width = (high - low) / bin_count
    counts = [0] * bin_count

    def _index(v: float) -> int:
        return min(int((v - low) / width), bin_count - 1)

    for v in values:
        counts[_index(v)] += 1

    marked = _index(value) if value is not None and low <= value <= high else None
    return tuple(
        HistogramBin(
            lower=low + idx * width,
            upper=low + (idx + 1) * width,
            count=count,
            contains_value=idx == marked,
        )
        for idx, count in enumerate(counts)
    )


def build_income_context(
    record: DemographicRecord,
    comparison_records: Iterable[DemographicRecord],
    bin_count: int = DEFAULT_HISTOGRAM_BINS,
) -> IncomeContext:
    """Where a county's median household income sits among the known counties."""
    comparison = list(comparison_records)
    incomes = _positive_incomes(comparison)
    income = record.median_household_income

    state_median = compute_state_median_income(comparison, GeoUnitId.parse(record.fips).state_code)
    delta = None
    if income is not None and state_median is not None:
        delta = income - state_median

    return IncomeContext(
        percentile=compute_income_percentile(income, incomes) if income else None,
        state_median=state_median,
        delta_vs_state=delta,
        comparison_count=len(incomes),
        histogram=compute_income_histogram(incomes, income, bin_count),
    )


def generational_breakdown_for(record: DemographicRecord) -> GenerationalBreakdown | None:
    # Raw age bands are the only input path; without them there is no breakdown.
    if record.age_buckets is None:
        return None
    return compute_generational_breakdown(record.age_buckets)


def income_distribution_for(record: DemographicRecord) -> IncomeDistribution | None:
    if record.income_brackets is None:
        return None
    return compute_income_distribution(
        record.income_brackets.counts,
        record.income_brackets.total_households,
    )
