from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

import httpx

from .geo import GeoUnitId
from .models import (
    DemographicRecord,
    EthnicityCounts,
    HouseholdComposition,
    IncomeBrackets,
    SameSexHouseholds,
)
from .row_parser import (
    AGE_BANDS,
    NAME_VARIABLE,
    display_name,
    parse_age_buckets,
    parse_row,
)

log = logging.getLogger(__name__)

CENSUS_API_BASE_URL = "https://api.census.gov/data"
DEFAULT_ACS_YEAR = 2022
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

CORE_VARIABLES = [
    NAME_VARIABLE,
    "B01001_001E",  # total population
    "B01002_001E",  # median age
    "B19013_001E",  # median household income
]

ETHNICITY_VARIABLES = [NAME_VARIABLE] + [f"B03002_{n:03d}E" for n in range(1, 13)]

AGE_VARIABLES = (
    [NAME_VARIABLE, "B01001_001E"]
    + [male for _, male, _ in AGE_BANDS]
    + [female for _, _, female in AGE_BANDS]
)

HOUSEHOLD_VARIABLES = [
    NAME_VARIABLE,
    "B11001_001E",  # households
    "B11001_007E",  # non-family households
    "B11001_008E",  # householder living alone
    "B25010_001E",  # average household size
    "B25024_001E",  # housing units by units in structure
    "B25024_007E",  # 10 to 19 units
    "B25024_008E",  # 20 to 49 units
    "B25024_009E",  # 50 or more units
]

INCOME_VARIABLES = [NAME_VARIABLE] + [f"B19001_{n:03d}E" for n in range(1, 18)]

LGBTQ_VARIABLES = [
    NAME_VARIABLE,
    "B11009_001E",  # coupled households
    "B11009_003E",  # same-sex married couples
    "B11009_004E",  # same-sex unmarried partners
]

SUBJECT_VARIABLES = [
    NAME_VARIABLE,
    "S1901_C01_012E",  # median household income
    "S2301_C04_001E",  # unemployment rate
    "S2701_C03_001E",  # percent insured
]

# group name -> (dataset path suffix, variables)
VARIABLE_GROUPS: dict[str, tuple[str, list[str]]] = {
    "core": ("", CORE_VARIABLES),
    "ethnicity": ("", ETHNICITY_VARIABLES),
    "age": ("", AGE_VARIABLES),
    "household": ("", HOUSEHOLD_VARIABLES),
    "income": ("", INCOME_VARIABLES),
    "household_lgbtq": ("", LGBTQ_VARIABLES),
}
SUBJECT_GROUP: dict[str, tuple[str, list[str]]] = {
    "subject": ("/subject", SUBJECT_VARIABLES),
}


@dataclass(frozen=True)
class ApiConfig:
    acs_year: int = DEFAULT_ACS_YEAR
    api_key: str | None = None
    timeout: float = 20.0
    retries: int = 3


class UpstreamAPIError(RuntimeError):
    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


RawRow = list[Any]
Requester = Callable[..., Awaitable[Any]]


def _backoff_seconds(attempt: int) -> float:
    return min(8.0, 0.5 * (2**attempt))


def _short_error_text(text: str, limit: int = 240) -> str:
    one_line = " ".join(text.split())
    if len(one_line) <= limit:
        return one_line
    return one_line[:limit] + "..."


async def request_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None,
    stage: str,
    config: ApiConfig,
) -> Any:
    """GET a Census API endpoint and decode its JSON body.

    Timeouts, transport errors and 429/5xx answers are retried with backoff up
    to ``config.retries`` times; anything else fails on the first attempt.
    """
    headers = {"User-Agent": "countyscope/0.1"}
    attempts = config.retries + 1
    for attempt in range(attempts):
        final = attempt == attempts - 1
        try:
            response = await client.get(url, params=params, timeout=config.timeout, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            if final:
                raise UpstreamAPIError(
                    stage, f"Network error after {attempts} attempt(s): {exc!s}"
                ) from exc
            log.info("Retrying %s after network error: %s", stage, exc)
            await asyncio.sleep(_backoff_seconds(attempt))
            continue

        status = response.status_code
        if status in RETRYABLE_STATUS_CODES and not final:
            log.info("Retrying %s after HTTP %d", stage, status)
            await asyncio.sleep(_backoff_seconds(attempt))
            continue
        if status == 204:
            # Unknown geographies come back as an empty 204.
            raise UpstreamAPIError(stage, "No data for the requested geography (HTTP 204).")
        if status >= 400:
            raise UpstreamAPIError(stage, f"HTTP {status}: {_short_error_text(response.text)}")

        try:
            return response.json()
        except ValueError as exc:
            # A rejected API key is reported as an HTML page with status 200.
            raise UpstreamAPIError(
                stage, f"Non-JSON response (HTTP {status}): {_short_error_text(response.text, 120)}"
            ) from exc

    raise UpstreamAPIError(stage, "No request attempts were made.")


def _acs_url(config: ApiConfig, dataset_suffix: str) -> str:
    return f"{CENSUS_API_BASE_URL}/{config.acs_year}/acs/acs5{dataset_suffix}"


async def fetch_variable_group(
    client: httpx.AsyncClient,
    *,
    unit: GeoUnitId,
    variables: Sequence[str],
    stage: str,
    config: ApiConfig,
    dataset_suffix: str = "",
    requester: Requester | None = None,
) -> RawRow:
    """Fetch one county's row for ``variables``; the header row is dropped."""
    requester_fn = requester or request_json
    params: dict[str, Any] = {
        "get": ",".join(variables),
        "for": f"county:{unit.county_code}",
        "in": f"state:{unit.state_code}",
    }
    if config.api_key:
        params["key"] = config.api_key

    payload = await requester_fn(
        client,
        _acs_url(config, dataset_suffix),
        params=params,
        stage=stage,
        config=config,
    )
    if not isinstance(payload, list) or len(payload) < 2 or not isinstance(payload[1], list):
        raise UpstreamAPIError(stage, "No data rows returned for the requested county.")
    return payload[1]


async def fetch_county_rows(
    client: httpx.AsyncClient,
    unit: GeoUnitId,
    config: ApiConfig,
    *,
    include_subject: bool = False,
    requester: Requester | None = None,
) -> dict[str, RawRow]:
    if not unit.is_county:
        raise ValueError(f"Expected a county GEOID, got {unit.value!r}")

    groups = dict(VARIABLE_GROUPS)
    if include_subject:
        groups.update(SUBJECT_GROUP)

    log.info("Fetching ACS %s groups %s for county %s", config.acs_year, sorted(groups), unit.value)
    rows = await asyncio.gather(
        *(
            fetch_variable_group(
                client,
                unit=unit,
                variables=variables,
                stage=name,
                config=config,
                dataset_suffix=suffix,
                requester=requester,
            )
            for name, (suffix, variables) in groups.items()
        )
    )
    return dict(zip(groups.keys(), rows))


def _normalize_median(value: float | None) -> float | None:
    # The API reports unavailable medians as large negative sentinels.
    if value is not None and value < 0:
        return None
    return value


def build_record_from_rows(
    fips: str,
    rows: dict[str, RawRow],
    *,
    acs_year: int = DEFAULT_ACS_YEAR,
) -> DemographicRecord:
    """Parse the variable-group rows for one county into a DemographicRecord.

    Only the ``core`` group is required; every other group is optional and
    leaves its part of the record empty when absent.
    """
    unit = GeoUnitId.parse(fips)
    core_row = rows["core"]
    core = parse_row(core_row, CORE_VARIABLES)

    ethnicity = None
    if "ethnicity" in rows:
        values = parse_row(rows["ethnicity"], ETHNICITY_VARIABLES)
        ethnicity = EthnicityCounts(
            total=values["B03002_001E"],
            white=values["B03002_003E"],
            black=values["B03002_004E"],
            native=values["B03002_005E"],
            asian=values["B03002_006E"],
            pacific_islander=values["B03002_007E"],
            some_other=values["B03002_008E"],
            two_or_more=values["B03002_009E"],
            hispanic=values["B03002_012E"],
        )

    age_buckets = None
    if "age" in rows:
        age_buckets = parse_age_buckets(rows["age"], AGE_VARIABLES)

    household = None
    if "household" in rows:
        values = parse_row(rows["household"], HOUSEHOLD_VARIABLES)
        household = HouseholdComposition(
            total_households=values["B11001_001E"],
            non_family_households=values["B11001_007E"],
            single_person_households=values["B11001_008E"],
            average_household_size=values["B25010_001E"],
            total_housing_units=values["B25024_001E"],
            units_10_to_19=values["B25024_007E"],
            units_20_to_49=values["B25024_008E"],
            units_50_plus=values["B25024_009E"],
        )

    income_brackets = None
    if "income" in rows:
        values = parse_row(rows["income"], INCOME_VARIABLES)
        counts = tuple(values[code] for code in INCOME_VARIABLES[1:])
        income_brackets = IncomeBrackets(counts=counts, total_households=values["B19001_001E"])

    same_sex = None
    if "household_lgbtq" in rows:
        values = parse_row(rows["household_lgbtq"], LGBTQ_VARIABLES)
        married, unmarried = values["B11009_003E"], values["B11009_004E"]
        same_sex_count = None
        if married is not None or unmarried is not None:
            same_sex_count = (married or 0.0) + (unmarried or 0.0)
        same_sex = SameSexHouseholds(
            total_households=values["B11009_001E"],
            same_sex_households=same_sex_count,
        )

    median_income = _normalize_median(core["B19013_001E"])
    unemployment_rate = None
    insured_pct = None
    if "subject" in rows:
        subject = parse_row(rows["subject"], SUBJECT_VARIABLES)
        if median_income is None:
            median_income = _normalize_median(subject["S1901_C01_012E"])
        unemployment_rate = _normalize_median(subject["S2301_C04_001E"])
        insured_pct = _normalize_median(subject["S2701_C03_001E"])

    return DemographicRecord(
        fips=unit.value,
        name=display_name(core_row) or f"County FIPS: {unit.value}",
        population=core["B01001_001E"],
        median_age=_normalize_median(core["B01002_001E"]),
        median_household_income=median_income,
        age_buckets=age_buckets,
        ethnicity=ethnicity,
        household=household,
        income_brackets=income_brackets,
        same_sex=same_sex,
        unemployment_rate=unemployment_rate,
        insured_pct=insured_pct,
        source=f"U.S. Census Bureau ACS {acs_year} (5-year estimates)",
    )


async def fetch_county_record(
    client: httpx.AsyncClient,
    unit_id: Any,
    config: ApiConfig,
    *,
    include_subject: bool = False,
    requester: Requester | None = None,
) -> DemographicRecord:
    unit = GeoUnitId.parse(unit_id)
    rows = await fetch_county_rows(
        client,
        unit,
        config,
        include_subject=include_subject,
        requester=requester,
    )
    return build_record_from_rows(unit.value, rows, acs_year=config.acs_year)


def make_census_fetcher(
    config: ApiConfig,
) -> Callable[[GeoUnitId, bool], Awaitable[DemographicRecord]]:
    """Fetcher for the session: one AsyncClient per county lookup."""

    async def _fetch(unit: GeoUnitId, fresh: bool) -> DemographicRecord:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await fetch_county_record(
                client,
                unit,
                config,
                include_subject=fresh,
                requester=request_json,
            )

    return _fetch
