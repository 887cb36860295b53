"""Load the bundled geography and demographics files.

The demographics file uses the front-end's camelCase record shape::

    {"data": {"55025": {"name": "Dane County, Wisconsin", "population": 561504,
                        "medianAge": 35.1, "income": {"medianHousehold": 84297,
                        "brackets": {"under25k": 14.2, ...}}, "age": {...},
                        "ethnicityBreakdown": {...}, "householdComposition": {...}}}}
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .geo import GeoUnitId, InvalidGeoUnitIdError
from .models import (
    DemographicRecord,
    EthnicityCounts,
    GenderSplit,
    HouseholdComposition,
    IncomeBrackets,
    SameSexHouseholds,
)
from .row_parser import coerce_number

log = logging.getLogger(__name__)

LOCAL_SOURCE = "Local demographics dataset"

LOCAL_BRACKET_KEYS = ["under25k", "25k-50k", "50k-75k", "75k-100k", "100k-150k", "150k+"]


def _read_json(path: Path) -> Any:
    if not path.is_file():
        log.warning("Data file not found: %s", path)
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("Could not read %s: %s", path, exc)
        return None


def load_features(path: Path | str | None) -> list[dict[str, Any]]:
    """Features of a GeoJSON FeatureCollection; only their ``id`` is used."""
    if path is None:
        return []
    payload = _read_json(Path(path))
    if isinstance(payload, dict):
        features = payload.get("features")
        if isinstance(features, list):
            return [feature for feature in features if isinstance(feature, dict)]
    if isinstance(payload, list):
        return [feature for feature in payload if isinstance(feature, dict)]
    return []


def _section(payload: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = payload.get(key)
    return value if isinstance(value, dict) else None


def _ethnicity(section: dict[str, Any] | None) -> EthnicityCounts | None:
    if section is None:
        return None
    return EthnicityCounts(
        total=coerce_number(section.get("total")),
        white=coerce_number(section.get("white")),
        black=coerce_number(section.get("black")),
        native=coerce_number(section.get("native")),
        asian=coerce_number(section.get("asian")),
        pacific_islander=coerce_number(section.get("pacificIslander")),
        some_other=coerce_number(section.get("someOther")),
        two_or_more=coerce_number(section.get("twoOrMore")),
        hispanic=coerce_number(section.get("hispanic")),
    )


def _household(section: dict[str, Any] | None) -> HouseholdComposition | None:
    if section is None:
        return None
    return HouseholdComposition(
        total_households=coerce_number(section.get("totalHouseholds")),
        non_family_households=coerce_number(section.get("nonFamilyHouseholds")),
        single_person_households=coerce_number(section.get("singlePersonHouseholds")),
        average_household_size=coerce_number(section.get("averageHouseholdSize")),
        total_housing_units=coerce_number(section.get("totalHousingUnits")),
        units_10_to_19=coerce_number(section.get("structures10to19Units")),
        units_20_to_49=coerce_number(section.get("structures20to49Units")),
        units_50_plus=coerce_number(section.get("structures50PlusUnits")),
    )


def _income_brackets(income: dict[str, Any] | None) -> IncomeBrackets | None:
    brackets = _section(income, "brackets") if income else None
    if brackets is None:
        return None
    counts = tuple(coerce_number(brackets.get(key)) for key in LOCAL_BRACKET_KEYS)
    total = coerce_number(income.get("totalHouseholds")) if income else None
    if total is None:
        # Shares that already add up to ~100 work the same as counts.
        total = sum(count or 0.0 for count in counts)
    return IncomeBrackets(counts=counts, total_households=total)


def record_from_local(key: Any, payload: dict[str, Any]) -> DemographicRecord:
    unit = GeoUnitId.parse(payload.get("fips") or key)
    if not unit.is_county:
        raise InvalidGeoUnitIdError(f"Expected a county FIPS, got {unit.value!r}")
    fips = unit.value
    income = _section(payload, "income")
    median_income = coerce_number(income.get("medianHousehold")) if income else None
    if median_income is None:
        median_income = coerce_number(payload.get("medianIncome"))

    age = _section(payload, "age")
    gender = _section(payload, "gender")
    lgbtq = _section(payload, "lgbtq")

    return DemographicRecord(
        fips=fips,
        name=str(payload.get("name") or f"County {fips}"),
        population=coerce_number(payload.get("population")),
        median_age=coerce_number(payload.get("medianAge")),
        median_household_income=median_income,
        age_buckets={label: coerce_number(count) or 0.0 for label, count in age.items()} if age else None,
        ethnicity=_ethnicity(_section(payload, "ethnicityBreakdown")),
        household=_household(_section(payload, "householdComposition")),
        income_brackets=_income_brackets(income),
        gender=GenderSplit(
            male=coerce_number(gender.get("male")),
            female=coerce_number(gender.get("female")),
        )
        if gender
        else None,
        same_sex=SameSexHouseholds(
            total_households=coerce_number(lgbtq.get("totalHouseholds")),
            same_sex_households=coerce_number(lgbtq.get("sameSexHouseholds")),
        )
        if lgbtq
        else None,
        unemployment_rate=coerce_number(payload.get("unemployment")),
        insured_pct=coerce_number(payload.get("insuredPct")),
        source=str(payload.get("source") or LOCAL_SOURCE),
    )


def parse_local_dataset(payload: Any) -> dict[str, DemographicRecord]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict):
        return {}

    records: dict[str, DemographicRecord] = {}
    for key, value in payload.items():
        if not isinstance(value, dict):
            continue
        try:
            record = record_from_local(key, value)
        except InvalidGeoUnitIdError as exc:
            log.warning("Skipping local record %r: %s", key, exc)
            continue
        records[record.fips] = record
    return records


def load_local_dataset(path: Path | str | None) -> dict[str, DemographicRecord]:
    if path is None:
        return {}
    return parse_local_dataset(_read_json(Path(path)))
