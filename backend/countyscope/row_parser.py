"""Turn raw ACS API rows into typed values.

An ACS query returns a header row followed by one row per geography; every
cell is a string and cells line up with the ``get=`` variable list. The first
requested variable is always ``NAME``. Parsing fails soft: a cell that is not a
finite number becomes ``None`` instead of aborting the whole record.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Sequence

log = logging.getLogger(__name__)

NAME_VARIABLE = "NAME"


def _b01001_var(n: int) -> str:
    return f"B01001_{n:03d}E"


_AGE_BAND_LABELS = [
    "Under 5 years",
    "5 to 9 years",
    "10 to 14 years",
    "15 to 17 years",
    "18 and 19 years",
    "20 years",
    "21 years",
    "22 to 24 years",
    "25 to 29 years",
    "30 to 34 years",
    "35 to 39 years",
    "40 to 44 years",
    "45 to 49 years",
    "50 to 54 years",
    "55 to 59 years",
    "60 and 61 years",
    "62 to 64 years",
    "65 and 66 years",
    "67 to 69 years",
    "70 to 74 years",
    "75 to 79 years",
    "80 to 84 years",
    "85 years and over",
]

# (label, male column, female column). Male bands are B01001_003..025,
# female bands B01001_027..049.
AGE_BANDS: list[tuple[str, str, str]] = [
    (label, _b01001_var(3 + idx), _b01001_var(27 + idx))
    for idx, label in enumerate(_AGE_BAND_LABELS)
]

AGE_BAND_LABELS = [label for label, _, _ in AGE_BANDS]


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
    if not math.isfinite(parsed):
        return None
    return parsed


def display_name(raw_row: Sequence[Any]) -> str | None:
    if not raw_row:
        return None
    name = raw_row[0]
    if name is None:
        return None
    text = str(name).strip()
    return text or None


def parse_row(raw_row: Sequence[Any], variables: Sequence[str]) -> dict[str, float | None]:
    """Map each requested variable code to its numeric value.

    Position 0 (the display name) is skipped. Extra trailing cells, such as the
    ``state``/``county`` columns the API appends, are ignored; positions past
    the end of a short row come back as ``None``.
    """
    parsed: dict[str, float | None] = {}
    for idx, code in enumerate(variables):
        if idx == 0 or code == NAME_VARIABLE:
            continue
        cell = raw_row[idx] if idx < len(raw_row) else None
        parsed[code] = coerce_number(cell)
    return parsed


def parse_age_buckets(raw_row: Sequence[Any], variables: Sequence[str]) -> dict[str, float] | None:
    """Sum male/female cells per age band, or ``None`` if the row is malformed."""
    if len(raw_row) < len(variables):
        log.warning(
            "Age row has %d cells, expected at least %d; age breakdown unavailable",
            len(raw_row),
            len(variables),
        )
        return None

    positions = {code: idx for idx, code in enumerate(variables)}
    missing = [
        code
        for _, male_code, female_code in AGE_BANDS
        for code in (male_code, female_code)
        if code not in positions
    ]
    if missing:
        log.warning("Age variable list is missing %d band columns (first: %s)", len(missing), missing[0])
        return None

    buckets: dict[str, float] = {}
    for label, male_code, female_code in AGE_BANDS:
        male = coerce_number(raw_row[positions[male_code]])
        female = coerce_number(raw_row[positions[female_code]])
        buckets[label] = (male or 0.0) + (female or 0.0)
    return buckets
