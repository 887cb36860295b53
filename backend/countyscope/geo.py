from __future__ import annotations

from dataclasses import dataclass
from typing import Any

STATE_ID_LENGTH = 2
COUNTY_ID_LENGTH = 5


class InvalidGeoUnitIdError(ValueError):
    pass


@dataclass(frozen=True)
class GeoUnitId:
    """Zero-padded state (2 digits) or state+county (5 digits) identifier."""

    value: str

    def __post_init__(self) -> None:
        if not self.value.isdigit() or len(self.value) not in (STATE_ID_LENGTH, COUNTY_ID_LENGTH):
            raise InvalidGeoUnitIdError(f"Unexpected GEOID format: {self.value!r}")

    @classmethod
    def parse(cls, raw: Any) -> GeoUnitId:
        if isinstance(raw, GeoUnitId):
            return raw
        text = str(raw if raw is not None else "").strip()
        # Numeric ids lose their leading zero ("6", 6037).
        if text.isdigit() and len(text) == STATE_ID_LENGTH - 1:
            text = text.zfill(STATE_ID_LENGTH)
        elif text.isdigit() and len(text) == COUNTY_ID_LENGTH - 1:
            text = text.zfill(COUNTY_ID_LENGTH)
        return cls(text)

    @classmethod
    def for_county(cls, state_code: Any, county_code: Any) -> GeoUnitId:
        state = str(state_code).strip()
        county = str(county_code).strip()
        if not state.isdigit() or not county.isdigit():
            raise InvalidGeoUnitIdError(f"Unexpected state/county codes: {state_code!r}, {county_code!r}")
        return cls(state.zfill(STATE_ID_LENGTH) + county.zfill(COUNTY_ID_LENGTH - STATE_ID_LENGTH))

    @classmethod
    def for_state(cls, state_code: Any) -> GeoUnitId:
        state = str(state_code).strip()
        if not state.isdigit():
            raise InvalidGeoUnitIdError(f"Unexpected state code: {state_code!r}")
        return cls(state.zfill(STATE_ID_LENGTH))

    @property
    def is_county(self) -> bool:
        return len(self.value) == COUNTY_ID_LENGTH

    @property
    def state_code(self) -> str:
        return self.value[:STATE_ID_LENGTH]

    @property
    def county_code(self) -> str | None:
        if not self.is_county:
            return None
        return self.value[STATE_ID_LENGTH:]

    @property
    def state(self) -> GeoUnitId:
        return GeoUnitId(self.state_code)

    def __str__(self) -> str:
        return self.value


def normalize_geoid(raw: Any) -> str:
    return GeoUnitId.parse(raw).value
