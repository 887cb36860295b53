"""Drill-down navigation between the national overview and a single state.

Two states: ``overview`` (nothing selected, every state drawn) and ``state``
(one state active, its counties visible). Selecting the active state again
toggles back to the overview; selecting a different state switches directly.
Whether a county's data is loading is tracked elsewhere so navigation never
waits on a fetch.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

from .geo import GeoUnitId, InvalidGeoUnitIdError


class Level(str, Enum):
    OVERVIEW = "overview"
    STATE = "state"


class UnknownGeographyError(RuntimeError):
    pass


@dataclass(frozen=True)
class NavigationSnapshot:
    level: Level
    state_id: str | None
    visible_units: tuple[dict[str, Any], ...]

    @property
    def visible_ids(self) -> list[str]:
        return [str(unit["id"]) for unit in self.visible_units]


NavigationListener = Callable[[NavigationSnapshot], None]

OVERVIEW = NavigationSnapshot(level=Level.OVERVIEW, state_id=None, visible_units=())


def feature_id(feature: dict[str, Any]) -> str | None:
    try:
        return GeoUnitId.parse(feature.get("id")).value
    except InvalidGeoUnitIdError:
        return None


class NavigationStateMachine:
    def __init__(
        self,
        state_features: Sequence[dict[str, Any]],
        county_features: Sequence[dict[str, Any]],
    ) -> None:
        self._states: dict[str, dict[str, Any]] = {}
        for feature in state_features:
            state_id = feature_id(feature)
            if state_id is not None:
                self._states[state_id] = feature

        self._counties_by_state: dict[str, list[dict[str, Any]]] = {}
        for feature in county_features:
            county_id = feature_id(feature)
            if county_id is None or len(county_id) != 5:
                continue
            self._counties_by_state.setdefault(county_id[:2], []).append(feature)

        self._snapshot = OVERVIEW
        self._listeners: list[NavigationListener] = []

    @property
    def snapshot(self) -> NavigationSnapshot:
        return self._snapshot

    @property
    def level(self) -> Level:
        return self._snapshot.level

    @property
    def active_state(self) -> str | None:
        return self._snapshot.state_id

    def state_feature(self, state_id: Any) -> dict[str, Any] | None:
        return self._states.get(GeoUnitId.for_state(state_id).value)

    def subscribe(self, listener: NavigationListener) -> None:
        self._listeners.append(listener)

    def select_state(self, state_id: Any) -> NavigationSnapshot:
        try:
            target = GeoUnitId.for_state(state_id).value
        except InvalidGeoUnitIdError as exc:
            raise UnknownGeographyError(str(exc)) from exc

        if self._snapshot.state_id == target:
            return self.back()

        if target not in self._states:
            raise UnknownGeographyError(f"No state with id {target!r} in the loaded geography.")
        children = self._counties_by_state.get(target, [])
        if not children:
            raise UnknownGeographyError(f"State {target!r} has no counties in the loaded geography.")

        return self._transition(
            NavigationSnapshot(level=Level.STATE, state_id=target, visible_units=tuple(children))
        )

    def back(self) -> NavigationSnapshot:
        if self._snapshot.level is Level.OVERVIEW:
            return self._snapshot
        return self._transition(OVERVIEW)

    def _transition(self, snapshot: NavigationSnapshot) -> NavigationSnapshot:
        self._snapshot = snapshot
        for listener in self._listeners:
            listener(snapshot)
        return snapshot
