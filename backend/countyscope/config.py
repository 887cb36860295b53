from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .census_service import DEFAULT_ACS_YEAR, ApiConfig
from .history import HISTORY_LIMIT
from .stats_cache import CACHE_MAX_ENTRIES

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"

# First existing file wins.
DOTENV_CANDIDATES: tuple[Path, ...] = (_PROJECT_ROOT / ".env", Path(".env"))


def read_env_file(path: Path) -> dict[str, str]:
    """``KEY=value`` pairs from a dotenv file; comments, blanks and quotes are stripped."""
    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        if not sep or not key.strip() or line.startswith("#"):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def _environment(env_files: Iterable[Path]) -> dict[str, str]:
    """Process environment layered over the first dotenv file found."""
    merged: dict[str, str] = {}
    for path in env_files:
        if path.is_file():
            merged.update(read_env_file(path))
            break
    merged.update(os.environ)
    return merged


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_path(env: Mapping[str, str], name: str, default: Path) -> Path:
    raw = env.get(name, "").strip()
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    census_api_key: str | None = None
    acs_year: int = DEFAULT_ACS_YEAR
    acs_timeout: float = 20.0
    acs_retries: int = 3
    states_path: Path = DEFAULT_DATA_DIR / "states.geojson"
    counties_path: Path = DEFAULT_DATA_DIR / "counties.geojson"
    demographics_path: Path = DEFAULT_DATA_DIR / "demographics.json"
    cache_max_entries: int = CACHE_MAX_ENTRIES
    history_limit: int = HISTORY_LIMIT
    cors_origins: tuple[str, ...] = ("*",)

    def api_config(self) -> ApiConfig:
        return ApiConfig(
            acs_year=self.acs_year,
            api_key=self.census_api_key,
            timeout=self.acs_timeout,
            retries=self.acs_retries,
        )


def load_settings(env_files: Iterable[Path] | None = None) -> Settings:
    """Build settings from the environment; a dotenv file only fills unset names.

    ``env_files`` defaults to ``DOTENV_CANDIDATES``. The process environment is
    read, never modified.
    """
    env = _environment(DOTENV_CANDIDATES if env_files is None else env_files)
    raw_origins = env.get("CORS_ORIGINS", "*")
    origins = tuple(origin.strip() for origin in raw_origins.split(",") if origin.strip())

    settings = Settings(
        census_api_key=env.get("CENSUS_API_KEY", "").strip() or None,
        acs_year=_env_int(env, "ACS_YEAR", DEFAULT_ACS_YEAR),
        acs_timeout=_env_float(env, "ACS_TIMEOUT", 20.0),
        acs_retries=_env_int(env, "ACS_RETRIES", 3),
        states_path=_env_path(env, "GEOGRAPHY_STATES_PATH", DEFAULT_DATA_DIR / "states.geojson"),
        counties_path=_env_path(env, "GEOGRAPHY_COUNTIES_PATH", DEFAULT_DATA_DIR / "counties.geojson"),
        demographics_path=_env_path(env, "DEMOGRAPHICS_PATH", DEFAULT_DATA_DIR / "demographics.json"),
        cache_max_entries=_env_int(env, "CACHE_MAX_ENTRIES", CACHE_MAX_ENTRIES),
        history_limit=_env_int(env, "HISTORY_LIMIT", HISTORY_LIMIT),
        cors_origins=origins or ("*",),
    )
    if settings.acs_timeout <= 0:
        raise ValueError("ACS_TIMEOUT must be > 0.")
    if settings.acs_retries < 0:
        raise ValueError("ACS_RETRIES must be >= 0.")
    return settings
