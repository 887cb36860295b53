#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

import httpx

from backend.countyscope.census_service import (
    DEFAULT_ACS_YEAR,
    ApiConfig,
    UpstreamAPIError,
    fetch_county_record,
    request_json,
)
from backend.countyscope.demographics import (
    compute_ethnicity_breakdown,
    compute_household_insights,
    compute_lgbtq_indicator,
    generational_breakdown_for,
    income_distribution_for,
)
from backend.countyscope.geo import GeoUnitId, InvalidGeoUnitIdError
from backend.countyscope.models import DemographicRecord

EXIT_INVALID_ARGS = 2
EXIT_UNKNOWN_COUNTY = 3
EXIT_UPSTREAM_FAILURE = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch ACS 5-year demographics for one county and derive its breakdowns."
    )
    parser.add_argument(
        "--fips", type=str, required=True, help="County FIPS code, e.g. 55025 or 6037."
    )
    parser.add_argument(
        "--year",
        type=int,
        default=DEFAULT_ACS_YEAR,
        help=f"ACS 5-year vintage (default: {DEFAULT_ACS_YEAR}).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="Census API key. Anonymous requests are rate limited.",
    )
    parser.add_argument(
        "--subject",
        action="store_true",
        help="Also fetch subject tables (unemployment, insured share).",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output JSON file path. Defaults to scripts/out/county_<fips>.json",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=20.0,
        help="HTTP timeout in seconds (default: 20).",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="Retry count for timeout/429/5xx failures (default: 3).",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print output JSON with indentation.",
    )
    return parser


def default_output_path(fips: str) -> Path:
    return Path("scripts/out") / f"county_{fips}.json"


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.year < 2009:
        parser.error("--year must be 2009 or later.")
    if args.timeout <= 0:
        parser.error("--timeout must be > 0.")
    if args.retries < 0:
        parser.error("--retries must be >= 0.")


def _fmt_number(value: object, *, decimals: int = 1) -> str:
    if not isinstance(value, (int, float)):
        return "N/A"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.{decimals}f}"


def _fmt_currency(value: object) -> str:
    if not isinstance(value, (int, float)):
        return "N/A"
    return f"${int(round(value)):,}"


def _fmt_pct(value: object) -> str:
    if not isinstance(value, (int, float)):
        return "N/A"
    return f"{value:.1f}%"


def build_result(record: DemographicRecord) -> dict[str, object]:
    generations = generational_breakdown_for(record)
    ethnicity = compute_ethnicity_breakdown(record.ethnicity)
    income = income_distribution_for(record)
    household = compute_household_insights(record.household)
    lgbtq = compute_lgbtq_indicator(record.same_sex)
    return {
        "record": record.model_dump(mode="json"),
        "derived": {
            "generations": generations.model_dump(mode="json") if generations else None,
            "ethnicity": ethnicity.model_dump(mode="json") if ethnicity else None,
            "income_distribution": income.model_dump(mode="json") if income else None,
            "household_insights": household.model_dump(mode="json") if household else None,
            "lgbtq": lgbtq.model_dump(mode="json") if lgbtq else None,
        },
    }


async def _fetch(unit: GeoUnitId, config: ApiConfig, include_subject: bool) -> DemographicRecord:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        return await fetch_county_record(
            client,
            unit,
            config,
            include_subject=include_subject,
            requester=request_json,
        )


def lookup_county(args: argparse.Namespace, unit: GeoUnitId) -> dict[str, object]:
    config = ApiConfig(
        acs_year=args.year,
        api_key=args.api_key,
        timeout=args.timeout,
        retries=args.retries,
    )
    record = asyncio.run(_fetch(unit, config, args.subject))
    return build_result(record)


def print_summary(result: dict[str, object], output_path: Path) -> None:
    record = result["record"]
    assert isinstance(record, dict)
    derived = result["derived"]
    assert isinstance(derived, dict)

    print(f"Saved: {output_path}")
    print(f"County: {record.get('name')} ({record.get('fips')})")
    print(f"- Population: {_fmt_number(record.get('population'), decimals=0)}")
    print(f"- Median age: {_fmt_number(record.get('median_age'))}")
    print(f"- Median household income: {_fmt_currency(record.get('median_household_income'))}")
    if record.get("unemployment_rate") is not None:
        print(f"- Unemployment: {_fmt_pct(record.get('unemployment_rate'))}")
    lgbtq = derived.get("lgbtq")
    if isinstance(lgbtq, dict):
        print(f"- Same-sex couple households: {_fmt_pct(lgbtq['percent_same_sex'])}")

    generations = derived.get("generations")
    if isinstance(generations, dict):
        print("")
        print("Generations:")
        for cohort in generations.get("cohorts", []):
            print(f"- {cohort['name']}: {_fmt_pct(cohort['pct'])}")

    ethnicity = derived.get("ethnicity")
    if isinstance(ethnicity, dict):
        parts = ", ".join(f"{key} {_fmt_pct(value)}" for key, value in ethnicity.items())
        print("")
        print(f"Ethnicity: {parts}")


def write_output(payload: dict[str, object], output_path: Path, pretty: bool) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        if pretty:
            json.dump(payload, f, indent=2, ensure_ascii=True)
            f.write("\n")
        else:
            json.dump(payload, f, ensure_ascii=True)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    validate_args(parser, args)

    try:
        unit = GeoUnitId.parse(args.fips)
    except InvalidGeoUnitIdError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID_ARGS
    if not unit.is_county:
        print(f"Error: {unit.value!r} is a state code; pass a 5-digit county FIPS.", file=sys.stderr)
        return EXIT_UNKNOWN_COUNTY

    output_path = args.out or default_output_path(unit.value)

    try:
        result = lookup_county(args, unit)
        write_output(result, output_path, pretty=args.pretty)
        print_summary(result, output_path)
        return 0
    except UpstreamAPIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_UPSTREAM_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
