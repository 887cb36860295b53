from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "scripts"))
import county_lookup as cl  # noqa: E402

from backend.countyscope import census_service as cs  # noqa: E402

NAME = "Dane County, Wisconsin"


def _payloads() -> dict[str, list[list[str]]]:
    def payload(variables: list[str], values: list[str]) -> list[list[str]]:
        return [variables, [NAME] + values]

    return {
        "core": payload(cs.CORE_VARIABLES, ["561504", "35.1", "84297"]),
        "ethnicity": payload(
            cs.ETHNICITY_VARIABLES,
            ["1000", "800", "500", "120", "5", "80", "1", "4", "10", "0", "0", "200"],
        ),
        "age": payload(cs.AGE_VARIABLES, ["460"] + ["10"] * 46),
        "household": payload(cs.HOUSEHOLD_VARIABLES, ["200", "80", "50", "2.4", "400", "20", "10", "10"]),
        "income": payload(cs.INCOME_VARIABLES, ["200"] + ["10"] * 16),
        "household_lgbtq": payload(cs.LGBTQ_VARIABLES, ["400", "6", "4"]),
        "subject": payload(cs.SUBJECT_VARIABLES, ["84297", "2.9", "95.8"]),
    }


def test_cli_smoke_valid_run_writes_output(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payloads = _payloads()
    stages: list[str] = []

    async def fake_request_json(client, url, *, params, stage, config):  # type: ignore[no-untyped-def]
        stages.append(stage)
        assert params["for"] == "county:025"
        return payloads[stage]

    monkeypatch.setattr(cl, "request_json", fake_request_json)

    out_file = tmp_path / "county.json"
    exit_code = cl.main(["--fips", "55025", "--out", str(out_file), "--pretty"])
    assert exit_code == 0
    assert "subject" not in stages

    result = json.loads(out_file.read_text(encoding="utf-8"))
    assert result["record"]["fips"] == "55025"
    assert result["derived"]["ethnicity"]["other"] == 10.0
    assert result["derived"]["generations"]["total"] == 460
    assert result["derived"]["household_insights"]["pct_single"] == pytest.approx(25.0)
    assert result["derived"]["lgbtq"]["percent_same_sex"] == 2.5

    output = capsys.readouterr().out
    assert "Dane County, Wisconsin (55025)" in output
    assert "Median household income: $84,297" in output
    assert "Same-sex couple households: 2.5%" in output


def test_cli_subject_flag_fetches_subject_tables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    payloads = _payloads()
    stages: list[str] = []

    async def fake_request_json(client, url, *, params, stage, config):  # type: ignore[no-untyped-def]
        stages.append(stage)
        return payloads[stage]

    monkeypatch.setattr(cl, "request_json", fake_request_json)

    out_file = tmp_path / "county.json"
    assert cl.main(["--fips", "55025", "--subject", "--out", str(out_file)]) == 0
    assert "subject" in stages
    assert json.loads(out_file.read_text(encoding="utf-8"))["record"]["unemployment_rate"] == 2.9


def test_upstream_failure_returns_exit_4(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    async def failing_request_json(client, url, *, params, stage, config):  # type: ignore[no-untyped-def]
        raise cs.UpstreamAPIError(stage, "HTTP 503: unavailable")

    monkeypatch.setattr(cl, "request_json", failing_request_json)
    exit_code = cl.main(["--fips", "55025", "--out", str(tmp_path / "x.json")])
    assert exit_code == cl.EXIT_UPSTREAM_FAILURE


def test_state_fips_returns_exit_3() -> None:
    assert cl.main(["--fips", "55"]) == cl.EXIT_UNKNOWN_COUNTY


def test_malformed_fips_returns_exit_2() -> None:
    assert cl.main(["--fips", "abc"]) == cl.EXIT_INVALID_ARGS


def test_invalid_timeout_rejected() -> None:
    with pytest.raises(SystemExit):
        cl.main(["--fips", "55025", "--timeout", "0"])
