"""Smoke tests for the CLI entry point."""
from __future__ import annotations

import json

import pytest

from lqs_pipeline import __main__
from lqs_pipeline.cli import main
from lqs_pipeline.models import LeadSource, LeadSourceSpend, TeamMember
from lqs_pipeline.store import InMemoryStore

QUOTES_CSV = (
    "Quote Detail Report\n"
    "First Name,Last Name,Zip,Product,Premium,Production Date,Sub Producer\n"
    "Jane,Doe,12345,Auto,\"1,200.00\",03/01/2024,723-ANTHONY MCDERMOTT\n"
    "Ann,Lee,54321,Home,abc,03/02/2024,\n"
)
SALES_CSV = (
    "First Name,Last Name,Zip,Product,Premium,Sale Date,Policy Number\n"
    "Jane,Doe,12345,Auto,1250,03/20/2024,POL-1\n"
)


@pytest.fixture
def snapshot(tmp_path):
    store = InMemoryStore()
    store.add_team_member(TeamMember(id="tm-7", name="Anthony McDermott", agency_id="agency-1", sub_producer_code="723"))
    store.add_lead_source(LeadSource(id="ls-1", name="Internet Leads", agency_id="agency-1"))
    store.add_lead_source_spend("agency-1", LeadSourceSpend(lead_source_id="ls-1", spend_cents=20000))
    return store.save(tmp_path / "snapshot.json")


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("agency_id: agency-1\nupload:\n  inter_batch_delay_seconds: 0\n", encoding="utf-8")
    return path


def test_preview_prints_suggested_mapping(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = tmp_path / "quotes.csv"
    input_path.write_text(QUOTES_CSV, encoding="utf-8")

    exit_code = main(["preview", str(input_path), "--kind", "quote"])

    report = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert report["total_rows"] == 2
    assert report["mapping"]["premium"] == "Premium"
    assert report["mapping"]["producer"] == "Sub Producer"
    assert report["sample_rows"][0]["First Name"] == "Jane"


def test_preview_reports_parse_errors(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = tmp_path / "empty.csv"
    input_path.write_text("First Name,Last Name\n", encoding="utf-8")

    exit_code = main(["preview", str(input_path)])

    assert exit_code == 1
    assert "File contains no data rows" in capsys.readouterr().err


def test_import_export_and_roi_round_trip(tmp_path, snapshot, config_path, capsys: pytest.CaptureFixture[str]) -> None:
    quotes_path = tmp_path / "quotes.csv"
    quotes_path.write_text(QUOTES_CSV, encoding="utf-8")
    sales_path = tmp_path / "sales.csv"
    sales_path.write_text(SALES_CSV, encoding="utf-8")
    common = ["--config", str(config_path), "--snapshot", str(snapshot)]

    exit_code = main(["import", str(quotes_path), "--kind", "quote", "--lead-source", "ls-1", *common])
    summary = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert summary["households_created"] == 1
    assert summary["rows_skipped"] == 1
    assert summary["errors"] == ["Row 2: Invalid premium 'abc'"]
    assert summary["team_members_matched"] == 1

    exit_code = main(["import", str(sales_path), "--kind", "sale", *common])
    summary = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert summary["households_updated"] == 1
    assert summary["sales_created"] == 1
    assert summary["quotes_linked"] == 1

    export_path = tmp_path / "households.csv"
    assert main(["export", str(export_path), "--sort", "premium:desc", *common]) == 0
    lines = export_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Name,ZIP,Products,Premium,Lead Source,Objection,Producer,Status"
    assert lines[1] == '"Doe, Jane",12345,Standard Auto,"$1,250.00",Internet Leads,,Anthony McDermott,Sold'

    roi_path = tmp_path / "roi.csv"
    assert main(["roi", "--output", str(roi_path), "--commission-rate", "0.2", *common]) == 0
    assert "Internet Leads" in roi_path.read_text(encoding="utf-8")

    assert main(["roi", *common]) == 0
    assert "Internet Leads" in capsys.readouterr().out

    assert main(["roi", "--activity", *common]) == 1
    assert main(["roi", "--activity", "--start", "2000-01-01", "--end", "2099-12-31", *common]) == 0


def test_import_requires_an_agency(tmp_path) -> None:
    input_path = tmp_path / "leads.csv"
    input_path.write_text("First Name,Last Name,Zip\nAda,Lovelace,02134\n", encoding="utf-8")

    assert main(["import", str(input_path), "--kind", "lead"]) == 1


def test_import_rejects_unknown_mapping_fields(tmp_path) -> None:
    with pytest.raises(SystemExit):
        main(["import", str(tmp_path / "leads.csv"), "--kind", "lead", "--map", "colour=Colour"])


def test_import_applies_mapping_overrides(tmp_path, config_path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = tmp_path / "leads.csv"
    input_path.write_text("Given,Family,Postal\nAda,Lovelace,02134\n", encoding="utf-8")
    snapshot_path = tmp_path / "fresh.json"

    exit_code = main(
        [
            "import",
            str(input_path),
            "--kind",
            "lead",
            "--map",
            "first_name=Given",
            "--map",
            "last_name=Family",
            "--as-of",
            "2024-05-01",
            "--config",
            str(config_path),
            "--snapshot",
            str(snapshot_path),
        ]
    )

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out)["households_created"] == 1
    household = InMemoryStore.load(snapshot_path).find_household("agency-1", "LOVELACE_ADA_02134")
    assert household.lead_received_date.isoformat() == "2024-05-01"


def test_module_entry_point_without_arguments_shows_help(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = __main__.main([])

    captured = capsys.readouterr()
    assert "python -m lqs_pipeline" in captured.out
    assert exit_code == 2
