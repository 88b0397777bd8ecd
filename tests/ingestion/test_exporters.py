import pandas as pd
import pytest

from lqs_pipeline.ingestion.exporters import (
    EXPORT_COLUMNS,
    build_household_rows,
    export_households,
    export_households_csv,
    households_to_dataframe,
    paginate,
    sort_households,
)
from lqs_pipeline.models import Household, HouseholdStatus, LeadSource, Quote, Sale, TeamMember


def _household(first, last, zip_code="12345", status=HouseholdStatus.LEAD, **kwargs) -> Household:
    return Household(
        agency_id="agency-1",
        household_key=f"{last.upper()}_{first.upper()}_{zip_code}",
        first_name=first,
        last_name=last,
        zip_code=zip_code,
        status=status,
        **kwargs,
    )


@pytest.fixture
def sample_rows():
    quoted = _household(
        "John",
        "Doe, Jr",
        status=HouseholdStatus.QUOTED,
        lead_source_id="ls-1",
        team_member_id="tm-1",
        quotes=[
            Quote(household_id="hh-1", agency_id="agency-1", product_type="Auto, Home", premium_cents=150000),
        ],
    )
    sold = _household(
        "Ada",
        "Lovelace",
        zip_code="02134",
        status=HouseholdStatus.SOLD,
        objection='Said "too pricey"',
        quotes=[Quote(household_id="hh-2", agency_id="agency-1", product_type="Renters", premium_cents=9000)],
        sales=[
            Sale(household_id="hh-2", agency_id="agency-1", product_type="Standard Auto", premium_cents=120000),
            Sale(household_id="hh-2", agency_id="agency-1", product_type="Homeowners", premium_cents=80000),
            Sale(household_id="hh-2", agency_id="agency-1", product_type="Standard Auto", premium_cents=10000),
        ],
    )
    lead = _household("Grace", "Hopper", zip_code="99999")
    return build_household_rows(
        [quoted, sold, lead],
        lead_sources=[LeadSource(id="ls-1", name="Internet Leads")],
        team_members=[TeamMember(id="tm-1", name="Jane Agent")],
    )


def test_rows_resolve_display_values(sample_rows):
    quoted, sold, lead = sample_rows

    assert quoted.export_values() == [
        "Doe, Jr, John",
        "12345",
        "Auto, Home",
        "$1,500.00",
        "Internet Leads",
        "",
        "Jane Agent",
        "Quoted",
    ]
    assert sold.products == ["Standard Auto", "Homeowners"]
    assert sold.premium_cents == 210000
    assert lead.products == []
    assert lead.export_values()[3] == "$0.00"


def test_csv_export_quotes_fields_with_commas_and_quotes(sample_rows):
    text = export_households_csv(sample_rows)
    lines = text.split("\n")

    assert lines[0] == "Name,ZIP,Products,Premium,Lead Source,Objection,Producer,Status"
    assert lines[1] == '"Doe, Jr, John",12345,"Auto, Home","$1,500.00",Internet Leads,,Jane Agent,Quoted'
    assert lines[2] == (
        '"Lovelace, Ada",02134,"Standard Auto, Homeowners","$2,100.00",,"Said ""too pricey""",,Sold'
    )
    assert lines[3] == '"Hopper, Grace",99999,,$0.00,,,,Lead'
    assert text.endswith("\n")


def test_csv_export_without_rows_writes_only_the_header():
    assert export_households_csv([]) == ",".join(EXPORT_COLUMNS) + "\n"


def test_sort_by_several_columns(sample_rows):
    by_premium = sort_households(sample_rows, [("premium", "desc")])
    assert [row.household.first_name for row in by_premium] == ["Ada", "John", "Grace"]

    by_status_then_name = sort_households(sample_rows, [("status", "asc"), ("name", "desc")])
    assert [row.household.first_name for row in by_status_then_name] == ["Grace", "John", "Ada"]

    assert sort_households(sample_rows, []) == list(sample_rows)


def test_sort_rejects_unknown_columns(sample_rows):
    with pytest.raises(ValueError):
        sort_households(sample_rows, [("colour", "asc")])
    with pytest.raises(ValueError):
        sort_households(sample_rows, [("name", "sideways")])


def test_natural_sort_orders_numbers_by_value():
    rows = build_household_rows(
        [_household("A", "Unit 10"), _household("A", "Unit 9"), _household("A", "unit 100")]
    )

    ordered = sort_households(rows, [("name", "asc")])

    assert [row.household.last_name for row in ordered] == ["Unit 9", "Unit 10", "unit 100"]


def test_paginate(sample_rows):
    assert [row.household.first_name for row in paginate(sample_rows, 2, 2)] == ["Grace"]
    assert paginate(sample_rows, 3, 2) == []
    with pytest.raises(ValueError):
        paginate(sample_rows, 0, 2)


def test_dataframe_keeps_numeric_premium(sample_rows):
    frame = households_to_dataframe(sample_rows)

    assert list(frame.columns) == list(EXPORT_COLUMNS)
    assert frame.loc[0, "Premium"] == pytest.approx(1500.0)
    assert frame.loc[1, "Products"] == "Standard Auto, Homeowners"


def test_export_households_by_extension(tmp_path, sample_rows):
    csv_path = export_households(sample_rows, tmp_path / "households.csv")
    xlsx_path = export_households(sample_rows, tmp_path / "households.xlsx")

    assert csv_path.read_text(encoding="utf-8").startswith("Name,ZIP,")
    frame = pd.read_excel(xlsx_path, sheet_name="Households")
    assert list(frame["Status"]) == ["Quoted", "Sold", "Lead"]
    with pytest.raises(ValueError):
        export_households(sample_rows, tmp_path / "households.json")


def test_display_name_handles_missing_parts():
    assert _household("", "Smith").display_name() == "Smith"
    assert Household(agency_id="a", household_key="k", first_name="", last_name="", zip_code="").display_name() == (
        "(Unnamed Household)"
    )
