import pytest

from lqs_pipeline.ingestion.mapping import apply_overrides, normalise_header, score_candidates, score_header, suggest_mapping
from lqs_pipeline.ingestion.models import ColumnMapping


@pytest.fixture
def quote_headers():
    return [
        "First Name",
        "Last Name",
        "Zip",
        "Phone",
        "Cell",
        "Email",
        "Product",
        "Premium",
        "Sub Producer",
        "Production Date",
    ]


def test_normalise_header_collapses_punctuation():
    assert normalise_header("  Customer_ZIP-Code ") == "customer zip code"
    assert normalise_header("Issued Policy #") == "issued policy #"


def test_score_header_prefers_exact_then_prefix_then_substring():
    exact = score_header("Premium", ["premium"])
    prefix = score_header("Premium Total", ["premium"])
    substring = score_header("Total Premium Amount", ["premium"])

    assert exact == 1.0
    assert 0.8 < prefix < 1.0
    assert 0.6 < substring < 0.8
    assert score_header("Premiums", ["premium"]) == 0.0
    assert score_header("", ["premium"]) == 0.0


def test_suggest_mapping_for_a_typical_quote_report(quote_headers):
    mapping = suggest_mapping(quote_headers)

    assert mapping.first_name == "First Name"
    assert mapping.last_name == "Last Name"
    assert mapping.customer_name is None
    assert mapping.zip_code == "Zip"
    assert mapping.phones == ["Phone", "Cell"]
    assert mapping.email == "Email"
    assert mapping.product_type == "Product"
    assert mapping.premium == "Premium"
    assert mapping.producer == "Sub Producer"
    assert mapping.date == "Production Date"


def test_more_specific_field_wins_a_shared_header():
    mapping = suggest_mapping(["Customer First Name", "Customer Last Name", "Customer Zip Code"])

    assert mapping.first_name == "Customer First Name"
    assert mapping.last_name == "Customer Last Name"
    assert mapping.zip_code == "Customer Zip Code"
    assert mapping.customer_name is None


def test_combined_name_column_maps_to_customer_name():
    mapping = suggest_mapping(["Customer Name", "Zip Code", "Written Premium"])

    assert mapping.customer_name == "Customer Name"
    assert mapping.first_name is None
    assert mapping.premium == "Written Premium"


def test_unknown_headers_leave_fields_unmapped():
    mapping = suggest_mapping(["Foo", "Bar"])

    assert mapping == ColumnMapping()


def test_candidates_list_alternatives_best_first():
    candidates = score_candidates(["Total Premium", "Premium Total", "Premium"])

    assert [item.header for item in candidates["premium"]] == ["Premium", "Premium Total", "Total Premium"]
    assert candidates["email"] == []


def test_overrides_replace_suggestions(quote_headers):
    mapping = suggest_mapping(quote_headers)

    apply_overrides(mapping, {"zip_code": "Postal", "phones": ["Cell"], "email": ""})

    assert mapping.zip_code == "Postal"
    assert mapping.phones == ["Cell"]
    assert mapping.email is None


def test_override_rejects_unknown_fields_and_lists_for_single_fields():
    mapping = ColumnMapping()

    with pytest.raises(KeyError):
        mapping.override("favourite_colour", "Colour")
    with pytest.raises(TypeError):
        mapping.override("zip_code", ["Zip", "Postal"])


def test_mapping_as_dict_lists_every_field():
    data = ColumnMapping(first_name="First", phones=["Phone"]).as_dict()

    assert data["first_name"] == "First"
    assert data["phones"] == ["Phone"]
    assert data["premium"] is None
