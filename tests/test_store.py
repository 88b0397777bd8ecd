import json
from datetime import date

import pytest
import requests

from lqs_pipeline.errors import StoreError
from lqs_pipeline.models import Household, HouseholdStatus, LeadSource, LeadSourceSpend, Quote, TeamMember
from lqs_pipeline.store import FunctionStore, InMemoryStore, RestStore
from lqs_pipeline.store import records

AGENCY = "agency-1"


def _household(**kwargs) -> Household:
    values = dict(
        agency_id=AGENCY,
        household_key="SMITH_JOHN_12345",
        first_name="John",
        last_name="Smith",
        zip_code="12345",
        phones=["555-0100"],
        lead_received_date=date(2024, 1, 5),
    )
    values.update(kwargs)
    return Household(**values)


# --- In-memory store ---

def test_insert_and_find_household_round_trip():
    store = InMemoryStore()

    created = store.insert_household(_household())
    found = store.find_household(AGENCY, "SMITH_JOHN_12345")

    assert created.id == "hh-1"
    assert found == created
    assert found.lead_received_date == date(2024, 1, 5)
    assert store.find_household("agency-2", "SMITH_JOHN_12345") is None


def test_household_key_is_unique_per_agency():
    store = InMemoryStore()
    store.insert_household(_household())
    store.insert_household(_household(agency_id="agency-2"))

    with pytest.raises(StoreError):
        store.insert_household(_household())


def test_returned_households_do_not_alias_stored_rows():
    store = InMemoryStore()
    created = store.insert_household(_household())

    created.phones.append("555-9999")

    assert store.find_household(AGENCY, "SMITH_JOHN_12345").phones == ["555-0100"]


def test_update_household_maps_attribute_names_to_columns():
    store = InMemoryStore()
    created = store.insert_household(_household())

    store.update_household(created.id, {"phones": ["555-0200"], "status": HouseholdStatus.QUOTED})

    updated = store.find_household(AGENCY, "SMITH_JOHN_12345")
    assert updated.phones == ["555-0200"]
    assert updated.status is HouseholdStatus.QUOTED
    assert store.snapshot()[records.HOUSEHOLDS][0]["phone"] == ["555-0200"]
    with pytest.raises(StoreError):
        store.update_household("hh-404", {"email": "x@example.com"})


def test_list_households_attaches_quotes_and_sales():
    store = InMemoryStore()
    household = store.insert_household(_household())
    store.insert_quote(Quote(household_id=household.id, agency_id=AGENCY, product_type="Renters", premium_cents=9000))

    listed = store.list_households(AGENCY)

    assert len(listed) == 1
    assert [quote.product_type for quote in listed[0].quotes] == ["Renters"]
    assert listed[0].sales == []


def test_latest_quote_puts_undated_quotes_last():
    store = InMemoryStore()
    for quote_date in (None, date(2024, 1, 1), date(2024, 2, 1)):
        store.insert_quote(
            Quote(household_id="hh-1", agency_id=AGENCY, product_type="Auto", premium_cents=1, quote_date=quote_date)
        )

    assert store.latest_quote("hh-1", "Auto").quote_date == date(2024, 2, 1)
    assert store.find_quote("hh-1", None, "Auto").quote_date is None
    assert store.latest_quote("hh-1", "Boat") is None


def test_reference_data_is_scoped_by_agency():
    store = InMemoryStore()
    store.add_team_member(TeamMember(id="tm-1", name="Jane Agent", agency_id=AGENCY))
    store.add_team_member(TeamMember(id="tm-2", name="Other Agent", agency_id="agency-2"))
    store.add_lead_source(LeadSource(id="ls-1", name="Mailers", agency_id=AGENCY, is_self_generated=True))
    store.add_lead_source_spend(AGENCY, LeadSourceSpend(lead_source_id="ls-1", spend_cents=5000))

    assert [member.name for member in store.list_team_members(AGENCY)] == ["Jane Agent"]
    assert store.list_lead_sources(AGENCY)[0].is_self_generated is True
    assert store.list_lead_source_spend(AGENCY)[0].spend_cents == 5000


def test_snapshot_save_and_load(tmp_path):
    store = InMemoryStore()
    store.insert_household(_household())
    path = store.save(tmp_path / "state" / "snapshot.json")

    restored = InMemoryStore.load(path)

    assert restored.find_household(AGENCY, "SMITH_JOHN_12345").first_name == "John"
    assert json.loads(path.read_text(encoding="utf-8"))[records.HOUSEHOLDS][0]["id"] == "hh-1"
    assert InMemoryStore.load(tmp_path / "missing.json").count(records.HOUSEHOLDS) == 0


def test_loaded_snapshot_does_not_reuse_ids(tmp_path):
    store = InMemoryStore()
    store.insert_household(_household())
    restored = InMemoryStore.load(store.save(tmp_path / "snapshot.json"))

    created = restored.insert_household(_household(household_key="LEE_ANN_12345"))

    assert created.id == "hh-2"


# --- HTTP transports ---

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _rest(session, **kwargs):
    return RestStore(
        "https://db.example.com/",
        api_key="anon-key",
        access_token="user-jwt",
        session=session,
        retry_delay=0,
        **kwargs,
    )


def test_rest_store_builds_filtered_queries():
    row = records.household_to_row(_household())
    row["id"] = "42"
    session = FakeSession([FakeResponse(payload=[row])])

    found = _rest(session).find_household(AGENCY, "SMITH_JOHN_12345")

    method, url, kwargs = session.calls[0]
    assert found.id == "42"
    assert method == "GET"
    assert url == "https://db.example.com/rest/v1/lqs_households"
    assert ("agency_id", "eq.agency-1") in kwargs["params"]
    assert ("household_key", "eq.SMITH_JOHN_12345") in kwargs["params"]
    assert ("limit", "1") in kwargs["params"]
    assert kwargs["headers"]["apikey"] == "anon-key"
    assert kwargs["headers"]["Authorization"] == "Bearer user-jwt"


def test_rest_store_orders_and_encodes_null_filters():
    session = FakeSession([FakeResponse(payload=[]), FakeResponse(payload=[])])
    store = _rest(session)

    assert store.find_quote("hh-1", None, "Auto") is None
    assert store.latest_quote("hh-1", "Auto") is None

    find_params = session.calls[0][2]["params"]
    latest_params = session.calls[1][2]["params"]
    assert ("quote_date", "is.null") in find_params
    assert ("order", "quote_date.desc.nullslast") in latest_params


def test_rest_store_pages_through_large_results():
    first_page = [{"id": str(index), "agency_id": AGENCY, "name": f"Member {index}"} for index in range(1000)]
    second_page = [{"id": "1000", "agency_id": AGENCY, "name": "Last"}]
    session = FakeSession([FakeResponse(payload=first_page), FakeResponse(payload=second_page)])

    members = _rest(session).list_team_members(AGENCY)

    assert len(members) == 1001
    assert ("offset", "1000") in session.calls[1][2]["params"]


def test_rest_store_insert_returns_representation():
    created_row = records.household_to_row(_household())
    created_row["id"] = "7"
    session = FakeSession([FakeResponse(status_code=201, payload=[created_row])])

    created = _rest(session).insert_household(_household())

    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert created.id == "7"
    assert kwargs["headers"]["Prefer"] == "return=representation"
    assert kwargs["json"]["phone"] == ["555-0100"]
    assert kwargs["json"]["lead_received_date"] == "2024-01-05"
    assert "id" not in kwargs["json"]


def test_rest_store_patches_by_id():
    session = FakeSession([FakeResponse(status_code=204, payload=None)])

    _rest(session).update_quote("q-9", {"issued_policy_number": "POL-1"})

    method, _, kwargs = session.calls[0]
    assert method == "PATCH"
    assert kwargs["params"] == [("id", "eq.q-9")]
    assert kwargs["json"] == {"issued_policy_number": "POL-1"}


def test_rest_store_retries_throttling_and_connection_errors():
    session = FakeSession(
        [
            FakeResponse(status_code=429, payload={"message": "slow down"}),
            requests.exceptions.ConnectionError("reset"),
            FakeResponse(payload=[]),
        ]
    )

    assert _rest(session).list_lead_sources(AGENCY) == []
    assert len(session.calls) == 3


def test_rest_store_raises_store_error_on_client_errors():
    session = FakeSession([FakeResponse(status_code=401, payload={"message": "JWT expired"})])

    with pytest.raises(StoreError, match="401"):
        _rest(session).list_households(AGENCY)


def test_rest_store_gives_up_after_max_retries():
    session = FakeSession([FakeResponse(status_code=503, payload={}) for _ in range(3)])

    with pytest.raises(StoreError, match="503"):
        _rest(session, max_retries=2).list_sales(AGENCY)
    assert len(session.calls) == 3


def test_rest_store_does_not_resend_inserts_that_may_have_landed():
    session = FakeSession([requests.exceptions.ReadTimeout("no response"), FakeResponse(status_code=201, payload=[{}])])

    with pytest.raises(StoreError, match="no response"):
        _rest(session).insert_household(_household())
    assert len(session.calls) == 1

    server_error = FakeSession([FakeResponse(status_code=503, payload={}), FakeResponse(status_code=201, payload=[{}])])
    with pytest.raises(StoreError, match="503"):
        _rest(server_error).insert_household(_household())
    assert len(server_error.calls) == 1


def test_rest_store_resends_inserts_the_server_never_processed():
    created_row = records.household_to_row(_household())
    created_row["id"] = "8"
    session = FakeSession(
        [
            requests.exceptions.ConnectTimeout("connect timed out"),
            FakeResponse(status_code=429, payload={"message": "slow down"}),
            FakeResponse(status_code=201, payload=[created_row]),
        ]
    )

    assert _rest(session).insert_household(_household()).id == "8"
    assert [call[0] for call in session.calls] == ["POST", "POST", "POST"]


def test_function_store_retries_selects_but_not_writes():
    reads = FakeSession([requests.exceptions.ReadTimeout("slow"), FakeResponse(payload={"data": []})])
    FunctionStore("https://db.example.com", session=reads, retry_delay=0).list_team_members(AGENCY)
    assert len(reads.calls) == 2

    writes = FakeSession([requests.exceptions.ReadTimeout("slow"), FakeResponse(payload={"data": None})])
    with pytest.raises(StoreError):
        FunctionStore("https://db.example.com", session=writes, retry_delay=0).update_household("hh-1", {"email": "a@b.c"})
    assert len(writes.calls) == 1


def test_function_store_wraps_operations_in_payloads():
    row = {"id": "hh-5", "agency_id": AGENCY, "household_key": "SMITH_JOHN_12345", "first_name": "John"}
    session = FakeSession([FakeResponse(payload={"data": [row]}), FakeResponse(payload={"data": None})])
    store = FunctionStore("https://db.example.com", staff_session="staff-token", session=session, retry_delay=0)

    found = store.find_household(AGENCY, "SMITH_JOHN_12345")
    store.update_household("hh-5", {"email": "john@example.com"})

    select_call, update_call = session.calls
    assert found.id == "hh-5"
    assert select_call[1] == "https://db.example.com/functions/v1/lqs-data"
    assert select_call[2]["headers"]["x-staff-session"] == "staff-token"
    assert select_call[2]["json"]["action"] == "select"
    assert select_call[2]["json"]["filters"] == [
        ["agency_id", "eq", AGENCY],
        ["household_key", "eq", "SMITH_JOHN_12345"],
    ]
    assert update_call[2]["json"] == {
        "action": "update",
        "table": records.HOUSEHOLDS,
        "id": "hh-5",
        "values": {"email": "john@example.com"},
    }


def test_function_store_surfaces_function_errors():
    session = FakeSession([FakeResponse(payload={"error": "Invalid staff session"})])
    store = FunctionStore("https://db.example.com", session=session, retry_delay=0)

    with pytest.raises(StoreError, match="Invalid staff session"):
        store.list_team_members(AGENCY)


def test_http_store_requires_base_url():
    with pytest.raises(StoreError):
        RestStore("")
