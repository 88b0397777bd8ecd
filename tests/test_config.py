import json

import pytest

from lqs_pipeline.config import commission_rate, expand_options, load_configuration, load_settings
from lqs_pipeline.errors import ConfigurationError
from lqs_pipeline.factory import build_store
from lqs_pipeline.ingestion.models import PhoneComparison
from lqs_pipeline.models import LeadSourceSpend
from lqs_pipeline.store import FunctionStore, InMemoryStore, RestStore


def test_load_yaml_and_json(tmp_path):
    yaml_path = tmp_path / "config.yaml"
    yaml_path.write_text("agency_id: agency-1\nupload:\n  batch_size: 25\n", encoding="utf-8")
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps({"agency_id": "agency-2"}), encoding="utf-8")
    empty_path = tmp_path / "empty.yml"
    empty_path.write_text("", encoding="utf-8")

    assert load_configuration(yaml_path) == {"agency_id": "agency-1", "upload": {"batch_size": 25}}
    assert load_configuration(json_path) == {"agency_id": "agency-2"}
    assert load_configuration(empty_path) == {}


@pytest.mark.parametrize(
    ("name", "content"),
    [("config.toml", "a = 1"), ("config.json", "{not json"), ("config.yaml", "- just\n- a list\n")],
)
def test_bad_configuration_files_raise(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_configuration(path)


def test_missing_configuration_file_raises(tmp_path):
    with pytest.raises(ConfigurationError, match="was not found"):
        load_configuration(tmp_path / "missing.yaml")


def test_upload_settings_defaults_and_overrides():
    defaults = load_settings({})
    custom = load_settings(
        {
            "upload": {
                "batch_size": "10",
                "parse_timeout_seconds": 5,
                "inter_batch_delay_seconds": 0,
                "writes_per_minute": 120,
                "phone_comparison": "DIGITS",
            }
        }
    )

    assert defaults.batch_size == 50
    assert defaults.parse_timeout_seconds == 60.0
    assert defaults.inter_batch_delay_seconds == 0.5
    assert defaults.writes_per_minute is None
    assert defaults.phone_comparison is PhoneComparison.EXACT
    assert custom.batch_size == 10
    assert custom.writes_per_minute == 120.0
    assert custom.phone_comparison is PhoneComparison.DIGITS


@pytest.mark.parametrize(
    "upload",
    [
        {"batch_size": 0},
        {"batch_size": "many"},
        {"parse_timeout_seconds": 0},
        {"inter_batch_delay_seconds": -1},
        {"phone_comparison": "fuzzy"},
    ],
)
def test_invalid_upload_settings_raise(upload):
    with pytest.raises(ConfigurationError):
        load_settings({"upload": upload})


def test_commission_rate():
    assert commission_rate({}) == 0.22
    assert commission_rate({"commission_rate": "0.18"}) == 0.18
    with pytest.raises(ConfigurationError):
        commission_rate({"commission_rate": "lots"})


def test_expand_options_reads_environment(monkeypatch):
    monkeypatch.setenv("LQS_API_KEY", "secret")

    assert expand_options({"api_key": "$LQS_API_KEY", "max_retries": 2}) == {"api_key": "secret", "max_retries": 2}


def test_build_store_defaults_to_memory():
    assert isinstance(build_store({}), InMemoryStore)


def test_build_store_loads_memory_snapshot(tmp_path):
    seeded = InMemoryStore()
    seeded.add_lead_source_spend("agency-1", LeadSourceSpend(lead_source_id="ls-1", spend_cents=1000))
    path = seeded.save(tmp_path / "snapshot.json")

    store = build_store({"store": {"class": "memory", "options": {"snapshot": str(path)}}})

    assert store.list_lead_source_spend("agency-1")[0].spend_cents == 1000


def test_build_store_for_http_transports(monkeypatch):
    monkeypatch.setenv("LQS_API_KEY", "anon")

    rest = build_store({"store": {"class": "rest", "options": {"base_url": "https://db.example.com", "api_key": "$LQS_API_KEY"}}})
    function = build_store(
        {"store": {"class": "function", "options": {"base_url": "https://db.example.com", "staff_session": "token"}}}
    )

    assert isinstance(rest, RestStore)
    assert rest.api_key == "anon"
    assert isinstance(function, FunctionStore)
    assert function.staff_session == "token"


@pytest.mark.parametrize(
    "store_config",
    [
        {"class": "no_dots"},
        {"class": "lqs_pipeline.store.MissingStore"},
        {"class": "not_a_module_anywhere.Store"},
        {"class": "rest", "options": {"base_url": "https://db.example.com", "colour": "blue"}},
    ],
)
def test_build_store_rejects_bad_configuration(store_config):
    with pytest.raises(ConfigurationError):
        build_store({"store": store_config})
