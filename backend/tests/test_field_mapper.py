import pytest

from permit_agent.api.integrations.field_mapper import (
    MISSING,
    FieldMapper,
    PermittingSystemsConfig,
    address_text,
    first_name,
    string_list,
    unwrap_items,
    unwrap_single,
)
from permit_agent.models.integration import APIApplication, APIFee, APIPermit, AuthMethod, FieldTransform


@pytest.fixture(scope="module")
def systems_config() -> PermittingSystemsConfig:
    return PermittingSystemsConfig()


@pytest.fixture
def mapper() -> FieldMapper:
    return FieldMapper(fuzzy_threshold=90)


def test_bundled_catalog(systems_config):
    systems = systems_config.get_systems()

    assert set(systems) == {"accela", "tyler", "energov"}
    assert systems["tyler"].authentication == AuthMethod.API_KEY
    assert systems["accela"].endpoints["status"] == "/records/{id}"
    assert "cityworks" in {signature.system for signature in systems_config.get_signatures()}
    assert systems_config.get_fuzzy_threshold() == 90


def test_missing_catalog_is_empty(tmp_path):
    systems_config = PermittingSystemsConfig(str(tmp_path / "absent.yaml"))
    assert systems_config.get_systems() == {}
    assert systems_config.get_signatures() == []


def test_resolve_path_follows_dicts_and_indices(mapper):
    item = {"type": {"text": "Residential"}, "contacts": [{"name": "Ada"}]}

    assert mapper.resolve_path(item, "type.text") == "Residential"
    assert mapper.resolve_path(item, "contacts.0.name") == "Ada"
    assert mapper.resolve_path(item, "contacts.3.name") is MISSING
    assert mapper.resolve_path(item, "type.text.more") is MISSING


def test_drifted_keys_match_fuzzily(mapper):
    item = {"Permit_Type_Name": "Electrical"}

    assert mapper.resolve_path(item, "PermitTypeName") == "Electrical"
    assert mapper.resolve_path(item, "InspectorName") is MISSING
    assert FieldMapper(fuzzy_threshold=None).resolve_path(item, "PermitTypeName") is MISSING


def test_fallbacks_defaults_and_transforms(mapper):
    rule = FieldTransform(source_field="code", fallbacks=["description"], transform="upper")
    assert mapper.map_field({"description": "plan review"}, rule) == "PLAN REVIEW"
    assert mapper.map_field({}, FieldTransform(source_field="unit", default="flat")) == "flat"
    assert mapper.map_field({}, "anything") is MISSING
    assert mapper.map_field({"x": 1}, FieldTransform(source_field="x", transform="no_such_transform")) is MISSING


def test_accela_permit_mapping(systems_config, mapper):
    mapping = systems_config.get_systems()["accela"].data_mapping["permits"]
    payload = {"result": [{
        "id": "REC-1",
        "type": {"text": "Residential Building", "value": "Building/Residential"},
        "status": {"value": "Issued"},
        "conditions": [{"text": "Provide survey"}, {"description": "Pay impact fee"}],
        "serviceProviderCode": "SPRINGFIELD",
    }]}

    permits = mapper.map_records(payload, mapping, APIPermit)

    assert len(permits) == 1
    permit = permits[0]
    assert permit.id == "REC-1"
    assert permit.name == "Residential Building"
    assert permit.status == "Issued"
    assert permit.requirements == ["Provide survey", "Pay impact fee"]
    assert permit.jurisdiction == "SPRINGFIELD"
    assert permit.description == ""


def test_accela_application_transforms(systems_config, mapper):
    mapping = systems_config.get_systems()["accela"].data_mapping["applications"]
    item = {
        "id": "APP-9",
        "contacts": [{"firstName": "Ada", "lastName": "Lovelace"}],
        "addresses": [{"streetAddress": "100 Main St", "city": "Springfield",
                       "state": {"text": "IL"}, "postalCode": "62701"}],
    }

    application = mapper.to_record(item, mapping, APIApplication)

    assert application.applicant == "Ada Lovelace"
    assert application.address == "100 Main St, Springfield, IL 62701"


def test_tyler_fee_mapping(systems_config, mapper):
    mapping = systems_config.get_systems()["tyler"].data_mapping["fees"]

    fee = mapper.to_record({"FeeId": 7, "FeeName": "Plan Review", "Amount": "$1,250.00", "FeeUnit": "PER_SQFT"},
                           mapping, APIFee)

    assert fee.id == "7"
    assert fee.amount == 1250.0
    assert fee.unit == "per_sqft"


def test_invalid_values_are_dropped(mapper):
    fee = mapper.to_record({"id": "F1", "amount": "lots"}, {"id": "id", "amount": "amount"}, APIFee)
    assert fee.id == "F1"
    assert fee.amount == 0.0


def test_unwrapping():
    assert unwrap_items([{"a": 1}, "noise"]) == [{"a": 1}]
    assert unwrap_items({"data": {"a": 1}}) == [{"a": 1}]
    assert unwrap_items({"unexpected": []}) == []
    assert unwrap_single({"ApplicationId": "A1"}) == {"ApplicationId": "A1"}
    assert unwrap_single({"result": [{"id": "A2"}]}) == {"id": "A2"}
    assert unwrap_single({"result": []}) == {}


def test_value_helpers():
    assert string_list("Submit plans; Pay fees\nSchedule inspection") == [
        "Submit plans", "Pay fees", "Schedule inspection",
    ]
    assert first_name([{"businessName": "Acme Builders"}]) == "Acme Builders"
    assert address_text([]) is None
    assert address_text({"houseNumberStart": 12, "streetName": "Oak", "streetSuffix": "Ave"}) == "12 Oak Ave"
