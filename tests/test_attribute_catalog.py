"""
Attribute Catalog Tests

Covers the worker attribute registry: option lookup and labels, operators
valid per attribute type, default operators and default values.
"""

from datetime import date

import pytest

from segment_service.core.attribute_catalog import (
    AttributeCatalog, DEFAULT_CATALOG, OPERATORS_BY_TYPE, get_label_for_value,
)
from segment_service.models.attribute import AttributeDefinition, AttributeOption
from segment_service.models.enums import AttributeType, Operator


# =============================================================================
# Options and labels
# =============================================================================

def test_options_for_enum_attribute():
    options = DEFAULT_CATALOG.get_options_for_attribute("employment.employmentStatus")
    assert [o.value for o in options] == ["active", "inactive", "on_leave", "terminated"]
    assert options[0] == AttributeOption(value="active", label="Active")


def test_options_for_open_or_unknown_attribute_are_empty():
    assert DEFAULT_CATALOG.get_options_for_attribute("firstName") == []
    assert DEFAULT_CATALOG.get_options_for_attribute("no.such.attribute") == []


def test_label_for_value_falls_back_to_raw_value():
    options = [AttributeOption("opted_in", "Opted In")]
    assert get_label_for_value(options, "opted_in") == "Opted In"
    assert get_label_for_value(options, "unknown_status") == "unknown_status"
    assert get_label_for_value(options, 42) == "42"
    assert get_label_for_value([], None) == ""
    assert get_label_for_value(None, "x") == "x"


def test_attribute_value_label_and_attribute_label():
    assert DEFAULT_CATALOG.get_attribute_value_label("contact.whatsappOptInStatus", "opted_out") == "Opted Out"
    assert DEFAULT_CATALOG.get_attribute_label("engagement.engagementRate") == "Engagement Rate"
    # Unknown attributes are labelled by their key
    assert DEFAULT_CATALOG.get_attribute_label("custom.score") == "custom.score"


# =============================================================================
# Operators per type
# =============================================================================

@pytest.mark.parametrize("attribute,expected,excluded", [
    ("gender", {Operator.EQUALS, Operator.NOT_EQUALS, Operator.IN}, {Operator.CONTAINS, Operator.GREATER_THAN}),
    ("isActive", {Operator.EQUALS, Operator.NOT_EQUALS}, {Operator.IN, Operator.BETWEEN}),
    ("engagement.engagementRate", {Operator.GREATER_THAN_OR_EQUALS, Operator.BETWEEN}, {Operator.CONTAINS}),
    ("employment.hireDate", {Operator.LESS_THAN, Operator.BETWEEN}, {Operator.STARTS_WITH}),
    ("tags", {Operator.CONTAINS, Operator.HAS_ANY, Operator.HAS_ALL}, {Operator.EQUALS}),
    ("firstName", {Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH}, {Operator.BETWEEN}),
    ("customFields", {Operator.IS_EMPTY, Operator.EXISTS}, {Operator.EQUALS}),
])
def test_operators_for_attribute_type(attribute, expected, excluded):
    operators = set(DEFAULT_CATALOG.operators_for(attribute))
    assert expected <= operators
    assert not (excluded & operators)


def test_unknown_attribute_has_no_operators():
    assert DEFAULT_CATALOG.operators_for("no.such.attribute") == ()
    assert not DEFAULT_CATALOG.is_valid_operator("no.such.attribute", "equals")


def test_every_type_has_operators():
    for attribute_type in AttributeType:
        assert OPERATORS_BY_TYPE[attribute_type], f"No operators for {attribute_type}"


# =============================================================================
# Defaults
# =============================================================================

@pytest.mark.parametrize("attribute,operator", [
    ("gender", Operator.EQUALS),
    ("isActive", Operator.EQUALS),
    ("engagement.engagementRate", Operator.EQUALS),
    ("tags", Operator.CONTAINS),
    ("customFields", Operator.IS_NOT_EMPTY),
    ("firstName", Operator.CONTAINS),
    ("employment.jobTitle", Operator.CONTAINS),
    ("employment.department", Operator.CONTAINS),
    ("externalId", Operator.EQUALS),
])
def test_default_operator(attribute, operator):
    assert DEFAULT_CATALOG.default_operator(attribute) == operator


def test_default_operator_is_always_valid_for_the_attribute():
    for definition in DEFAULT_CATALOG.attributes():
        assert definition.default_operator in DEFAULT_CATALOG.operators_for(definition.key), definition.key


def test_default_values():
    catalog = DEFAULT_CATALOG
    today = date.today().isoformat()
    assert catalog.default_value("engagement.engagementRate") == 0
    assert catalog.default_value("engagement.engagementRate", Operator.BETWEEN) == [0, 0]
    assert catalog.default_value("employment.hireDate") == today
    assert catalog.default_value("employment.hireDate", Operator.BETWEEN) == [today, today]
    assert catalog.default_value("isActive") is True
    assert catalog.default_value("gender") == ""
    assert catalog.default_value("gender", Operator.IN) == []
    assert catalog.default_value("tags", Operator.HAS_ANY) == []
    assert catalog.default_value("tags") == ""
    assert catalog.default_value("firstName", Operator.IS_EMPTY) is None
    assert catalog.default_value("no.such.attribute") is None


# =============================================================================
# Registration and export
# =============================================================================

def test_register_custom_attribute_infers_default_operator():
    catalog = AttributeCatalog(definitions=[])
    assert len(catalog) == 0

    catalog.register(AttributeDefinition(key="customFields.shirtSize", label="Shirt Size",
                                         type=AttributeType.STRING))
    catalog.register(AttributeDefinition(key="customFields.skills", label="Skills",
                                         type=AttributeType.ARRAY))

    assert "customFields.shirtSize" in catalog
    assert catalog.default_operator("customFields.shirtSize") == Operator.EQUALS
    assert catalog.default_operator("customFields.skills") == Operator.CONTAINS
    assert "gender" not in catalog


def test_register_keeps_explicit_default_operator():
    catalog = AttributeCatalog(definitions=[
        AttributeDefinition(key="score", label="Score", type=AttributeType.NUMBER,
                            default_operator=Operator.GREATER_THAN_OR_EQUALS),
    ])
    assert catalog.default_operator("score") == Operator.GREATER_THAN_OR_EQUALS


def test_to_dict_passes_control_hints_through():
    exported = DEFAULT_CATALOG.to_dict()
    assert exported["tags"]["control"] == {"type": "multi-select"}
    assert exported["engagement.engagementRate"]["control"]["type"] == "slider"
    assert "control" not in exported["gender"]

    gender = exported["gender"]
    assert gender["type"] == "enum"
    assert gender["defaultOperator"] == "equals"
    assert {"value": "female", "label": "Female"} in gender["options"]
    assert "in" in gender["operators"]
