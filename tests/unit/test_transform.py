"""
Unit tests for the field rule record transformer.
"""

import logging

import pytest

from eavmigrate.config import EavMigrationSettings, FieldRules
from eavmigrate.exceptions import RecordTransformError
from eavmigrate.records import Record, Relation
from eavmigrate.transform import (
    FieldRuleTransformer,
    FieldRuleTransformerFactory,
    RecordTransformer,
)

SOURCE = Relation(
    "eav_attribute_group",
    ("attribute_group_id", "attribute_set_id", "attribute_group_name", "sort", "legacy_flag"),
    primary_key="attribute_group_id",
)
DEST = Relation(
    "eav_attribute_group",
    (
        "attribute_group_id",
        "attribute_set_id",
        "attribute_group_name",
        "sort_order",
        "attribute_group_code",
        "tab_group_code",
    ),
    primary_key="attribute_group_id",
)


def source_record(**overrides):
    data = {
        "attribute_group_id": 7,
        "attribute_set_id": 4,
        "attribute_group_name": "General",
        "sort": 3,
        "legacy_flag": 1,
    }
    data.update(overrides)
    return Record(SOURCE, data)


class TestFieldRuleTransformer:
    """Tests for FieldRuleTransformer."""

    def test_copies_common_fields(self):
        """Fields present on both sides are copied; source-only fields are dropped."""
        destination = Record(DEST)
        FieldRuleTransformer(SOURCE, DEST).transform(source_record(), destination)

        assert destination.to_dict() == {
            "attribute_group_id": 7,
            "attribute_set_id": 4,
            "attribute_group_name": "General",
            "sort_order": None,
            "attribute_group_code": None,
            "tab_group_code": None,
        }

    def test_rename(self):
        """Renamed source fields land in their new destination field."""
        destination = Record(DEST)
        transformer = FieldRuleTransformer(SOURCE, DEST, FieldRules(rename={"sort": "sort_order"}))
        transformer.transform(source_record(), destination)
        assert destination["sort_order"] == 3

    def test_ignore_keeps_seeded_value(self):
        """Ignored destination fields keep what the record was seeded with."""
        destination = Record(DEST, {"attribute_group_name": "Kept", "tab_group_code": "basic"})
        transformer = FieldRuleTransformer(
            SOURCE, DEST, FieldRules(ignore=("attribute_group_name",))
        )
        transformer.transform(source_record(), destination)
        assert destination["attribute_group_name"] == "Kept"
        assert destination["tab_group_code"] == "basic"

    def test_ignore_source(self):
        """Ignored source fields are never copied."""
        destination = Record(DEST, {"attribute_set_id": 99})
        transformer = FieldRuleTransformer(
            SOURCE, DEST, FieldRules(ignore_source=("attribute_set_id",))
        )
        transformer.transform(source_record(), destination)
        assert destination["attribute_set_id"] == 99

    def test_values_are_written_after_copies(self):
        """Constant values override copied values."""
        destination = Record(DEST)
        transformer = FieldRuleTransformer(
            SOURCE,
            DEST,
            FieldRules(values={"tab_group_code": "advanced", "attribute_group_name": "Fixed"}),
        )
        transformer.transform(source_record(), destination)
        assert destination["tab_group_code"] == "advanced"
        assert destination["attribute_group_name"] == "Fixed"

    def test_handler_computes_field(self):
        """Handlers receive the source record."""
        destination = Record(DEST)
        transformer = FieldRuleTransformer(
            SOURCE,
            DEST,
            handlers={"attribute_group_code": lambda src: src["attribute_group_name"].lower()},
        )
        transformer.transform(source_record(), destination)
        assert destination["attribute_group_code"] == "general"

    def test_handler_failure_is_wrapped(self, caplog):
        """A failing handler raises RecordTransformError and logs the failure."""

        def broken(src):
            raise ValueError("no code for group")

        transformer = FieldRuleTransformer(
            SOURCE, DEST, handlers={"attribute_group_code": broken}
        )
        with caplog.at_level(logging.ERROR, logger="eavmigrate.transform"):
            with pytest.raises(RecordTransformError) as exc_info:
                transformer.transform(source_record(), Record(DEST))

        assert exc_info.value.field == "attribute_group_code"
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert "no code for group" in caplog.text

    def test_rename_to_unknown_field_rejected(self):
        """Rules are validated against the destination when built."""
        with pytest.raises(RecordTransformError, match="position"):
            FieldRuleTransformer(SOURCE, DEST, FieldRules(rename={"sort": "position"}))

    def test_value_for_unknown_field_rejected(self):
        with pytest.raises(RecordTransformError, match="unknown field"):
            FieldRuleTransformer(SOURCE, DEST, FieldRules(values={"legacy_flag": 0}))

    def test_handler_for_unknown_field_rejected(self):
        with pytest.raises(RecordTransformError):
            FieldRuleTransformer(SOURCE, DEST, handlers={"legacy_flag": lambda src: 0})

    def test_satisfies_protocol(self):
        """FieldRuleTransformer is a RecordTransformer."""
        assert isinstance(FieldRuleTransformer(SOURCE, DEST), RecordTransformer)


class TestFieldRuleTransformerFactory:
    """Tests for FieldRuleTransformerFactory."""

    def test_uses_rules_for_destination(self):
        """The factory picks the rules of the destination relation."""
        settings = EavMigrationSettings(
            field_rules={"eav_attribute_group": FieldRules(rename={"sort": "sort_order"})}
        )
        transformer = FieldRuleTransformerFactory(settings)(SOURCE, DEST)

        assert transformer.rules.rename == {"sort": "sort_order"}

    def test_uses_handlers_for_destination(self):
        """Handlers are selected per destination relation."""
        factory = FieldRuleTransformerFactory(
            EavMigrationSettings(),
            handlers={"eav_attribute_group": {"tab_group_code": lambda src: "basic"}},
        )
        destination = Record(DEST)
        factory(SOURCE, DEST).transform(source_record(), destination)
        assert destination["tab_group_code"] == "basic"

    def test_no_rules(self):
        """Relations without configured rules copy common fields."""
        destination = Record(DEST)
        FieldRuleTransformerFactory(EavMigrationSettings())(SOURCE, DEST).transform(
            source_record(), destination
        )
        assert destination["attribute_group_name"] == "General"
