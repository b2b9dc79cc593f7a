"""
Unit tests for the form authoring tool (FormBuilder).

Tests cover:
- add_field: generated ids/keys, labels, default options, order
- delete_field / reorder_field renormalize `order`
- Order stays a dense 0..n-1 permutation after mixed operations
- update_field protects id and order, validates on assignment
- Options from text, key derivation from label
- Conditions: add / remove / update, available fields, dangling references
- Metadata validity and schema problems
- Change notifications
"""

import random

import pytest
from pydantic import ValidationError

from formflow.authoring.builder import FormBuilder, slugify_label
from formflow.core.schema import ConditionOperator, FieldType, FormDefinition


# --- Helpers ---


def orders(builder: FormBuilder) -> list[int]:
    return [f.order for f in builder.fields]


@pytest.fixture
def three_fields() -> FormBuilder:
    builder = FormBuilder(FormDefinition(id=7, name="Survey", key="survey"))
    builder.add_field("text")
    builder.add_field("select")
    builder.add_field("number")
    return builder


# =============================================================
# Test: Adding fields
# =============================================================


class TestAddField:
    """Tests for add_field."""

    def test_generated_identity(self):
        builder = FormBuilder()
        first = builder.add_field("text")
        second = builder.add_field(FieldType.CHECKBOX)

        assert (first.id, first.key, first.order) == ("field_1", "text_1", 0)
        assert (second.id, second.key, second.order) == ("field_2", "checkbox_2", 1)
        assert first.label == "Text Field"
        assert first.required is False

    def test_option_types_get_default_options(self):
        builder = FormBuilder()
        assert builder.add_field("select").options == ["Option 1", "Option 2"]
        assert builder.add_field("radio").options == ["Option 1", "Option 2"]
        assert builder.add_field("text").options is None

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            FormBuilder().add_field("location")

    def test_counter_skips_existing_ids_and_keys(self):
        definition = FormDefinition.model_validate({
            "name": "Existing",
            "key": "existing",
            "fields": [
                {"id": "field_1", "type": "text", "label": "A", "key": "a", "order": 0},
                {"id": "x", "type": "text", "label": "B", "key": "text_2", "order": 1},
            ],
        })
        builder = FormBuilder(definition)
        added = builder.add_field("text")
        assert (added.id, added.key) == ("field_3", "text_3")


# =============================================================
# Test: Order renormalization
# =============================================================


class TestOrder:
    """`order` is always 0..n-1 after any mutation."""

    def test_loading_renormalizes(self):
        definition = FormDefinition.model_validate({
            "name": "Gappy",
            "key": "gappy",
            "fields": [
                {"id": "b", "type": "text", "label": "B", "key": "b", "order": 7},
                {"id": "a", "type": "text", "label": "A", "key": "a", "order": 3},
            ],
        })
        builder = FormBuilder(definition)
        assert [f.key for f in builder.fields] == ["a", "b"]
        assert orders(builder) == [0, 1]

    def test_delete_middle(self, three_fields):
        removed = three_fields.delete_field(1)
        assert removed.key == "select_2"
        assert [f.key for f in three_fields.fields] == ["text_1", "number_3"]
        assert orders(three_fields) == [0, 1]

    def test_reorder(self, three_fields):
        three_fields.reorder_field(0, 2)
        assert [f.key for f in three_fields.fields] == ["select_2", "number_3", "text_1"]
        assert orders(three_fields) == [0, 1, 2]

    def test_reorder_clamps_indices(self, three_fields):
        three_fields.reorder_field(5, -3)
        assert [f.key for f in three_fields.fields] == ["number_3", "text_1", "select_2"]

    def test_reorder_empty_is_noop(self):
        builder = FormBuilder()
        builder.reorder_field(0, 1)
        assert builder.fields == []

    def test_delete_out_of_range(self, three_fields):
        with pytest.raises(IndexError):
            three_fields.delete_field(3)

    def test_dense_after_random_operations(self):
        rng = random.Random(42)
        builder = FormBuilder()
        for _ in range(200):
            op = rng.choice(["add", "add", "delete", "reorder"])
            if op == "add" or not builder.fields:
                builder.add_field(rng.choice(list(FieldType)))
            elif op == "delete":
                builder.delete_field(rng.randrange(len(builder.fields)))
            else:
                n = len(builder.fields)
                builder.reorder_field(rng.randrange(n), rng.randrange(n))
            assert sorted(orders(builder)) == list(range(len(builder.fields)))
            assert orders(builder) == list(range(len(builder.fields)))


# =============================================================
# Test: Editing fields
# =============================================================


class TestEditField:
    """Tests for update_field and related helpers."""

    def test_update_attributes(self, three_fields):
        field = three_fields.update_field(0, label="Full Name", required=True,
                                          validation={"minLength": 2})
        assert field.label == "Full Name"
        assert field.required is True
        assert field.validation.min_length == 2

    def test_type_is_coerced(self, three_fields):
        field = three_fields.update_field(0, type="email")
        assert field.type == FieldType.EMAIL

    def test_invalid_assignment_rejected(self, three_fields):
        with pytest.raises(ValidationError):
            three_fields.update_field(0, type="location")

    @pytest.mark.parametrize("attr", ["id", "order"])
    def test_protected_attributes(self, three_fields, attr):
        with pytest.raises(ValueError):
            three_fields.update_field(0, **{attr: "x"})

    def test_options_from_text(self, three_fields):
        options = three_fields.set_options_from_text(1, "Red\n\n  \nGreen\nBlue")
        assert options == ["Red", "Green", "Blue"]
        assert three_fields.fields[1].options == ["Red", "Green", "Blue"]

    def test_key_from_label(self, three_fields):
        three_fields.update_field(0, label="  Date of Birth (DOB) ")
        assert three_fields.derive_key_from_label(0) == "date_of_birth_dob"

    @pytest.mark.parametrize("label,expected", [
        ("Full Name", "full_name"),
        ("__Email__", "email"),
        ("Amount ($)", "amount"),
        ("ÄÖÜ 2", "2"),
    ])
    def test_slugify(self, label, expected):
        assert slugify_label(label) == expected


# =============================================================
# Test: Conditions
# =============================================================


class TestConditions:
    """Tests for condition editing and queries."""

    def test_add_condition_defaults(self, three_fields):
        condition = three_fields.add_condition(2)
        assert condition.field_key == ""
        assert condition.operator == ConditionOperator.EQUALS
        assert condition.value == ""
        assert len(three_fields.fields[2].conditions) == 1

    def test_update_and_remove(self, three_fields):
        three_fields.add_condition(2)
        three_fields.add_condition(2)
        three_fields.update_condition(2, 0, field_key="select_2", value="Option 1")
        three_fields.update_condition(2, 1, operator="isNotEmpty")

        conditions = three_fields.fields[2].conditions
        assert conditions[0].field_key == "select_2"
        assert conditions[1].operator == ConditionOperator.IS_NOT_EMPTY

        three_fields.remove_condition(2, 0)
        assert [c.operator for c in three_fields.fields[2].conditions] == [
            ConditionOperator.IS_NOT_EMPTY
        ]

    def test_remove_without_conditions_is_noop(self, three_fields):
        three_fields.remove_condition(0, 0)
        assert three_fields.fields[0].conditions is None

    def test_update_without_conditions_is_index_error(self, three_fields):
        reasons = []
        three_fields.subscribe(lambda b, reason: reasons.append(reason))

        with pytest.raises(IndexError):
            three_fields.update_condition(0, 0, value="x")
        three_fields.add_condition(0)
        with pytest.raises(IndexError):
            three_fields.update_condition(0, 1, value="x")

        assert reasons == ["add_condition"]

    def test_available_fields_exclude_self(self, three_fields):
        available = three_fields.available_fields_for_condition(1)
        assert [f.key for f in available] == ["text_1", "number_3"]

    def test_delete_keeps_dangling_conditions(self, three_fields):
        three_fields.add_condition(2)
        three_fields.update_condition(2, 0, field_key="select_2", value="Option 1")

        three_fields.delete_field(1)

        assert three_fields.fields[1].conditions[0].field_key == "select_2"
        assert three_fields.dangling_references() == [("number_3", "select_2")]
        assert any("non-existent field 'select_2'" in p for p in three_fields.schema_problems())


# =============================================================
# Test: Metadata and output
# =============================================================


class TestMetadataAndOutput:
    """Tests for metadata, problems, snapshots and notifications."""

    def test_metadata_validity(self):
        builder = FormBuilder()
        assert builder.metadata_valid() is False
        builder.update_metadata(name="Onboarding", key="onboarding")
        assert builder.metadata_valid() is True
        builder.update_metadata(key="   ")
        assert builder.metadata_valid() is False

    def test_unknown_metadata_rejected(self):
        with pytest.raises(ValueError):
            FormBuilder().update_metadata(owner="me")

    def test_schema_problems_include_metadata(self):
        builder = FormBuilder()
        builder.add_field("text")
        assert builder.schema_problems() == ["Form name is required", "Form key is required"]

    def test_duplicate_keys_reported_but_editing_continues(self, three_fields):
        three_fields.update_field(1, key="text_1")
        assert "Duplicate field key: 'text_1'" in three_fields.schema_problems()
        three_fields.add_field("date")
        assert len(three_fields.fields) == 4

    def test_snapshot_is_independent(self, three_fields):
        snapshot = three_fields.to_definition()
        three_fields.update_field(0, label="Changed")
        assert snapshot.fields[0].label == "Text Field"
        assert snapshot.id == 7
        assert snapshot.key == "survey"

    def test_apply_saved_adopts_id_only(self):
        builder = FormBuilder()
        builder.update_metadata(name="New", key="new")
        builder.add_field("text")
        saved = builder.to_definition().model_copy(update={"id": 42, "fields": []})

        builder.apply_saved(saved)

        assert builder.form_id == 42
        assert builder.is_edit_mode is True
        assert len(builder.fields) == 1

    def test_change_notifications(self):
        builder = FormBuilder()
        reasons = []
        unsubscribe = builder.subscribe(lambda b, reason: reasons.append(reason))

        builder.update_metadata(name="X")
        builder.add_field("text")
        builder.add_condition(0)
        builder.update_condition(0, 0, value="y")
        builder.remove_condition(0, 0)
        builder.reorder_field(0, 0)
        builder.delete_field(0)
        unsubscribe()
        builder.add_field("text")

        assert reasons == [
            "metadata",
            "add_field",
            "add_condition",
            "update_condition",
            "remove_condition",
            "reorder_field",
            "delete_field",
        ]
