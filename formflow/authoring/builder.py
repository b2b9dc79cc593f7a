"""
Form authoring tool.

A stateful editor over a FormDefinition under construction. Every
mutation renormalizes field `order` to 0..n-1 and notifies subscribers
(the autosaver listens to these notifications). Persistence is not
handled here; see `formflow.authoring.autosave`.
"""

import logging
import re
from typing import Any, Callable

from formflow.core.schema import (
    OPTION_FIELD_TYPES,
    FieldCondition,
    FieldType,
    FormDefinition,
    FormField,
    ValidationRule,
    find_schema_problems,
)

logger = logging.getLogger(__name__)

# listener(builder, reason)
BuilderListener = Callable[["FormBuilder", str], None]

DEFAULT_OPTIONS = ["Option 1", "Option 2"]

# Attributes managed by the builder itself
_PROTECTED_FIELD_ATTRS = frozenset({"id", "order"})
_METADATA_ATTRS = frozenset({"name", "key", "description"})


def slugify_label(label: str) -> str:
    """Derive a field key from a label: lowercase, runs of other chars -> '_'."""
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


class FormBuilder:
    """Editor for a single form definition.

    Args:
        definition: An existing definition to edit. When omitted a new,
            unsaved draft is started.
    """

    def __init__(self, definition: FormDefinition | None = None):
        definition = definition or FormDefinition()
        self.form_id = definition.id
        self.name = definition.name
        self.key = definition.key
        self.description = definition.description
        self.fields: list[FormField] = [
            f.model_copy(deep=True) for f in definition.sorted_fields()
        ]
        self._field_counter = 0
        self._listeners: list[BuilderListener] = []
        self._renormalize_order()

    @property
    def is_edit_mode(self) -> bool:
        """True once the definition exists in storage."""
        return self.form_id is not None

    # -----------------------------------------------------------------
    # Metadata
    # -----------------------------------------------------------------

    def update_metadata(self, **changes: Any) -> None:
        unknown = set(changes) - _METADATA_ATTRS
        if unknown:
            raise ValueError(f"Unknown metadata attribute(s): {sorted(unknown)}")
        for attr, value in changes.items():
            setattr(self, attr, value)
        self._changed("metadata")

    def metadata_valid(self) -> bool:
        return bool((self.name or "").strip()) and bool((self.key or "").strip())

    # -----------------------------------------------------------------
    # Fields
    # -----------------------------------------------------------------

    def add_field(self, field_type: FieldType | str) -> FormField:
        """Append a new field with a generated id and key."""
        field_type = FieldType(field_type)
        counter = self._next_counter(field_type)
        new_field = FormField(
            id=f"field_{counter}",
            type=field_type,
            label=f"{field_type.value.capitalize()} Field",
            key=f"{field_type.value}_{counter}",
            placeholder="",
            required=False,
            disabled=False,
            options=list(DEFAULT_OPTIONS) if field_type in OPTION_FIELD_TYPES else None,
            validation=ValidationRule(),
            order=len(self.fields),
        )
        self.fields.append(new_field)
        self._changed("add_field")
        return new_field

    def delete_field(self, index: int) -> FormField:
        """Remove the field at `index`.

        Conditions in other fields that point at its key are kept; they
        now reference a missing field and evaluate to False.
        """
        removed = self.fields.pop(index)
        self._renormalize_order()

        dangling = [
            f.key for f in self.fields
            if any(c.field_key == removed.key for c in f.conditions or [])
        ]
        if dangling:
            logger.warning(
                "Deleted field '%s' is still referenced by conditions on: %s",
                removed.key,
                ", ".join(dangling),
            )

        self._changed("delete_field")
        return removed

    def reorder_field(self, from_index: int, to_index: int) -> None:
        """Move a field, clamping both indices into range."""
        if not self.fields:
            return
        last = len(self.fields) - 1
        from_index = max(0, min(from_index, last))
        to_index = max(0, min(to_index, last))
        if from_index != to_index:
            moved = self.fields.pop(from_index)
            self.fields.insert(to_index, moved)
        self._renormalize_order()
        self._changed("reorder_field")

    def update_field(self, index: int, **changes: Any) -> FormField:
        """Change attributes of a field (validated on assignment).

        `id` is immutable and `order` is managed by the builder.
        """
        protected = set(changes) & _PROTECTED_FIELD_ATTRS
        if protected:
            raise ValueError(f"Cannot change field attribute(s): {sorted(protected)}")

        target = self.fields[index]
        for attr, value in changes.items():
            setattr(target, attr, value)
        self._changed("update_field")
        return target

    def set_options_from_text(self, index: int, text: str) -> list[str]:
        """Set options from newline-separated text, skipping blank lines."""
        options = [line for line in text.split("\n") if line.strip()]
        self.update_field(index, options=options)
        return options

    def derive_key_from_label(self, index: int) -> str:
        target = self.fields[index]
        if target.label:
            self.update_field(index, key=slugify_label(target.label))
        return target.key

    # -----------------------------------------------------------------
    # Conditions
    # -----------------------------------------------------------------

    def add_condition(self, index: int) -> FieldCondition:
        target = self.fields[index]
        condition = FieldCondition(field_key="", operator="equals", value="")
        target.conditions = [*(target.conditions or []), condition]
        self._changed("add_condition")
        return target.conditions[-1]

    def remove_condition(self, index: int, condition_index: int) -> None:
        target = self.fields[index]
        if not target.conditions:
            return
        conditions = list(target.conditions)
        del conditions[condition_index]
        target.conditions = conditions
        self._changed("remove_condition")

    def update_condition(self, index: int, condition_index: int, **changes: Any) -> FieldCondition:
        """Change attributes of one condition.

        Raises:
            IndexError: If the field has no condition at `condition_index`.
        """
        target = self.fields[index]
        if not target.conditions:
            raise IndexError(f"Field '{target.key}' has no conditions")
        condition = target.conditions[condition_index]
        for attr, value in changes.items():
            setattr(condition, attr, value)
        self._changed("update_condition")
        return condition

    def available_fields_for_condition(self, index: int) -> list[FormField]:
        """Every field except the one at `index` (a field cannot depend on itself)."""
        current = self.fields[index]
        return [f for f in self.fields if f.id != current.id]

    def dangling_references(self) -> list[tuple[str, str]]:
        """(field key, referenced key) for conditions pointing at missing fields."""
        keys = {f.key for f in self.fields}
        return [
            (f.key, c.field_key)
            for f in self.fields
            for c in f.conditions or []
            if c.field_key and c.field_key not in keys
        ]

    # -----------------------------------------------------------------
    # Output
    # -----------------------------------------------------------------

    def schema_problems(self) -> list[str]:
        problems = []
        if not (self.name or "").strip():
            problems.append("Form name is required")
        if not (self.key or "").strip():
            problems.append("Form key is required")
        return problems + find_schema_problems(self.to_definition())

    def to_definition(self) -> FormDefinition:
        """Snapshot of the current state, independent of later edits."""
        return FormDefinition(
            id=self.form_id,
            name=self.name,
            key=self.key,
            description=self.description,
            fields=[f.model_copy(deep=True) for f in self.fields],
        )

    def apply_saved(self, saved: FormDefinition) -> None:
        """Adopt the storage identity of a saved definition.

        Field edits made while the save was in flight are kept; only the
        id is taken from the response.
        """
        if saved.id is not None and saved.id != self.form_id:
            logger.info("Form '%s' now stored with id %s", self.key, saved.id)
            self.form_id = saved.id

    # -----------------------------------------------------------------
    # Change listeners
    # -----------------------------------------------------------------

    def subscribe(self, listener: BuilderListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _changed(self, reason: str) -> None:
        for listener in list(self._listeners):
            listener(self, reason)

    def _renormalize_order(self) -> None:
        for index, f in enumerate(self.fields):
            f.order = index

    def _next_counter(self, field_type: FieldType) -> int:
        used_ids = {f.id for f in self.fields}
        used_keys = {f.key for f in self.fields}
        while True:
            self._field_counter += 1
            n = self._field_counter
            if f"field_{n}" not in used_ids and f"{field_type.value}_{n}" not in used_keys:
                return n
