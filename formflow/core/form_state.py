"""
Form runtime engine.

Compiles a FormDefinition plus initial values into a live form:
- One control per field holding its value, disabled flag and validators
- Visibility recomputed after every value change
- Hidden fields are cleared, lose their validators and never block
  submission or contribute values to the answer record
- Submission collects every failure of every visible field
"""

import asyncio
import logging
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from formflow.core.errors import FormValidationError, UnknownFieldError
from formflow.core.schema import FieldType, FormDefinition, FormField
from formflow.core.validators import (
    ValidationFailure,
    Validator,
    compile_validators,
    run_validators,
)
from formflow.core.visibility import is_field_visible

logger = logging.getLogger(__name__)

# listener(form, changed_keys)
ChangeListener = Callable[["FormInstance", list[str]], None]


class FieldStatus(str, Enum):
    """Validity state of a single field."""

    PRISTINE = "pristine"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class FieldControl:
    """Live state of one field."""

    field: FormField
    value: Any
    disabled: bool
    validators: list[Validator] = dataclass_field(default_factory=list)
    visible: bool = True
    touched: bool = False

    @property
    def key(self) -> str:
        return self.field.key

    def errors(self) -> list[ValidationFailure]:
        # Hidden and disabled controls are never validated
        if not self.visible or self.disabled:
            return []
        return run_validators(self.validators, self.value)


def default_value_for(field: FormField) -> Any:
    """Initial value for a field: its declared default, else a type zero value."""
    if field.has_default():
        return field.default_value
    match field.type:
        case FieldType.CHECKBOX:
            return False
        case FieldType.NUMBER:
            return None
    return ""


class FormInstance:
    """A live, validated form built from a FormDefinition.

    Each instance owns its controls exclusively; nothing is shared
    between instances.

    Args:
        definition: The form definition to render.
        initial_values: Previously saved answers keyed by field key.
            Keys that do not match a field are ignored.
    """

    def __init__(
        self,
        definition: FormDefinition,
        initial_values: Mapping[str, Any] | None = None,
    ):
        self.definition = definition
        self.initial_values: dict[str, Any] = dict(initial_values or {})
        self._compiled: dict[str, list[Validator]] = {}
        self._controls: dict[str, FieldControl] = {}
        self._listeners: list[ChangeListener] = []

        for f in definition.sorted_fields():
            if f.key in self._compiled:
                logger.warning(
                    "Form '%s' has duplicate field key '%s'; keeping the first",
                    definition.key,
                    f.key,
                )
                continue
            self._compiled[f.key] = compile_validators(f)

        self._build_controls()

    # -----------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------

    def _build_controls(self) -> None:
        self._controls = {}
        for f in self.definition.sorted_fields():
            if f.key in self._controls:
                continue
            self._controls[f.key] = FieldControl(
                field=f,
                value=default_value_for(f),
                disabled=f.disabled,
                validators=self._compiled[f.key],
            )
        self._patch_values(self.initial_values)
        self._recompute_visibility()

    def _patch_values(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            control = self._controls.get(key)
            if control is not None:
                control.value = value

    # -----------------------------------------------------------------
    # Field access
    # -----------------------------------------------------------------

    @property
    def fields(self) -> list[FormField]:
        """Fields in rendering order."""
        return [control.field for control in self._controls.values()]

    @property
    def values(self) -> dict[str, Any]:
        """Current raw values of every field, hidden ones included (as None)."""
        return {key: control.value for key, control in self._controls.items()}

    @property
    def visibility(self) -> dict[str, bool]:
        return {key: control.visible for key, control in self._controls.items()}

    def get_value(self, key: str) -> Any:
        return self._get_control(key).value

    def is_visible(self, key: str) -> bool:
        return self._get_control(key).visible

    def visible_fields(self) -> list[FormField]:
        return [c.field for c in self._controls.values() if c.visible]

    def set_value(self, key: str, value: Any) -> None:
        """Set one field value and recompute visibility.

        Raises:
            UnknownFieldError: If no field has this key.
        """
        self.set_values({key: value})

    def set_values(self, values: Mapping[str, Any]) -> None:
        """Set several values at once with a single visibility pass.

        Raises:
            UnknownFieldError: If any key does not match a field. No value
                is applied in that case.
        """
        for key in values:
            self._get_control(key)

        for key, value in values.items():
            control = self._controls[key]
            control.value = value
            control.touched = True

        self._recompute_visibility()

        for key in values:
            if not self._controls[key].visible:
                logger.debug("Value for hidden field '%s' was discarded", key)

        self._notify(list(values.keys()))

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def errors(self, key: str) -> list[ValidationFailure]:
        return self._get_control(key).errors()

    def all_errors(self) -> dict[str, list[ValidationFailure]]:
        """Failures of every visible field, keyed by field key."""
        failures = {}
        for key, control in self._controls.items():
            field_errors = control.errors()
            if field_errors:
                failures[key] = field_errors
        return failures

    def field_status(self, key: str) -> FieldStatus:
        control = self._get_control(key)
        if not control.visible or control.disabled:
            return FieldStatus.VALID
        if not control.touched:
            return FieldStatus.PRISTINE
        return FieldStatus.INVALID if control.errors() else FieldStatus.VALID

    def is_valid(self) -> bool:
        return not self.all_errors()

    # -----------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------

    def get_visible_answers(self) -> dict[str, Any]:
        """Answer record: values of visible fields (disabled ones included)."""
        return {
            key: control.value
            for key, control in self._controls.items()
            if control.visible
        }

    def submit(self) -> dict[str, Any]:
        """Validate every visible field and return the answer record.

        Raises:
            FormValidationError: Listing every failing visible field and
                its failed rules. Nothing is submitted in that case.
        """
        for control in self._controls.values():
            control.touched = True

        failures = self.all_errors()
        if failures:
            logger.info(
                "Submission of form '%s' rejected: %d invalid field(s)",
                self.definition.key,
                len(failures),
            )
            raise FormValidationError({
                key: [failure.model_dump() for failure in field_failures]
                for key, field_failures in failures.items()
            })

        return self.get_visible_answers()

    def reset(self, initial_values: Mapping[str, Any] | None = None) -> None:
        """Restore defaults, then apply `initial_values` (or the ones
        the form was built with)."""
        if initial_values is not None:
            self.initial_values = dict(initial_values)
        self._build_controls()
        self._notify(list(self._controls.keys()))

    # -----------------------------------------------------------------
    # Change listeners
    # -----------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a value-change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changed_keys: list[str]) -> None:
        for listener in list(self._listeners):
            listener(self, changed_keys)

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _get_control(self, key: str) -> FieldControl:
        control = self._controls.get(key)
        if control is None:
            raise UnknownFieldError(key)
        return control

    def _recompute_visibility(self) -> None:
        """Re-evaluate every conditional field until nothing changes.

        Each pass evaluates against one snapshot of the values. Clearing
        a newly hidden field can hide fields that depend on it, so passes
        repeat; hiding only ever clears values, which bounds the loop.
        """
        while True:
            snapshot = self.values
            cleared = False

            for key, control in self._controls.items():
                if not control.field.has_conditions():
                    continue

                visible = is_field_visible(control.field, snapshot)

                if visible and not control.visible:
                    control.visible = True
                    control.validators = self._compiled[key]
                elif not visible and control.visible:
                    control.visible = False
                    control.validators = []

                if not control.visible and control.value is not None:
                    control.value = None
                    cleared = True

            if not cleared:
                return


# -----------------------------------------------------------------
# Factories
# -----------------------------------------------------------------


def build_form(
    definition: FormDefinition | Mapping[str, Any],
    initial_values: Mapping[str, Any] | None = None,
) -> FormInstance:
    """Build a live form from a definition (model or JSON dict)."""
    if not isinstance(definition, FormDefinition):
        definition = FormDefinition.model_validate(definition)
    return FormInstance(definition, initial_values)


async def load_form(
    definition_source: Awaitable[FormDefinition | Mapping[str, Any]],
    values_source: Awaitable[Mapping[str, Any] | None],
) -> FormInstance:
    """Wait for both the definition and the saved values, then build.

    If either source fails, the other one is cancelled, the error
    propagates and no form is built.
    """
    tasks = [
        asyncio.ensure_future(definition_source),
        asyncio.ensure_future(values_source),
    ]
    try:
        definition, values = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return build_form(definition, values)
