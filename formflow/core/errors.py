"""
Error taxonomy for the form engine.

Missing condition references are deliberately absent from this module:
they evaluate to False in the visibility evaluator and never surface
as exceptions.
"""

from typing import Any


class FormFlowError(Exception):
    """Base class for all form engine errors."""


class SchemaError(FormFlowError):
    """Raised when a FormDefinition has structural problems.

    Authoring keeps working with a schema that has problems; this is
    only raised by explicit checks (see `check_schema`).
    """

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid form definition")


class UnknownFieldError(FormFlowError, ValueError):
    """Raised when a field key does not exist in the form."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Field '{key}' does not exist in the form")


class FormValidationError(FormFlowError):
    """Raised by submit() when one or more visible fields fail validation.

    Args:
        failures: Mapping of field key to the list of failed rules.
            Each failure is a dict with `rule`, `message` and `param`.
    """

    def __init__(self, failures: dict[str, list[dict[str, Any]]]):
        self.failures = failures
        fields = ", ".join(failures.keys())
        super().__init__(f"Form has invalid fields: {fields}")

    def field_keys(self) -> list[str]:
        return list(self.failures.keys())


class PersistenceError(FormFlowError):
    """Raised when saving or loading through the storage API fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SchemaValidationUnavailable(PersistenceError):
    """Raised when the remote schema validation endpoint cannot be reached."""
