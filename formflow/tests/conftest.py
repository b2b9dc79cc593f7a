"""
Shared fixtures for the formflow test suite.
"""

import json
from pathlib import Path

import pytest

from formflow.core.schema import FormDefinition

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


def _load_schema(filename: str) -> FormDefinition:
    with open(SCHEMAS_DIR / filename) as f:
        return FormDefinition.model_validate(json.load(f))


@pytest.fixture
def loan_definition() -> FormDefinition:
    """Loan application: required text/email/number fields, a select that
    reveals a conditional textarea, a required checkbox and a disabled field."""
    return _load_schema("loan_application.json")


@pytest.fixture
def leave_definition() -> FormDefinition:
    """Leave request: a field gated by two AND-ed conditions."""
    return _load_schema("leave_request.json")
