"""
FastAPI routes for the formflow backend.

Endpoints:
- POST /validate-schema     - structural validation of a raw form definition
- POST /forms/evaluate      - visibility, errors and answer preview for values
- POST /forms/submit        - validate and return the answer record
- GET  /schemas             - list bundled sample definitions (.json files)
- GET  /schemas/{filename}  - get a bundled definition
- GET  /health              - health check
"""

import json
import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from formflow.core.errors import FormValidationError
from formflow.core.form_state import FormInstance, build_form
from formflow.core.schema import FormDefinition, find_schema_problems

logger = logging.getLogger(__name__)

router = APIRouter()

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


# --- Request / Response Models ---


class FormValuesRequest(BaseModel):
    """A form definition plus the current values of its fields."""

    definition: dict[str, Any]
    values: dict[str, Any] = {}


class SchemaValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = []


class EvaluateResponse(BaseModel):
    visibility: dict[str, bool]
    errors: dict[str, list[dict[str, Any]]]
    answers: dict[str, Any]
    valid: bool


class SubmitResponse(BaseModel):
    answers: dict[str, Any]


# --- Helpers ---


def _format_validation_error(error: ValidationError) -> list[str]:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return messages


def _build(request: FormValuesRequest) -> FormInstance:
    try:
        definition = FormDefinition.model_validate(request.definition)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid form definition", "errors": _format_validation_error(e)},
        )
    return build_form(definition, request.values)


# --- Endpoints ---


@router.post("/validate-schema", response_model=SchemaValidationResponse)
async def validate_schema(payload: dict[str, Any]):
    """Validate a raw form definition: parsing first, then structural checks."""
    try:
        definition = FormDefinition.model_validate(payload)
    except ValidationError as e:
        return SchemaValidationResponse(valid=False, errors=_format_validation_error(e))

    problems = find_schema_problems(definition)
    if not (definition.name or "").strip():
        problems.insert(0, "Form name is required")
    if not (definition.key or "").strip():
        problems.insert(0, "Form key is required")

    return SchemaValidationResponse(valid=not problems, errors=problems)


@router.post("/forms/evaluate", response_model=EvaluateResponse)
async def evaluate_form(request: FormValuesRequest):
    """Compute visibility and per-field errors for the given values."""
    form = _build(request)
    errors = {
        key: [failure.model_dump() for failure in failures]
        for key, failures in form.all_errors().items()
    }
    return EvaluateResponse(
        visibility=form.visibility,
        errors=errors,
        answers=form.get_visible_answers(),
        valid=not errors,
    )


@router.post("/forms/submit", response_model=SubmitResponse)
async def submit_form(request: FormValuesRequest):
    """Validate the values and return the answer record, or 422 with every failure."""
    form = _build(request)
    try:
        answers = form.submit()
    except FormValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": "Please fill all required fields", "errors": e.failures},
        )
    return SubmitResponse(answers=answers)


@router.get("/schemas")
async def list_schemas():
    """List bundled sample form definitions (.json)."""
    schemas = []
    if SCHEMAS_DIR.exists():
        for path in sorted(SCHEMAS_DIR.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                logger.warning("Skipping unreadable schema file %s", path.name)
                continue
            schemas.append({
                "filename": path.name,
                "name": data.get("name", path.stem),
                "key": data.get("key", path.stem),
                "field_count": len(data.get("fields", [])),
            })
    return {"schemas": schemas}


@router.get("/schemas/{filename}")
async def get_schema(filename: str):
    """Get a bundled form definition by filename."""
    path = SCHEMAS_DIR / filename
    if Path(filename).name != filename or not path.exists():
        raise HTTPException(status_code=404, detail=f"Schema '{filename}' not found")

    try:
        definition = FormDefinition.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError):
        raise HTTPException(status_code=500, detail=f"Error reading schema file '{filename}'")
    return {"filename": filename, "definition": definition.to_payload()}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
