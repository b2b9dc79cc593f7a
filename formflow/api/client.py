"""
HTTP client for the external form storage API.

Covers the three collaborators the engine needs:
- Schema storage:     /forms/definitions (GET by id or key, POST, PUT)
- Answer persistence: /forms/submissions (save-draft, submit, my drafts)
- Schema validation:  /forms/definitions/{id}/validate-schema

Transport failures, non-2xx responses and response bodies that cannot
be decoded raise PersistenceError.
"""

import json
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from formflow.config import get_settings
from formflow.core.errors import PersistenceError, SchemaValidationUnavailable
from formflow.core.schema import FormDefinition, FormSubmission

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DRAFTS_PAGE_SIZE = 100


class FormServiceClient:
    """Async client for the form storage API.

    Args:
        base_url: API root, e.g. "https://bpm.example.com/api/v1". Defaults
            to FORMFLOW_API_BASE_URL.
        http_client: Pre-configured httpx.AsyncClient (tests pass one
            with a mock transport). Owned by the caller when given.
    """

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        base_url = base_url or settings.api_base_url
        if http_client is None and not base_url:
            raise ValueError(
                "FORMFLOW_API_BASE_URL env var (or base_url argument) is required"
            )
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or settings.api_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "FormServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -----------------------------------------------------------------
    # Form definitions
    # -----------------------------------------------------------------

    async def get_form_definition(self, ref: int | str) -> FormDefinition:
        """Fetch a definition by numeric id or by form key."""
        if isinstance(ref, int) or str(ref).isdigit():
            path = f"/forms/definitions/{ref}"
        else:
            path = f"/forms/definitions/key/{ref}"
        definition = self._parse(FormDefinition, await self._request("GET", path), "GET", path)
        if definition is None:
            raise PersistenceError(f"GET {path} returned no form definition")
        return definition

    async def create_form_definition(self, definition: FormDefinition) -> FormDefinition | None:
        path = "/forms/definitions"
        data = await self._request("POST", path, json=definition.to_payload())
        return self._parse(FormDefinition, data, "POST", path)

    async def update_form_definition(
        self, form_id: int | str, definition: FormDefinition
    ) -> FormDefinition | None:
        """Replace a stored definition. Returns None when storage answers
        without a body (204)."""
        path = f"/forms/definitions/{form_id}"
        data = await self._request("PUT", path, json=definition.to_payload())
        return self._parse(FormDefinition, data, "PUT", path)

    async def save_form_definition(self, definition: FormDefinition) -> FormDefinition | None:
        """Create the definition if it has no id yet, otherwise update it."""
        if definition.id is None:
            return await self.create_form_definition(definition)
        return await self.update_form_definition(definition.id, definition)

    # -----------------------------------------------------------------
    # Answers
    # -----------------------------------------------------------------

    async def save_draft(
        self,
        form_definition_id: int | str,
        answers: dict[str, Any],
        business_key: str | None = None,
        task_id: int | None = None,
        process_instance_id: int | None = None,
    ) -> FormSubmission | None:
        """Store answers as a draft. Storage does not validate drafts."""
        path = "/forms/submissions/save-draft"
        body = _submission_body(
            form_definition_id,
            answers,
            businessKey=business_key,
            taskId=task_id,
            processInstanceId=process_instance_id,
        )
        return self._parse(FormSubmission, await self._request("POST", path, json=body), "POST", path)

    async def submit_answers(
        self,
        form_definition_id: int | str,
        answers: dict[str, Any],
        business_key: str | None = None,
        notes: str | None = None,
        task_id: int | None = None,
        process_instance_id: int | None = None,
    ) -> FormSubmission | None:
        """Submit a final answer record. Storage validates it against the schema."""
        path = "/forms/submissions/submit"
        body = _submission_body(
            form_definition_id,
            answers,
            businessKey=business_key,
            notes=notes,
            taskId=task_id,
            processInstanceId=process_instance_id,
        )
        return self._parse(FormSubmission, await self._request("POST", path, json=body), "POST", path)

    async def get_draft_answers(self, form_definition_id: int | str) -> dict[str, Any]:
        """Answers of the current user's latest draft for a form; empty when none exist."""
        path = "/forms/submissions/my/drafts"
        try:
            data = await self._request(
                "GET", path, params={"page": 0, "size": DRAFTS_PAGE_SIZE}
            )
        except PersistenceError as e:
            if e.status_code == 404:
                return {}
            raise

        drafts = []
        for item in (data or {}).get("content") or []:
            draft = self._parse(FormSubmission, item, "GET", path)
            if str(draft.form_definition_id) == str(form_definition_id):
                drafts.append(draft)
        if not drafts:
            return {}

        latest = max(drafts, key=lambda d: d.id or 0)
        try:
            return latest.answers()
        except ValueError as e:
            raise PersistenceError(f"Draft {latest.id} has unreadable dataJson: {e}") from e

    # -----------------------------------------------------------------
    # Schema validation
    # -----------------------------------------------------------------

    async def validate_schema(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Ask the remote endpoint to validate a raw schema.

        Returns:
            {"valid": bool, "errors": list[str]}

        Raises:
            SchemaValidationUnavailable: If the endpoint cannot be reached,
                answers with a server error or a body that is not JSON.
        """
        form_id = payload.get("id")
        if form_id is None:
            path = "/forms/definitions/validate-schema"
        else:
            path = f"/forms/definitions/{form_id}/validate-schema"

        try:
            response = await self._http.post(path, json=payload)
        except httpx.HTTPError as e:
            raise SchemaValidationUnavailable(f"Schema validation unreachable: {e}") from e
        if response.status_code >= 500 or response.status_code == 404:
            raise SchemaValidationUnavailable(
                f"Schema validation returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            result = response.json()
        except ValueError as e:
            raise SchemaValidationUnavailable(
                "Schema validation returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        valid = bool(result.get("valid"))
        errors = result.get("errors") or []
        if not valid and not errors:
            errors = [result.get("message") or "Schema is invalid"]
        return {"valid": valid, "errors": list(errors)}

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body (None when there is none)."""
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            logger.error("%s %s returned HTTP %d", method, path, response.status_code)
            raise PersistenceError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("%s %s returned a non-JSON body", method, path)
            raise PersistenceError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _parse(model: type[ModelT], data: Any, method: str, path: str) -> ModelT | None:
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("%s %s returned an unexpected payload: %s", method, path, e)
            raise PersistenceError(
                f"{method} {path} returned an unexpected {model.__name__} payload"
            ) from e


def _submission_body(
    form_definition_id: int | str, answers: dict[str, Any], **extra: Any
) -> dict[str, Any]:
    body = {"formDefinitionId": form_definition_id, "dataJson": json.dumps(answers)}
    body.update({name: value for name, value in extra.items() if value is not None})
    return body
