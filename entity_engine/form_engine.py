"""
Form engine for entity create and edit screens.

One FormEngine instance backs one open form. It loads the schema, seeds
form state, resolves reference options, validates required fields and
submits either a full create payload or a diff-based update payload.
"""

import logging
from copy import deepcopy
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Dict, Any, Optional, List, Callable

from .api_client import ApiResponse, BACKEND_UNAVAILABLE_MESSAGE, unwrap_record
from .context import EngineContext
from .diff_utils import calculate_modified_fields, has_changes
from .field_renderer import initial_value
from .formatting import to_label
from .models import EntityMeta, FieldMeta, FieldType
from .reference_resolver import ReferenceResolver
from .schema_provider import SchemaProvider

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "No changes. Nothing was modified."


class FormState(Enum):
    LOADING_META = "loading_meta"
    META_ERROR = "meta_error"
    READY = "ready"
    SUBMITTING = "submitting"
    SUBMIT_ERROR = "submit_error"
    CLOSED = "closed"


class FormMode:
    """Form mode constants."""
    CREATE = "create"
    EDIT = "edit"


class SubmitOutcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    NO_CHANGES = "no_changes"
    INVALID = "invalid"
    FAILED = "failed"
    BUSY = "busy"


@dataclass
class ParentContext:
    """Parent record a child form is opened under."""
    parent_entity: str
    parent_id: Any
    mapped_by: str


@dataclass
class FormLayout:
    primary: List[FieldMeta] = dataclass_field(default_factory=list)
    secondary: List[FieldMeta] = dataclass_field(default_factory=list)
    attachments: List[FieldMeta] = dataclass_field(default_factory=list)


@dataclass
class SubmitResult:
    outcome: SubmitOutcome
    data: Any = None
    message: Optional[str] = None
    payload: Dict[str, Any] = dataclass_field(default_factory=dict)
    errors: Dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome in (SubmitOutcome.CREATED, SubmitOutcome.UPDATED)


def is_empty_value(value: Any, field: Optional[FieldMeta] = None) -> bool:
    """Whether a value counts as missing, for required checks and create payloads."""
    if field is not None and field.type == FieldType.BOOLEAN:
        return False
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, dict) and field is not None and field.is_scalar_reference:
        return value.get("id") in (None, "")
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


class FormEngine:
    """
    State machine for one form instance.

    LOADING_META -> META_ERROR (terminal) or READY
    READY -> SUBMITTING -> CLOSED on success, SUBMIT_ERROR on failure
    SUBMIT_ERROR -> READY as soon as the user edits, or directly on resubmit
    """

    def __init__(
        self,
        context: EngineContext,
        entity_name: str,
        existing_record: Optional[Dict[str, Any]] = None,
        parent_context: Optional[ParentContext] = None,
        on_success: Optional[Callable[[Any], None]] = None,
        schema_provider: Optional[SchemaProvider] = None,
        resolver: Optional[ReferenceResolver] = None
    ):
        self.context = context
        self.entity_name = entity_name.strip().lower()
        self.existing_record = deepcopy(existing_record) if existing_record else None
        self.parent_context = parent_context
        self.on_success = on_success
        self.schema_provider = schema_provider or SchemaProvider(context)
        self.resolver = resolver or ReferenceResolver(context)

        self.state = FormState.LOADING_META
        self.meta: Optional[EntityMeta] = None
        self.meta_error: Optional[str] = None
        self.values: Dict[str, Any] = {}
        self.initial_values: Dict[str, Any] = {}
        self.errors: Dict[str, str] = {}
        self.last_error: Optional[str] = None

    @property
    def mode(self) -> str:
        return FormMode.EDIT if self.existing_record is not None else FormMode.CREATE

    @property
    def label(self) -> str:
        return to_label(self.entity_name)

    @property
    def record_id(self) -> Any:
        if self.existing_record is None:
            return None
        key = self.meta.primary_key if self.meta else "id"
        return self.existing_record.get(key)

    @property
    def title(self) -> str:
        return f"Edit {self.label}" if self.mode == FormMode.EDIT else f"Add {self.label}"

    @property
    def submit_label(self) -> str:
        return "Save Changes" if self.mode == FormMode.EDIT else f"Create {self.label}"

    @property
    def is_ready(self) -> bool:
        return self.state in (FormState.READY, FormState.SUBMIT_ERROR)

    def initialize(self) -> FormState:
        """
        Load the schema and seed form state.

        In edit mode the seeded values are snapshotted as ``initial_values``
        for the update diff. A missing schema moves the form to META_ERROR.
        """
        self.state = FormState.LOADING_META
        self.meta = self.schema_provider.get_entity_meta(self.entity_name)

        if self.meta is None:
            self.meta_error = f"Metadata unavailable for '{self.entity_name}'."
            self.state = FormState.META_ERROR
            logger.error(f"Form for '{self.entity_name}' cannot open: no metadata")
            return self.state

        record = self.existing_record or {}
        self.values = {
            f.name: initial_value(f, deepcopy(record.get(f.name)))
            for f in self.meta.scalar_fields()
        }
        self.initial_values = deepcopy(self.values)
        self.errors = {}
        self.last_error = None
        self.state = FormState.READY
        logger.info(f"Form ready: {self.mode} {self.entity_name} {self.record_id or ''}".rstrip())
        return self.state

    def load_references(self) -> Dict[str, List[Dict[str, Any]]]:
        """Resolve options for every scalar reference field; failures leave a field with no options."""
        if self.meta is None or not self.is_ready:
            return {}
        return self.resolver.load_form_options(self.meta)

    def options_for(self, field_name: str) -> List[Dict[str, Any]]:
        return self.resolver.options_for(field_name)

    def layout(self) -> FormLayout:
        """Split renderable fields into primary, secondary and attachment groups."""
        layout = FormLayout()
        if self.meta is None:
            return layout

        for f in self.meta.fields:
            if f.is_collection:
                continue
            if f.is_file:
                layout.attachments.append(f)
            elif f.partial_field:
                layout.primary.append(f)
            else:
                layout.secondary.append(f)
        return layout

    def set_value(self, field_name: str, value: Any) -> None:
        """Record an edit; clears that field's error and leaves SUBMIT_ERROR."""
        self.values[field_name] = value
        self.errors.pop(field_name, None)
        if self.state == FormState.SUBMIT_ERROR:
            self.state = FormState.READY

    def validate(self) -> Dict[str, str]:
        """
        Check required fields.

        Returns:
            Mapping of field name to ``"<Label> is required"``; empty when valid
        """
        self.errors = {}
        if self.meta is None:
            return self.errors

        for f in self.meta.scalar_fields():
            if f.is_file or not f.is_required:
                continue
            if is_empty_value(self.values.get(f.name), f):
                self.errors[f.name] = f"{f.label} is required"
        return self.errors

    def build_create_payload(self) -> Dict[str, Any]:
        """Every non-file field that is not blank; the parent's foreign key is injected when present."""
        payload = {}
        for f in self.meta.scalar_fields():
            if f.is_file:
                continue
            value = self.values.get(f.name)
            if is_empty_value(value, f):
                continue
            payload[f.name] = value

        if self.parent_context is not None and self.parent_context.mapped_by:
            payload[self.parent_context.mapped_by] = self.parent_context.parent_id
        return payload

    def build_update_payload(self) -> Dict[str, Any]:
        """Only the fields that changed since initialize()."""
        return calculate_modified_fields(self.meta, self.initial_values, self.values)

    def submit(self) -> SubmitResult:
        """
        Validate and send the form.

        Returns:
            SubmitResult; BUSY while a submission is already in flight,
            NO_CHANGES for an unchanged edit (no request is made)
        """
        if self.state == FormState.SUBMITTING:
            return SubmitResult(SubmitOutcome.BUSY)
        if not self.is_ready:
            return SubmitResult(SubmitOutcome.FAILED, message=f"Form is not ready ({self.state.value})")

        errors = self.validate()
        if errors:
            logger.info(f"Submit blocked for {self.entity_name}: {sorted(errors)}")
            return SubmitResult(SubmitOutcome.INVALID, errors=dict(errors))

        if self.mode == FormMode.EDIT:
            payload = self.build_update_payload()
            if not has_changes(payload):
                self.context.notify(NO_CHANGES_MESSAGE, "info")
                return SubmitResult(SubmitOutcome.NO_CHANGES, message=NO_CHANGES_MESSAGE)
            if self.record_id is None:
                return self._fail("Record has no id", payload)
        else:
            payload = self.build_create_payload()

        self.state = FormState.SUBMITTING
        response = self._send(payload)

        if not response.success:
            return self._fail(response.error_message, payload)

        data = unwrap_record(response.data) if response.data is not None else None
        if self.mode == FormMode.EDIT:
            outcome, message = SubmitOutcome.UPDATED, f"{self.label} updated"
        else:
            outcome, message = SubmitOutcome.CREATED, f"{self.label} created"

        logger.info(f"{message}: {sorted(payload)}")
        self.context.notify(message, "success")
        if self.on_success is not None:
            self.on_success(data)
        self.state = FormState.CLOSED
        return SubmitResult(outcome, data=data, message=message, payload=payload)

    def close(self) -> None:
        self.state = FormState.CLOSED

    def _send(self, payload: Dict[str, Any]) -> ApiResponse:
        api = self.context.api
        if api is None:
            return ApiResponse(success=False, error=BACKEND_UNAVAILABLE_MESSAGE)
        body = {"input_data": payload}
        if self.mode == FormMode.EDIT:
            return api.put(f"/{self.entity_name}s/{self.record_id}", json_body=body)
        return api.post(f"/{self.entity_name}s", json_body=body)

    def _fail(self, message: str, payload: Dict[str, Any]) -> SubmitResult:
        self.state = FormState.SUBMIT_ERROR
        self.last_error = message
        logger.error(f"Submit failed for {self.entity_name}: {message}")
        self.context.notify(message, "error")
        return SubmitResult(SubmitOutcome.FAILED, message=message, payload=payload)
