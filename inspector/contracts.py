"""
Request contracts for InspectorEngine.call.

Each operation validates its payload against one pydantic model. Field
aliases accept the camelCase names used on the wire (``pageSize``,
``primaryKey``) and the legacy ``database`` / ``name`` keys.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from inspector.errors.exceptions import Unsupported, ValidationError


class Request(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EmptyRequest(Request):
    pass


class SourceRequest(Request):
    source: str = Field(min_length=1, alias="database")


class TableRequest(SourceRequest):
    table: str = Field(min_length=1)


class ListRowsRequest(TableRequest):
    page: Optional[int] = 1
    page_size: Optional[int] = Field(default=None, alias="pageSize")


class RunQueryRequest(SourceRequest):
    query: str = Field(min_length=1)


class InsertRowRequest(TableRequest):
    values: Dict[str, Any]


class DeleteRowRequest(TableRequest):
    primary_key: Dict[str, Any] = Field(alias="primaryKey")


class UpdateRowRequest(DeleteRowRequest):
    values: Dict[str, Any]


class NamespaceRequest(Request):
    namespace: str = Field(min_length=1, alias="name")


class EntryRequest(NamespaceRequest):
    key: str = Field(min_length=1)


class UpsertPreferenceRequest(EntryRequest):
    value: Any = None
    type: str = Field(min_length=1)


REQUESTS: Dict[str, Type[Request]] = {
    "list_data_sources": EmptyRequest,
    "get_schema": SourceRequest,
    "build_erd": SourceRequest,
    "list_rows": ListRowsRequest,
    "run_query": RunQueryRequest,
    "insert_row": InsertRowRequest,
    "update_row": UpdateRowRequest,
    "delete_row": DeleteRowRequest,
    "list_preferences": EmptyRequest,
    "create_preference_namespace": NamespaceRequest,
    "upsert_preference": UpsertPreferenceRequest,
    "remove_preference_entry": EntryRequest,
    "remove_preference_namespace": NamespaceRequest,
}

OPERATIONS = tuple(REQUESTS)

_MISSING_TYPES = {"missing", "string_too_short"}


def _field_name(model: Type[Request], loc: Any) -> str:
    if not loc:
        return "payload"
    head = str(loc[0])
    for name, info in model.model_fields.items():
        if head in (name, info.alias):
            return name
    return head


def parse_request(operation: str, payload: Optional[Mapping[str, Any]]) -> Request:
    """Validate a raw payload; pydantic errors become VALIDATION_ERROR."""
    model = REQUESTS.get(operation)
    if model is None:
        raise Unsupported(f"Unsupported operation: {operation}")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Payload must be an object")

    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as e:
        errors = e.errors()
        first = errors[0]
        field_name = _field_name(model, first.get("loc"))
        if first.get("type") in _MISSING_TYPES:
            message = f"Missing required field: {field_name}"
        else:
            message = f"Invalid field: {field_name}"
        details = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in errors
        ]
        raise ValidationError(message, details=details) from None
