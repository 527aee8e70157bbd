"""
Shared building blocks for tool modules.

A tool is a small record: name, description, JSON-Schema and a table of
operation handlers. Handlers take ``(ctx, args)`` and return the text payload
for the tool result; any ``SlideError`` they raise becomes an in-band error.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from slide_mcp.api.client import SlideClient
from slide_mcp.api.errors import ToolError
from slide_mcp.core.config import SlideConfig

logger = logging.getLogger("Slide.tools")


@dataclass
class ToolContext:
    client: SlideClient
    config: SlideConfig


Handler = Callable[[ToolContext, Dict[str, Any]], str]


@dataclass
class ToolSpec:
    name: str
    description: str
    input_schema: Dict[str, Any]
    operations: Dict[str, Handler] = field(default_factory=dict)

    def has_operation(self, operation: Any) -> bool:
        return isinstance(operation, str) and operation in self.operations

    def call(self, ctx: ToolContext, args: Dict[str, Any]) -> str:
        operation = args.get("operation")
        if not isinstance(operation, str) or not operation:
            raise ToolError("operation parameter is required")
        handler = self.operations.get(operation)
        if handler is None:
            raise ToolError(f"unknown operation: {operation}")
        logger.debug("Dispatching %s.%s", self.name, operation)
        return handler(ctx, args)

    def catalog_entry(self, description: Optional[str] = None) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": description if description is not None else self.description,
            "inputSchema": self.input_schema,
        }


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def require_str(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError(f"{key} is required")
    return value


def optional_str(args: Mapping[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    return value if isinstance(value, str) else None


def optional_bool(args: Mapping[str, Any], key: str) -> Optional[bool]:
    value = args.get(key)
    return value if isinstance(value, bool) else None


def require_bool(args: Mapping[str, Any], key: str) -> bool:
    value = args.get(key)
    if not isinstance(value, bool):
        raise ToolError(f"{key} is required")
    return value


def optional_int(args: Mapping[str, Any], key: str) -> Optional[int]:
    """JSON numbers arrive as int or float; bools are not numbers here."""
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def string_list(args: Mapping[str, Any], key: str, *, required: bool = False) -> Optional[List[str]]:
    value = args.get(key)
    if value is None:
        if required:
            raise ToolError(f"{key} is required")
        return None
    if not isinstance(value, list):
        if required:
            raise ToolError(f"{key} is required")
        return None
    if not all(isinstance(item, str) for item in value):
        raise ToolError(f"{key} must be an array of strings")
    return list(value)


def copy_present(args: Mapping[str, Any], keys: Iterable[str], into: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Copy the keys the caller actually supplied into a request body."""
    body = {} if into is None else into
    for key in keys:
        if key in args:
            body[key] = args[key]
    return body


def list_params(
    args: Mapping[str, Any],
    *,
    filters: Sequence[str] = (),
    bool_filters: Sequence[str] = (),
    default_sort_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Translate the shared list contract into query parameters.

    Values of the wrong JSON type are ignored. ``limit`` and ``offset`` pass
    through unchanged; the API enforces its own bounds.
    """
    params: Dict[str, Any] = {}
    for key in ("limit", "offset"):
        number = optional_int(args, key)
        if number is not None:
            params[key] = number
    for key in filters:
        text = optional_str(args, key)
        if text is not None:
            params[key] = text
    for key in bool_filters:
        flag = optional_bool(args, key)
        if flag is not None:
            params[key] = flag
    sort_asc = optional_bool(args, "sort_asc")
    if sort_asc is not None:
        params["sort_asc"] = sort_asc
    if "sort_by" in args:
        sort_by = optional_str(args, "sort_by")
        if sort_by is not None:
            params["sort_by"] = sort_by
    elif default_sort_by:
        params["sort_by"] = default_sort_by
    return params


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2)


def enrich_list(payload: Any, metadata: Dict[str, Any], data: Optional[List[Any]] = None) -> Dict[str, Any]:
    """Wrap a list envelope as ``{pagination, data, _metadata}``."""
    envelope = payload if isinstance(payload, dict) else {}
    items = data if data is not None else envelope.get("data")
    return {
        "pagination": envelope.get("pagination", {}),
        "data": items if isinstance(items, list) else [],
        "_metadata": metadata,
    }


def as_object(payload: Any) -> Dict[str, Any]:
    return dict(payload) if isinstance(payload, dict) else {}


# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------

def prop(kind: str, description: str, **extra: Any) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": kind, "description": description}
    schema.update(extra)
    return schema


def list_properties(sort_fields: Sequence[str], *, scope: str = "'list' operation") -> Dict[str, Any]:
    return {
        "limit": prop("number", f"Number of results per page (max 50) - used with {scope}"),
        "offset": prop("number", f"Pagination offset - used with {scope}"),
        "sort_asc": prop("boolean", f"Sort in ascending order - used with {scope}"),
        "sort_by": prop("string", f"Sort by field - used with {scope}", enum=list(sort_fields)),
    }


def operation_schema(
    operations: Sequence[str],
    properties: Dict[str, Any],
    requirements: Optional[Mapping[str, Sequence[str]]] = None,
) -> Dict[str, Any]:
    """Build the object schema with the ``operation`` discriminator and per-operation requirements."""
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "operation": prop("string", "The operation to perform", enum=list(operations)),
            **properties,
        },
        "required": ["operation"],
    }
    clauses = [
        {
            "if": {"properties": {"operation": {"const": name}}},
            "then": {"required": list(required)},
        }
        for name, required in (requirements or {}).items()
        if name in operations
    ]
    if clauses:
        schema["allOf"] = clauses
    return schema
