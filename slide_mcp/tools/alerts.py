"""slide_alerts: system alerts raised for devices and agents."""

from __future__ import annotations

from typing import Any, Dict

from slide_mcp.tools.base import (
    ToolContext,
    ToolSpec,
    enrich_list,
    list_params,
    list_properties,
    operation_schema,
    prop,
    require_bool,
    require_str,
    to_json,
)

ALERT_METADATA = {
    "primary_identifier": "alert_id",
    "presentation_guidance": "System alerts for devices not checking in, failed backups, storage issues, etc.",
    "workflow_guidance": (
        "Alerts can be resolved manually. Check alert_type for the specific issue and alert_fields for details."
    ),
}


def list_alerts(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(
        args,
        filters=("device_id", "agent_id"),
        bool_filters=("resolved",),
        default_sort_by="created",
    )
    return to_json(enrich_list(ctx.client.get("/v1/alert", params), ALERT_METADATA))


def get_alert(ctx: ToolContext, args: Dict[str, Any]) -> str:
    alert_id = require_str(args, "alert_id")
    return to_json(ctx.client.get(f"/v1/alert/{alert_id}"))


def update_alert(ctx: ToolContext, args: Dict[str, Any]) -> str:
    alert_id = require_str(args, "alert_id")
    resolved = require_bool(args, "resolved")
    return to_json(ctx.client.patch(f"/v1/alert/{alert_id}", {"resolved": resolved}))


OPERATIONS = {
    "list": list_alerts,
    "get": get_alert,
    "update": update_alert,
}

TOOL = ToolSpec(
    name="slide_alerts",
    description="Manage system alerts and notifications. Supports list, get, and update (resolve/unresolve) operations.",
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["created"]),
            "device_id": prop("string", "Filter by device ID - used with 'list' operation"),
            "agent_id": prop("string", "Filter by agent ID - used with 'list' operation"),
            "resolved": prop(
                "boolean", "Filter by resolved status - used with 'list' operation, or required for 'update' operation"
            ),
            "alert_id": prop("string", "ID of the alert - required for 'get' and 'update' operations"),
        },
        {"get": ["alert_id"], "update": ["alert_id", "resolved"]},
    ),
    operations=OPERATIONS,
)
