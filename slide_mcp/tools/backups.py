"""slide_backups: backup jobs and their outcome."""

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
    require_str,
    to_json,
)

BACKUP_METADATA = {
    "primary_identifier": "backup_id",
    "presentation_guidance": (
        "Backups represent backup jobs. Status indicates success/failure. If successful, snapshot_id will be present."
    ),
    "workflow_guidance": "Backups create snapshots when successful. Failed backups will have error_code and error_message.",
}


def list_backups(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, filters=("agent_id", "device_id", "snapshot_id"), default_sort_by="start_time")
    return to_json(enrich_list(ctx.client.get("/v1/backup", params), BACKUP_METADATA))


def get_backup(ctx: ToolContext, args: Dict[str, Any]) -> str:
    backup_id = require_str(args, "backup_id")
    return to_json(ctx.client.get(f"/v1/backup/{backup_id}"))


def start_backup(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    return to_json(ctx.client.post("/v1/backup", {"agent_id": agent_id}))


OPERATIONS = {
    "list": list_backups,
    "get": get_backup,
    "start": start_backup,
}

TOOL = ToolSpec(
    name="slide_backups",
    description=(
        "Manage backup operations - view backup status and start new backups. Supports list, get, and start operations."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["id", "start_time"]),
            "agent_id": prop(
                "string", "Filter by agent ID - used with 'list' operation, or required for 'start' operation"
            ),
            "device_id": prop("string", "Filter by device ID - used with 'list' operation"),
            "snapshot_id": prop("string", "Filter by snapshot ID - used with 'list' operation"),
            "backup_id": prop("string", "ID of the backup - required for 'get' operation"),
        },
        {"get": ["backup_id"], "start": ["agent_id"]},
    ),
    operations=OPERATIONS,
)
