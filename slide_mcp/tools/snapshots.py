"""slide_snapshots: point-in-time backup data usable for restores and VMs."""

from __future__ import annotations

from typing import Any, Dict

from slide_mcp.tools.base import (
    ToolContext,
    ToolSpec,
    as_object,
    enrich_list,
    list_params,
    list_properties,
    operation_schema,
    prop,
    require_str,
    to_json,
)

SNAPSHOT_LOCATIONS = [
    "exists_local",
    "exists_cloud",
    "exists_deleted",
    "exists_deleted_retention",
    "exists_deleted_manual",
    "exists_deleted_other",
]

SNAPSHOT_LIST_METADATA = {
    "primary_identifier": "snapshot_id",
    "presentation_guidance": (
        "Snapshots are point-in-time backups that can be used for restores. Check locations to see where stored."
    ),
    "workflow_guidance": (
        "Snapshots can be restored as files, images, or virtual machines. "
        "Verify status shows boot/filesystem verification results."
    ),
    "location_guidance": (
        "Each snapshot has a locations array showing where it's stored. If a location's device_id matches the "
        "agent's device_id, it's stored locally on that device. If the device_id is different, it's likely stored "
        "in the cloud. This is important for choosing where to deploy virtual machines."
    ),
    "virtualization_device_selection": (
        "When creating virtual machines from this snapshot, you can choose any device_id from the locations array. "
        "If you use the agent's original device_id, the VM will run locally on that device. If you use a different "
        "device_id from locations (cloud device), the VM will run in the cloud. Always inform the user whether "
        "their VM will be local or cloud-based."
    ),
}

SNAPSHOT_DETAIL_METADATA = {
    "primary_identifier": "snapshot_id",
    "presentation_guidance": "This snapshot can be restored as files, images, or virtual machines.",
    "location_guidance": (
        "The locations array shows where this snapshot is stored. If a location's device_id matches the agent_id's "
        "device, it's stored locally. If different, it's likely in the cloud."
    ),
    "virtualization_device_selection": (
        "When creating VMs from this snapshot, choose device_id from locations. Agent's original device = local VM, "
        "different device = cloud VM. Always tell the user if their VM will be local or cloud-based."
    ),
    "restore_options": (
        "This snapshot can be used for file restores, image exports, or virtual machine creation depending on "
        "your recovery needs."
    ),
}


def list_snapshots(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, filters=("agent_id", "snapshot_location"), default_sort_by="created")
    return to_json(enrich_list(ctx.client.get("/v1/snapshot", params), SNAPSHOT_LIST_METADATA))


def get_snapshot(ctx: ToolContext, args: Dict[str, Any]) -> str:
    snapshot_id = require_str(args, "snapshot_id")
    snapshot = as_object(ctx.client.get(f"/v1/snapshot/{snapshot_id}"))
    snapshot["_metadata"] = dict(SNAPSHOT_DETAIL_METADATA)
    return to_json(snapshot)


def delete_snapshot(ctx: ToolContext, args: Dict[str, Any]) -> str:
    snapshot_id = require_str(args, "snapshot_id")
    ctx.client.delete(f"/v1/snapshot/{snapshot_id}")
    return "Snapshot deleted successfully"


OPERATIONS = {
    "list": list_snapshots,
    "get": get_snapshot,
    "delete": delete_snapshot,
}

TOOL = ToolSpec(
    name="slide_snapshots",
    description=(
        "Manage snapshots - completed backup data that can be used for restores and virtual machines. "
        "Supports list, get and delete operations."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["backup_start_time", "backup_end_time", "created"]),
            "agent_id": prop("string", "Filter by agent ID - used with 'list' operation"),
            "snapshot_location": prop(
                "string", "Filter by snapshot location - used with 'list' operation", enum=SNAPSHOT_LOCATIONS
            ),
            "snapshot_id": prop("string", "ID of the snapshot - required for 'get' and 'delete' operations"),
        },
        {"get": ["snapshot_id"], "delete": ["snapshot_id"]},
    ),
    operations=OPERATIONS,
)
