"""slide_devices: Slide appliances that store backups."""

from __future__ import annotations

from typing import Any, Dict

from slide_mcp.tools.base import (
    ToolContext,
    ToolSpec,
    copy_present,
    enrich_list,
    list_params,
    list_properties,
    operation_schema,
    prop,
    require_str,
    to_json,
)

DEVICE_METADATA = {
    "primary_identifier": "hostname",
    "presentation_guidance": (
        "When referring to devices, use the hostname as the primary identifier. "
        "Device IDs are internal identifiers not commonly used by humans."
    ),
    "workflow_guidance": (
        "Devices are the physical machines running the Slide appliance. "
        "Agents are the backup software installed on computers that get backed up to these devices."
    ),
}


def list_devices(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, filters=("client_id",), default_sort_by="hostname")
    return to_json(enrich_list(ctx.client.get("/v1/device", params), DEVICE_METADATA))


def get_device(ctx: ToolContext, args: Dict[str, Any]) -> str:
    device_id = require_str(args, "device_id")
    return to_json(ctx.client.get(f"/v1/device/{device_id}"))


def update_device(ctx: ToolContext, args: Dict[str, Any]) -> str:
    device_id = require_str(args, "device_id")
    body = copy_present(args, ("display_name", "hostname", "client_id"))
    return to_json(ctx.client.patch(f"/v1/device/{device_id}", body))


def _shutdown(action: str):
    def handler(ctx: ToolContext, args: Dict[str, Any]) -> str:
        device_id = require_str(args, "device_id")
        return to_json(ctx.client.post(f"/v1/device/{device_id}/shutdown/{action}"))

    handler.__name__ = f"{action}_device"
    return handler


OPERATIONS = {
    "list": list_devices,
    "get": get_device,
    "update": update_device,
    "poweroff": _shutdown("poweroff"),
    "reboot": _shutdown("reboot"),
}

TOOL = ToolSpec(
    name="slide_devices",
    description=(
        "Manage physical devices (Slide appliances). Devices are the physical hardware that run the Slide backup "
        "software and store backups."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["hostname", "created"]),
            "client_id": prop("string", "Filter by client ID - used with 'list', or reassigns the device on 'update'"),
            "device_id": prop("string", "ID of the device - required for 'get', 'update', 'poweroff' and 'reboot'"),
            "display_name": prop("string", "Display name for the device - used with 'update' operation"),
            "hostname": prop("string", "Hostname for the device - used with 'update' operation"),
        },
        {
            "get": ["device_id"],
            "update": ["device_id"],
            "poweroff": ["device_id"],
            "reboot": ["device_id"],
        },
    ),
    operations=OPERATIONS,
)
