"""slide_agents: backup software installed on protected computers."""

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

AGENT_METADATA = {
    "primary_identifier": "display_name",
    "presentation_guidance": (
        "When referring to agents, use the display name as the primary identifier. "
        "If display name is blank, use hostname instead. Agent IDs are internal identifiers not commonly used by humans."
    ),
    "workflow_guidance": (
        "Agents are backup software installed on computers. They connect to devices (Slide appliances) to store backups."
    ),
}


def list_agents(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, filters=("device_id", "client_id"))
    payload = ctx.client.get("/v1/agent", params)
    return to_json(enrich_list(payload, AGENT_METADATA))


def get_agent(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    return to_json(ctx.client.get(f"/v1/agent/{agent_id}"))


def create_agent(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body = {
        "display_name": require_str(args, "display_name"),
        "device_id": require_str(args, "device_id"),
    }
    return to_json(ctx.client.post("/v1/agent", body))


def pair_agent(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body = {
        "pair_code": require_str(args, "pair_code"),
        "device_id": require_str(args, "device_id"),
    }
    return to_json(ctx.client.post("/v1/agent/pair", body))


def update_agent(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    body = copy_present(args, ("display_name", "vss_writer_configs", "sealed"))
    return to_json(ctx.client.patch(f"/v1/agent/{agent_id}", body))


def add_passphrase(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    body = {
        "name": require_str(args, "passphrase_name"),
        "passphrase": require_str(args, "passphrase"),
    }
    return to_json(ctx.client.post(f"/v1/agent/{agent_id}/passphrase", body))


def delete_passphrase(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    passphrase_id = require_str(args, "agent_passphrase_id")
    body = {"passphrase": require_str(args, "passphrase")}
    ctx.client.delete(f"/v1/agent/{agent_id}/passphrase/{passphrase_id}", body)
    return "Agent passphrase deleted successfully"


def delete_agent(ctx: ToolContext, args: Dict[str, Any]) -> str:
    agent_id = require_str(args, "agent_id")
    ctx.client.delete(f"/v1/agent/{agent_id}")
    return "Agent deleted successfully"


OPERATIONS = {
    "list": list_agents,
    "get": get_agent,
    "create": create_agent,
    "pair": pair_agent,
    "update": update_agent,
    "add_passphrase": add_passphrase,
    "delete_passphrase": delete_passphrase,
    "delete": delete_agent,
}

SCHEMA = operation_schema(
    list(OPERATIONS),
    {
        **list_properties(["id", "hostname", "name"]),
        "device_id": prop(
            "string",
            "Filter by device ID - used with 'list' operation, or required for 'create' and 'pair' operations",
        ),
        "client_id": prop("string", "Filter by client ID - used with 'list' operation"),
        "agent_id": prop("string", "ID of the agent - required for 'get', 'update', 'delete' and passphrase operations"),
        "display_name": prop("string", "Display name for the agent - required for 'create', optional for 'update'"),
        "pair_code": prop("string", "Pair code generated during agent creation - required for 'pair' operation"),
        "passphrase_name": prop("string", "Friendly name for the passphrase - required for 'add_passphrase' operation"),
        "passphrase": prop(
            "string",
            "The passphrase to add - required for 'add_passphrase', or the current passphrase for 'delete_passphrase'",
        ),
        "agent_passphrase_id": prop("string", "ID of the passphrase to delete - required for 'delete_passphrase' operation"),
        "vss_writer_configs": {
            "type": "array",
            "description": "VSS writer configurations - used with 'update' operation",
            "items": {
                "type": "object",
                "properties": {
                    "writer_id": {"type": "string"},
                    "excluded": {"type": "boolean"},
                },
                "required": ["writer_id", "excluded"],
            },
        },
        "sealed": prop(
            "boolean",
            "Set to false to unseal an agent with a user-managed passphrase - used with 'update' operation",
        ),
    },
    {
        "get": ["agent_id"],
        "create": ["display_name", "device_id"],
        "pair": ["pair_code", "device_id"],
        "update": ["agent_id"],
        "add_passphrase": ["agent_id", "passphrase_name", "passphrase"],
        "delete_passphrase": ["agent_id", "agent_passphrase_id", "passphrase"],
        "delete": ["agent_id"],
    },
)

TOOL = ToolSpec(
    name="slide_agents",
    description=(
        "Manage agents - software installed on computers that get backed up to Slide devices. "
        "Supports list, get, create, pair, update, add_passphrase, delete_passphrase and delete operations. "
        "Includes support for VSS writer configuration and passphrase management."
    ),
    input_schema=SCHEMA,
    operations=OPERATIONS,
)
