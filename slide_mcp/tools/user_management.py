"""slide_user_management: users, billing accounts and MSP clients."""

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
    string_list,
    to_json,
)

USER_METADATA = {
    "primary_identifier": "display_name",
    "presentation_guidance": "Users with access to the Slide system. Check role_id for permissions level.",
    "workflow_guidance": (
        "Users can be account owners, admins, technicians, or read-only. Email is used for notifications."
    ),
}

ACCOUNT_METADATA = {
    "primary_identifier": "account_name",
    "presentation_guidance": (
        "Billing accounts that contain devices and users. Each account has contact info and alert settings."
    ),
    "workflow_guidance": "Accounts are the top-level organization unit. Devices and users belong to accounts.",
}

CLIENT_METADATA = {
    "primary_identifier": "name",
    "presentation_guidance": "Clients represent end customers or organizational units within an MSP environment.",
    "workflow_guidance": (
        "Clients group devices and agents for easier management. Useful for MSPs managing multiple customers."
    ),
}


def list_users(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="id")
    return to_json(enrich_list(ctx.client.get("/v1/user", params), USER_METADATA))


def get_user(ctx: ToolContext, args: Dict[str, Any]) -> str:
    user_id = require_str(args, "user_id")
    return to_json(ctx.client.get(f"/v1/user/{user_id}"))


def list_accounts(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="name")
    return to_json(enrich_list(ctx.client.get("/v1/account", params), ACCOUNT_METADATA))


def get_account(ctx: ToolContext, args: Dict[str, Any]) -> str:
    account_id = require_str(args, "account_id")
    return to_json(ctx.client.get(f"/v1/account/{account_id}"))


def update_account(ctx: ToolContext, args: Dict[str, Any]) -> str:
    account_id = require_str(args, "account_id")
    emails = string_list(args, "alert_emails", required=True)
    return to_json(ctx.client.patch(f"/v1/account/{account_id}", {"alert_emails": emails}))


def list_clients(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="id")
    return to_json(enrich_list(ctx.client.get("/v1/client", params), CLIENT_METADATA))


def get_client(ctx: ToolContext, args: Dict[str, Any]) -> str:
    client_id = require_str(args, "client_id")
    return to_json(ctx.client.get(f"/v1/client/{client_id}"))


def create_client(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body = {"name": require_str(args, "name")}
    copy_present(args, ("comments",), into=body)
    return to_json(ctx.client.post("/v1/client", body))


def update_client(ctx: ToolContext, args: Dict[str, Any]) -> str:
    client_id = require_str(args, "client_id")
    body = copy_present(args, ("name", "comments"))
    return to_json(ctx.client.patch(f"/v1/client/{client_id}", body))


def delete_client(ctx: ToolContext, args: Dict[str, Any]) -> str:
    client_id = require_str(args, "client_id")
    ctx.client.delete(f"/v1/client/{client_id}")
    return "Client deleted successfully"


OPERATIONS = {
    "list_users": list_users,
    "get_user": get_user,
    "list_accounts": list_accounts,
    "get_account": get_account,
    "update_account": update_account,
    "list_clients": list_clients,
    "get_client": get_client,
    "create_client": create_client,
    "update_client": update_client,
    "delete_client": delete_client,
}

TOOL = ToolSpec(
    name="slide_user_management",
    description=(
        "Manage users, accounts and clients - the people and organizational structures that own devices and "
        "services. Supports list/get for users, list/get/update for accounts and full management of clients."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["id", "name"], scope="list operations"),
            "user_id": prop("string", "ID of the user - required for 'get_user' operation"),
            "account_id": prop("string", "ID of the account - required for 'get_account' and 'update_account'"),
            "alert_emails": {
                "type": "array",
                "description": "Email addresses that receive alerts - required for 'update_account'",
                "items": {"type": "string"},
            },
            "client_id": prop(
                "string", "ID of the client - required for 'get_client', 'update_client' and 'delete_client'"
            ),
            "name": prop("string", "Client name - required for 'create_client', optional for 'update_client'"),
            "comments": prop("string", "Client comments - used with 'create_client' and 'update_client'"),
        },
        {
            "get_user": ["user_id"],
            "get_account": ["account_id"],
            "update_account": ["account_id", "alert_emails"],
            "get_client": ["client_id"],
            "create_client": ["name"],
            "update_client": ["client_id"],
            "delete_client": ["client_id"],
        },
    ),
    operations=OPERATIONS,
)
