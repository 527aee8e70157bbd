"""slide_networks: disaster-recovery networks and their IPsec, port-forward and WireGuard sub-resources."""

from __future__ import annotations

from typing import Any, Dict, Optional

from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.tools.base import (
    ToolContext,
    ToolSpec,
    as_object,
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
from slide_mcp.tools.enrichment import attach_wireguard_configs, wireguard_config


NETWORK_FIELDS = (
    "bridge_device_id",
    "client_id",
    "comments",
    "dhcp",
    "dhcp_range_start",
    "dhcp_range_end",
    "internet",
    "nameservers",
)

NETWORK_LIST_METADATA = {
    "primary_identifier": "name",
    "presentation_guidance": "Networks enable disaster recovery and isolated networking for virtual machines.",
    "workflow_guidance": (
        "Networks can be standard (isolated) or bridge-lan (connected to device LAN). "
        "Virtual machines can be connected to networks."
    ),
    "wireguard_guidance": (
        "Networks with WireGuard enabled will have WG peers that include ready-to-use configuration files in the "
        "_wireguard_config field."
    ),
    "creation_guidance": (
        "When creating new networks, ask users for clarification about configuration details rather than guessing. "
        "Key areas that often need clarification: network type (standard vs bridge-lan), bridge device selection, "
        "IP address ranges, DHCP configuration, internet access requirements, and WireGuard VPN needs."
    ),
    "clarification_guidance": (
        "IMPORTANT: Network configuration errors can cause serious connectivity issues. Always ask users to specify "
        "their requirements clearly before creating networks."
    ),
    "client_id_matching": (
        "CRITICAL: When working with networks, agents and VMs assigned to the network MUST be part of the same "
        "client as the network. A network with client_id '' (empty string) can only be used with VMs that also "
        "have client_id ''."
    ),
}

WG_PEER_METADATA = {
    "primary_identifier": "wg_peer_id",
    "config_file_guidance": (
        "Use the _wireguard_config field to get a ready-to-use WireGuard configuration file. Save this as a .conf "
        "file and import it into your WireGuard client."
    ),
    "usage_instructions": (
        "1. Save the _wireguard_config as a .conf file, 2. Import into WireGuard client, "
        "3. Connect to access the specified remote networks."
    ),
}


def _check_router_prefix(value: Any, *, creating: bool) -> None:
    if not isinstance(value, str) or value == "":
        return
    if "/" not in value:
        if creating:
            raise ToolError(
                "router_prefix is expecting CIDR notation for the routers IP address (e.g., '192.168.1.1/24')"
            )
        raise ToolError("router_prefix must include subnet mask (e.g., '192.168.1.1/24')")
    parts = value.split("/")
    if len(parts) == 2 and parts[0].endswith(".0"):
        raise ToolError(
            "router_prefix cannot be the network address (e.g., use '192.168.1.1/24' not '192.168.1.0/24')"
        )


def _check_wg_prefix(value: Any, *, creating: bool) -> None:
    if not isinstance(value, str) or value == "" or "/" in value:
        return
    if creating:
        raise ToolError("wg_prefix is expecting CIDR notation for the WireGuard IP address (e.g., '10.0.0.1/24')")
    raise ToolError("wg_prefix must include subnet mask (e.g., '10.0.0.1/24')")


def _network_body(args: Dict[str, Any], *, creating: bool) -> Dict[str, Any]:
    body = copy_present(args, NETWORK_FIELDS)
    if "router_prefix" in args:
        _check_router_prefix(args["router_prefix"], creating=creating)
        body["router_prefix"] = args["router_prefix"]
    if "wg" in args:
        body["wg"] = args["wg"]
    if "wg_prefix" in args:
        _check_wg_prefix(args["wg_prefix"], creating=creating)
        body["wg_prefix"] = args["wg_prefix"]
    return body


def _network_result(payload: Any, metadata: Dict[str, Any]) -> Dict[str, Any]:
    network = attach_wireguard_configs(as_object(payload))
    network["_metadata"] = metadata
    return network


# Networks


def list_networks(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="id")
    envelope = enrich_list(ctx.client.get("/v1/network", params), NETWORK_LIST_METADATA)
    envelope["data"] = [
        attach_wireguard_configs(dict(item)) if isinstance(item, dict) else item for item in envelope["data"]
    ]
    return to_json(envelope)


def get_network(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    metadata = {
        "primary_identifier": "network_id",
        "presentation_guidance": "Network configuration with associated services and peers.",
        "wireguard_guidance": (
            "If this network has WireGuard enabled, WG peers will include ready-to-use configuration files in the "
            "_wireguard_config field."
        ),
    }
    return to_json(_network_result(ctx.client.get(f"/v1/network/{network_id}"), metadata))


def create_network(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body = {"name": require_str(args, "name"), "type": require_str(args, "type")}
    body.update(_network_body(args, creating=True))
    payload = as_object(ctx.client.post("/v1/network", body))
    network_id = payload.get("network_id", "")
    metadata = {
        "primary_identifier": "network_id",
        "presentation_guidance": (
            "Network created successfully. You can now connect virtual machines to this network or configure "
            "additional services."
        ),
        "next_steps": (
            "You can now create virtual machines using this network_id with network_type: 'network-id' and "
            f"network_source: '{network_id}'"
        ),
        "router_prefix_guidance": (
            "The router_prefix is the IP address of the router that will be used to connect to the network. It "
            "should NOT be the same as the network address (the first IP in the subnet). For example, use "
            "'192.168.1.1/24' not '192.168.1.0/24'."
        ),
        "wireguard_guidance": (
            "If WireGuard is enabled, you can create WG peers to allow VPN access to this network using the "
            "'create_wg_peer' operation."
        ),
        "client_id_constraint": (
            f"CRITICAL: This network can only be used with VMs and agents that have the same client_id. If this "
            f"network has client_id '{payload.get('client_id') or ''}', then any VMs using network_type: "
            "'network-id' with this network MUST also have the same client_id."
        ),
    }
    return to_json(_network_result(payload, metadata))


def update_network(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    body = _network_body(args, creating=False)
    if "name" in args:
        body["name"] = args["name"]
    metadata = {
        "primary_identifier": "network_id",
        "presentation_guidance": "Network updated successfully.",
        "wireguard_guidance": (
            "If WireGuard is enabled, existing WG peers will include ready-to-use configuration files in the "
            "_wireguard_config field."
        ),
    }
    return to_json(_network_result(ctx.client.patch(f"/v1/network/{network_id}", body), metadata))


def delete_network(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    ctx.client.delete(f"/v1/network/{network_id}")
    return "Network deleted successfully"


# IPsec connections


def create_ipsec(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    body = {
        "name": require_str(args, "name"),
        "remote_addrs": string_list(args, "remote_addrs", required=True),
        "remote_networks": string_list(args, "remote_networks", required=True),
    }
    return to_json(ctx.client.post(f"/v1/network/{network_id}/ipsec", body))


def update_ipsec(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    ipsec_id = require_str(args, "ipsec_id")
    body = copy_present(args, ("name",))
    for key in ("remote_addrs", "remote_networks"):
        values = string_list(args, key)
        if values is not None:
            body[key] = values
    return to_json(ctx.client.patch(f"/v1/network/{network_id}/ipsec/{ipsec_id}", body))


def delete_ipsec(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    ipsec_id = require_str(args, "ipsec_id")
    ctx.client.delete(f"/v1/network/{network_id}/ipsec/{ipsec_id}")
    return "Network IPsec connection deleted successfully"


# Port forwards


def create_port_forward(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    body = {"proto": require_str(args, "proto"), "dest": require_str(args, "dest")}
    return to_json(ctx.client.post(f"/v1/network/{network_id}/port-forward", body))


def update_port_forward(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    forward_id = require_str(args, "port_forward_id")
    body = copy_present(args, ("proto", "dest"))
    return to_json(ctx.client.patch(f"/v1/network/{network_id}/port-forward/{forward_id}", body))


def delete_port_forward(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    forward_id = require_str(args, "port_forward_id")
    ctx.client.delete(f"/v1/network/{network_id}/port-forward/{forward_id}")
    return "Network port forward deleted successfully"


# WireGuard peers


def _peer_result(ctx: ToolContext, network_id: str, payload: Any, presentation: str) -> Dict[str, Any]:
    peer = as_object(payload)
    try:
        network = as_object(ctx.client.get(f"/v1/network/{network_id}"))
    except SlideError as exc:
        raise SlideError(f"failed to get network details: {exc}") from exc
    peer["_metadata"] = {**WG_PEER_METADATA, "presentation_guidance": presentation}
    peer["_wireguard_config"] = wireguard_config(
        peer, network.get("wg_public_key") or "", _optional_prefix(network)
    )
    return peer


def _optional_prefix(network: Dict[str, Any]) -> Optional[str]:
    prefix = network.get("wg_prefix")
    return prefix if isinstance(prefix, str) else None


def create_wg_peer(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    body: Dict[str, Any] = {"peer_name": require_str(args, "peer_name")}
    remote = string_list(args, "remote_networks")
    if remote is not None:
        body["remote_networks"] = remote
    payload = ctx.client.post(f"/v1/network/{network_id}/wg-peer", body)
    return to_json(
        _peer_result(ctx, network_id, payload, "WireGuard peer configuration for VPN access to the network.")
    )


def update_wg_peer(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    peer_id = require_str(args, "wg_peer_id")
    body = copy_present(args, ("peer_name",))
    remote = string_list(args, "remote_networks")
    if remote is not None:
        body["remote_networks"] = remote
    payload = ctx.client.patch(f"/v1/network/{network_id}/wg-peer/{peer_id}", body)
    return to_json(
        _peer_result(
            ctx, network_id, payload, "Updated WireGuard peer configuration for VPN access to the network."
        )
    )


def delete_wg_peer(ctx: ToolContext, args: Dict[str, Any]) -> str:
    network_id = require_str(args, "network_id")
    peer_id = require_str(args, "wg_peer_id")
    ctx.client.delete(f"/v1/network/{network_id}/wg-peer/{peer_id}")
    return "Network WireGuard peer deleted successfully"


OPERATIONS = {
    "list": list_networks,
    "get": get_network,
    "create": create_network,
    "update": update_network,
    "delete": delete_network,
    "create_ipsec": create_ipsec,
    "update_ipsec": update_ipsec,
    "delete_ipsec": delete_ipsec,
    "create_port_forward": create_port_forward,
    "update_port_forward": update_port_forward,
    "delete_port_forward": delete_port_forward,
    "create_wg_peer": create_wg_peer,
    "update_wg_peer": update_wg_peer,
    "delete_wg_peer": delete_wg_peer,
}

_STRINGS = {"type": "array", "items": {"type": "string"}}

TOOL = ToolSpec(
    name="slide_networks",
    description=(
        "Manage networks and their configurations including IPSec connections, port forwards, and WireGuard peers. "
        "Networks enable virtual machines to communicate with each other and external networks."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["id"]),
            "network_id": prop("string", "ID of the network - required for every operation except 'list' and 'create'"),
            "name": prop("string", "Name of the network or IPsec connection"),
            "type": prop("string", "Network type - required for 'create' operation", enum=["standard", "bridge-lan"]),
            "bridge_device_id": prop("string", "Device providing the LAN bridge - used with 'bridge-lan' networks"),
            "client_id": prop("string", "Client that owns the network"),
            "comments": prop("string", "Free-form comments"),
            "dhcp": prop("boolean", "Enable DHCP on the network"),
            "dhcp_range_start": prop("string", "First address handed out by DHCP"),
            "dhcp_range_end": prop("string", "Last address handed out by DHCP"),
            "internet": prop("boolean", "Allow internet access from the network"),
            "nameservers": {**_STRINGS, "description": "DNS servers for the network"},
            "router_prefix": prop("string", "Router IP address in CIDR notation, e.g. '192.168.1.1/24'"),
            "wg": prop("boolean", "Enable WireGuard VPN access"),
            "wg_prefix": prop("string", "WireGuard address range in CIDR notation, e.g. '10.0.0.1/24'"),
            "ipsec_id": prop("string", "ID of the IPsec connection - required for 'update_ipsec' and 'delete_ipsec'"),
            "remote_addrs": {**_STRINGS, "description": "Remote gateway addresses - required for 'create_ipsec'"},
            "remote_networks": {
                **_STRINGS,
                "description": "Remote networks - required for 'create_ipsec', optional for WireGuard peers",
            },
            "port_forward_id": prop(
                "string", "ID of the port forward - required for 'update_port_forward' and 'delete_port_forward'"
            ),
            "proto": prop("string", "Protocol - required for 'create_port_forward'", enum=["tcp", "udp"]),
            "dest": prop("string", "Destination address:port - required for 'create_port_forward'"),
            "wg_peer_id": prop(
                "string", "ID of the WireGuard peer - required for 'update_wg_peer' and 'delete_wg_peer'"
            ),
            "peer_name": prop("string", "Name of the WireGuard peer - required for 'create_wg_peer'"),
        },
        {
            "get": ["network_id"],
            "create": ["name", "type"],
            "update": ["network_id"],
            "delete": ["network_id"],
            "create_ipsec": ["network_id", "name", "remote_addrs", "remote_networks"],
            "update_ipsec": ["network_id", "ipsec_id"],
            "delete_ipsec": ["network_id", "ipsec_id"],
            "create_port_forward": ["network_id", "proto", "dest"],
            "update_port_forward": ["network_id", "port_forward_id"],
            "delete_port_forward": ["network_id", "port_forward_id"],
            "create_wg_peer": ["network_id", "peer_name"],
            "update_wg_peer": ["network_id", "wg_peer_id"],
            "delete_wg_peer": ["network_id", "wg_peer_id"],
        },
    ),
    operations=OPERATIONS,
)
