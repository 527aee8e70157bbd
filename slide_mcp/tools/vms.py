"""slide_vms: virtual machines booted from snapshots."""

from __future__ import annotations

from typing import Any, Dict

from slide_mcp.api.errors import ToolError
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
from slide_mcp.tools.enrichment import rdp_bookmark, vm_viewer_url

NETWORK_TYPES = ["network-nat-shared", "network-nat-isolated", "bridge", "network-id"]

PRESENTATION = (
    "When referring to the virtual machine, use the virt_id as the primary identifier. "
    "Virtual machine IDs are internal identifiers not commonly used by humans."
)
CONSOLE_ACCESS = (
    "The easiest way to access this virtual machine is through the _vnc_viewer_url property - this provides a "
    "direct browser link to the VM console that requires no additional software or configuration."
)
VNC_GUIDANCE = (
    "The _vnc_viewer_url is the easiest way to access this VM console - simply click the link to open the VM in "
    "your browser. No VNC client setup required."
)

VM_LIST_METADATA = {
    "primary_identifier": "virt_id",
    "presentation_guidance": "Virtual machines created from snapshots for testing or disaster recovery.",
    "workflow_guidance": (
        "VMs can be started/stopped and accessed via VNC. Great for testing backups before full restore."
    ),
    "vnc_guidance": (
        "The easiest way to access a virtual machine is through the _vnc_viewer_url property - this provides a "
        "direct browser link to the VM console that requires no additional software or configuration."
    ),
    "console_access": (
        "Always use the _vnc_viewer_url for immediate browser-based console access. This is much easier than "
        "configuring a separate VNC client."
    ),
    "network_configuration": (
        "When creating new VMs, always use network_type: 'network-nat-shared' for most use cases. "
        "This provides NAT networking with internet access."
    ),
    "network_type_reference": (
        "Valid network_type values: 'network-nat-shared' (recommended), 'network-nat-isolated', 'bridge', 'network-id'"
    ),
    "network_dependencies": (
        "IMPORTANT: If you need to create a VM with network_type: 'network-id', you MUST create the custom network "
        "first using slide_networks before creating the VM. Built-in network types do not require pre-existing "
        "networks."
    ),
    "deployment_awareness": (
        "Each VM's device_id indicates where it's running. When referencing VMs to users, be aware that some may be "
        "running locally on their devices while others may be running in the cloud, depending on which device_id "
        "was used during creation."
    ),
}

VM_DETAIL_METADATA = {
    "primary_identifier": "virt_id",
    "presentation_guidance": PRESENTATION,
    "console_access": CONSOLE_ACCESS,
    "deployment_location": (
        "The device_id field indicates where this VM is running. If this matches the original agent's device_id, "
        "it's running locally. If different, it's likely running in the cloud."
    ),
}

VM_CREATE_METADATA = {
    "primary_identifier": "virt_id",
    "presentation_guidance": PRESENTATION,
    "next_steps": (
        "Now that you've created a virtual machine, you can control it using the 'update' operation to change its "
        "state (running, stopped, paused) or update resources."
    ),
    "resource_guidance": (
        "For optimal performance, 8192MB of RAM is recommended for most VMs. You can adjust this as needed using "
        "the 'update' operation."
    ),
    "console_access": CONSOLE_ACCESS,
    "network_configuration": (
        "When creating VMs, easiest to use network_type: 'network-nat-shared' for most use cases. "
        "This provides NAT networking with internet access."
    ),
    "network_dependencies": (
        "IMPORTANT: If using network_type: 'network-id', you MUST create the custom network first. The "
        "network_source field should reference an existing network_id."
    ),
    "client_id_matching": (
        "CRITICAL: When using network_type: 'network-id', the VM's client_id MUST match the network's client_id. "
        "A network with client_id '' (empty string) can only be used with VMs that also have client_id ''."
    ),
    "deployment_location": (
        "IMPORTANT: Always inform the user whether this VM was deployed locally or in the cloud. Check if the "
        "device_id used matches the original agent's device (local) or is a different device from the snapshot "
        "locations (cloud)."
    ),
}


def _with_viewer(vm: Dict[str, Any], metadata: Dict[str, Any]) -> Dict[str, Any]:
    result = as_object(vm)
    result["_metadata"] = dict(metadata)
    url = vm_viewer_url(result)
    if url:
        result["_vnc_viewer_url"] = url
        result["_metadata"]["vnc_guidance"] = VNC_GUIDANCE
        result["_metadata"]["vnc_viewer_url"] = url
    return result


def list_vms(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="created")
    payload = ctx.client.get("/v1/restore/virt", params)
    envelope = enrich_list(payload, VM_LIST_METADATA)
    enriched = []
    for vm in envelope["data"]:
        if isinstance(vm, dict):
            vm = dict(vm)
            url = vm_viewer_url(vm)
            if url:
                vm["_vnc_viewer_url"] = url
        enriched.append(vm)
    envelope["data"] = enriched
    return to_json(envelope)


def get_vm(ctx: ToolContext, args: Dict[str, Any]) -> str:
    virt_id = require_str(args, "virt_id")
    return to_json(_with_viewer(ctx.client.get(f"/v1/restore/virt/{virt_id}"), VM_DETAIL_METADATA))


def create_vm(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body: Dict[str, Any] = {
        "snapshot_id": require_str(args, "snapshot_id"),
        "device_id": require_str(args, "device_id"),
    }
    copy_present(
        args,
        ("cpu_count", "memory_in_mb", "disk_bus", "network_model", "network_type", "network_source"),
        into=body,
    )
    boot_mods = string_list(args, "boot_mods")
    if boot_mods is not None:
        body["boot_mods"] = boot_mods
    return to_json(_with_viewer(ctx.client.post("/v1/restore/virt", body), VM_CREATE_METADATA))


def update_vm(ctx: ToolContext, args: Dict[str, Any]) -> str:
    virt_id = require_str(args, "virt_id")
    body = copy_present(args, ("state", "expires_at", "memory_in_mb", "cpu_count"))
    return to_json(_with_viewer(ctx.client.patch(f"/v1/restore/virt/{virt_id}", body), VM_DETAIL_METADATA))


def delete_vm(ctx: ToolContext, args: Dict[str, Any]) -> str:
    virt_id = require_str(args, "virt_id")
    ctx.client.delete(f"/v1/restore/virt/{virt_id}")
    return "Virtual machine deleted successfully"


def get_rdp_bookmark(ctx: ToolContext, args: Dict[str, Any]) -> str:
    virt_id = require_str(args, "virt_id")
    vm = as_object(ctx.client.get(f"/v1/restore/virt/{virt_id}"))
    host = None
    for entry in vm.get("vnc") or []:
        if isinstance(entry, dict) and entry.get("host"):
            host = entry["host"]
            break
    if not host:
        raise ToolError(f"virtual machine {virt_id} has no reachable host for RDP")
    return to_json(
        {
            "virt_id": virt_id,
            "filename": f"slide-vm-{virt_id}.rdp",
            "rdp_file": rdp_bookmark(host),
            "_metadata": {
                "primary_identifier": "virt_id",
                "presentation_guidance": (
                    "Save rdp_file under the suggested filename and open it with a Remote Desktop client."
                ),
                "usage_note": "The VM must be running and have Remote Desktop enabled inside the guest.",
            },
        }
    )


OPERATIONS = {
    "list": list_vms,
    "get": get_vm,
    "create": create_vm,
    "update": update_vm,
    "delete": delete_vm,
    "get_rdp_bookmark": get_rdp_bookmark,
}

TOOL = ToolSpec(
    name="slide_vms",
    description=(
        "Manage virtual machines created from snapshots. Virtual machines allow you to boot and interact with "
        "backed-up systems for testing, recovery, or migration purposes. Includes RDP bookmark generation for easy "
        "desktop access."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["created"]),
            "virt_id": prop(
                "string",
                "ID of the virtual machine - required for 'get', 'update', 'delete' and 'get_rdp_bookmark' operations",
            ),
            "snapshot_id": prop("string", "ID of the snapshot to create VM from - required for 'create' operation"),
            "device_id": prop("string", "ID of the device to create VM on - required for 'create' operation"),
            "cpu_count": prop("number", "Number of CPUs for the VM - used with 'create' and 'update' operations"),
            "memory_in_mb": prop("number", "Memory in MB for the VM - used with 'create' and 'update' operations"),
            "disk_bus": prop("string", "Disk bus type - used with 'create' operation", enum=["sata", "virtio"]),
            "network_model": prop(
                "string",
                "Network model - used with 'create' operation",
                enum=["hypervisor_default", "e1000", "rtl8139"],
            ),
            "network_type": prop("string", "Network type - used with 'create' operation", enum=NETWORK_TYPES),
            "network_source": prop(
                "string", "Network source ID - used with 'create' operation when network_type is 'network-id'"
            ),
            "boot_mods": {
                "type": "array",
                "description": "Optional boot modifications - used with 'create' operation",
                "items": {"type": "string"},
            },
            "state": prop(
                "string", "VM state - used with 'update' operation", enum=["running", "stopped", "paused"]
            ),
            "expires_at": prop("string", "Expiration timestamp - used with 'update' operation"),
        },
        {
            "get": ["virt_id"],
            "create": ["snapshot_id", "device_id"],
            "update": ["virt_id"],
            "delete": ["virt_id"],
            "get_rdp_bookmark": ["virt_id"],
        },
    ),
    operations=OPERATIONS,
)
