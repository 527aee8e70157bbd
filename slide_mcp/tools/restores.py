"""slide_restores: file restores and image exports created from snapshots."""

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
    string_list,
    to_json,
)

IMAGE_TYPES = ["vhdx", "vhdx-dynamic", "vhd", "vmdk", "vmdk-flat", "qcow2", "raw"]

FILE_RESTORE_METADATA = {
    "primary_identifier": "file_restore_id",
    "presentation_guidance": "File restores allow browsing and downloading files from snapshots.",
    "workflow_guidance": "Create file restores from snapshots, then browse to find and download specific files.",
}

FILE_BROWSE_METADATA = {
    "primary_identifier": "path",
    "presentation_guidance": "File listing from the restored snapshot. Use download_uris to download files.",
    "workflow_guidance": (
        "Navigate directories by changing the path parameter. Files have download URIs for retrieval."
    ),
}

IMAGE_EXPORT_METADATA = {
    "primary_identifier": "image_export_id",
    "presentation_guidance": "Image exports create downloadable disk images from snapshots.",
    "workflow_guidance": (
        "Create image exports to get VHDX, VHD, or RAW disk images for importing into other systems."
    ),
}

IMAGE_BROWSE_METADATA = {
    "primary_identifier": "disk_id",
    "presentation_guidance": "Available disk images from the export. Use download_uris to download image files.",
    "workflow_guidance": "Each disk from the original system becomes a separate downloadable image file.",
}


def _paging(args: Dict[str, Any]) -> Dict[str, Any]:
    params = list_params(args)
    params.pop("sort_asc", None)
    params.pop("sort_by", None)
    return params


# File restores


def list_file_restores(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="id")
    return to_json(enrich_list(ctx.client.get("/v1/restore/file", params), FILE_RESTORE_METADATA))


def get_file_restore(ctx: ToolContext, args: Dict[str, Any]) -> str:
    restore_id = require_str(args, "file_restore_id")
    return to_json(ctx.client.get(f"/v1/restore/file/{restore_id}"))


def create_file_restore(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body = {
        "snapshot_id": require_str(args, "snapshot_id"),
        "device_id": require_str(args, "device_id"),
    }
    return to_json(ctx.client.post("/v1/restore/file", body))


def delete_file_restore(ctx: ToolContext, args: Dict[str, Any]) -> str:
    restore_id = require_str(args, "file_restore_id")
    ctx.client.delete(f"/v1/restore/file/{restore_id}")
    return "File restore deleted successfully"


def browse_file_restore(ctx: ToolContext, args: Dict[str, Any]) -> str:
    restore_id = require_str(args, "file_restore_id")
    path = require_str(args, "path")
    params = {"path": path, **_paging(args)}
    payload = ctx.client.get(f"/v1/restore/file/{restore_id}/browse", params)
    return to_json(enrich_list(payload, FILE_BROWSE_METADATA))


# Image exports


def list_image_exports(ctx: ToolContext, args: Dict[str, Any]) -> str:
    params = list_params(args, default_sort_by="id")
    return to_json(enrich_list(ctx.client.get("/v1/restore/image", params), IMAGE_EXPORT_METADATA))


def get_image_export(ctx: ToolContext, args: Dict[str, Any]) -> str:
    export_id = require_str(args, "image_export_id")
    return to_json(ctx.client.get(f"/v1/restore/image/{export_id}"))


def create_image_export(ctx: ToolContext, args: Dict[str, Any]) -> str:
    body: Dict[str, Any] = {
        "snapshot_id": require_str(args, "snapshot_id"),
        "device_id": require_str(args, "device_id"),
        "image_type": require_str(args, "image_type"),
    }
    boot_mods = string_list(args, "boot_mods")
    if boot_mods is not None:
        body["boot_mods"] = boot_mods
    return to_json(ctx.client.post("/v1/restore/image", body))


def delete_image_export(ctx: ToolContext, args: Dict[str, Any]) -> str:
    export_id = require_str(args, "image_export_id")
    ctx.client.delete(f"/v1/restore/image/{export_id}")
    return "Image export deleted successfully"


def browse_image_export(ctx: ToolContext, args: Dict[str, Any]) -> str:
    export_id = require_str(args, "image_export_id")
    payload = ctx.client.get(f"/v1/restore/image/{export_id}/browse", _paging(args))
    return to_json(enrich_list(payload, IMAGE_BROWSE_METADATA))


OPERATIONS = {
    "list_files": list_file_restores,
    "get_file": get_file_restore,
    "create_file": create_file_restore,
    "delete_file": delete_file_restore,
    "browse_file": browse_file_restore,
    "list_images": list_image_exports,
    "get_image": get_image_export,
    "create_image": create_image_export,
    "delete_image": delete_image_export,
    "browse_image": browse_image_export,
}

TOOL = ToolSpec(
    name="slide_restores",
    description=(
        "Manage restore operations - both file restores (for browsing/downloading individual files) and image "
        "exports (for downloading full disk images). Supports operations for both file restores and image exports."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            **list_properties(["id"], scope="list operations"),
            "file_restore_id": prop(
                "string", "ID of the file restore - required for get_file, delete_file, and browse_file operations"
            ),
            "path": prop("string", "Path to browse within the restore - required for browse_file operation"),
            "image_export_id": prop(
                "string", "ID of the image export - required for get_image, delete_image, and browse_image operations"
            ),
            "image_type": prop(
                "string", "Type of image to create - required for create_image operation", enum=IMAGE_TYPES
            ),
            "snapshot_id": prop(
                "string", "ID of the snapshot to restore from - required for create_file and create_image operations"
            ),
            "device_id": prop(
                "string", "ID of the device to restore to - required for create_file and create_image operations"
            ),
            "boot_mods": {
                "type": "array",
                "description": "Optional boot modifications - used with create_image operation",
                "items": {"type": "string"},
            },
        },
        {
            "get_file": ["file_restore_id"],
            "create_file": ["snapshot_id", "device_id"],
            "delete_file": ["file_restore_id"],
            "browse_file": ["file_restore_id", "path"],
            "get_image": ["image_export_id"],
            "create_image": ["snapshot_id", "device_id", "image_type"],
            "delete_image": ["image_export_id"],
            "browse_image": ["image_export_id"],
        },
    ),
    operations=OPERATIONS,
)
