"""
slide_meta: composite views assembled from several API calls.

- ``list_all_clients_devices_and_agents`` walks clients -> devices -> agents.
  Failures below the top level are recorded on the node as ``*_error`` and
  never abort the walk.
- ``get_snapshot_changes`` counts snapshots created or deleted inside a
  trailing time window.
- ``get_reporting_data`` folds both into template-ready metrics.

The two time-window operations are only advertised when presentation or
reports tooling is enabled.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from slide_mcp.api.client import SlideClient
from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.core.config import SlideConfig
from slide_mcp.tools.base import (
    ToolContext,
    ToolSpec,
    operation_schema,
    optional_bool,
    optional_str,
    prop,
    require_str,
    to_json,
)

logger = logging.getLogger("Slide.tools.meta")

PAGE_SIZE = 50
DETAIL_LIMIT = 100
ONLINE_WINDOW = timedelta(hours=24)

UNASSIGNED_CLIENT = "[Unassigned]"

HIERARCHY_METADATA = {
    "description": "Complete hierarchy of clients, devices, and agents",
    "structure": "clients -> devices -> agents",
    "client_identification": (
        "Clients are identified by name. '[Unassigned]' represents devices not assigned to any client."
    ),
    "device_identification": "Devices are identified by hostname (the primary human-readable identifier).",
    "agent_identification": "Agents are identified by display_name (or hostname if display_name is empty).",
    "relationships": {
        "client_to_device": "One client can have multiple devices",
        "device_to_agent": "One device can have multiple agents (backup software instances)",
    },
    "workflow_guidance": (
        "This gives you a complete overview of the backup infrastructure. Clients are organizational units (often "
        "customers in MSP scenarios), devices are the Slide appliances, and agents are the backup software "
        "installed on computers."
    ),
}

REPORT_PERIODS = {
    "daily": ("day", 1),
    "weekly": ("week", 7),
    "monthly": ("month", 30),
}

TEMPLATE_PLACEHOLDERS = {
    "daily": [
        "REPORT_DATE",
        "TOTAL_SUCCESSFUL_SNAPSHOTS",
        "TOTAL_FAILED_SNAPSHOTS",
        "TOTAL_CLIENTS",
        "TOTAL_DEVICES",
        "AGENTS_ONLINE",
        "TOTAL_AGENTS",
        "DEVICES_ACTIVE",
        "SNAPSHOTS_TODAY",
        "CLIENT_NAME",
        "DEVICE_NAME",
    ],
    "monthly": [
        "REPORT_MONTH_YEAR",
        "TOTAL_MONTHLY_SNAPSHOTS",
        "TOTAL_FAILED_SNAPSHOTS",
        "TOTAL_DELETED_SNAPSHOTS",
        "ACTIVE_DAYS",
        "TOTAL_DATA_SIZE",
        "RETENTION_RULES",
        "SNAPSHOTS_DELETED_COUNT",
        "SPACE_FREED",
    ],
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; None when absent or malformed."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _one_month_before(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_start(period: str, now: datetime) -> datetime:
    if period == "day":
        return now - timedelta(days=1)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return _one_month_before(now)
    raise ToolError(f"invalid period: {period}")


def _rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return [row for row in payload["data"] if isinstance(row, dict)]
    return []


def _next_offset(payload: Any) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    pagination = payload.get("pagination") or {}
    value = pagination.get("next_offset") if isinstance(pagination, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

def _agent_node(agent: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "agent_id": agent.get("agent_id"),
        "display_name": agent.get("display_name"),
        "hostname": agent.get("hostname"),
        "last_seen_at": agent.get("last_seen_at"),
        "platform": agent.get("platform"),
        "os": agent.get("os"),
        "os_version": agent.get("os_version"),
    }


def _device_node(client: SlideClient, device: Dict[str, Any]) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "device_id": device.get("device_id"),
        "hostname": device.get("hostname"),
        "display_name": device.get("display_name"),
        "last_seen_at": device.get("last_seen_at"),
        "service_status": device.get("service_status"),
        "agents": [],
    }
    try:
        agents = client.get("/v1/agent", {"device_id": device.get("device_id"), "limit": PAGE_SIZE})
    except SlideError as exc:
        node["agents_error"] = f"Failed to get agents: {exc}"
        return node
    node["agents"] = [_agent_node(agent) for agent in _rows(agents)]
    return node


def build_hierarchy(client: SlideClient) -> Dict[str, Any]:
    """
    Assemble the clients -> devices -> agents tree.

    Raises SlideError only when the two top-level listings fail.
    """
    try:
        clients = client.get("/v1/client", {"limit": PAGE_SIZE})
    except SlideError as exc:
        raise SlideError(f"failed to get clients: {exc}") from exc
    try:
        all_devices = client.get("/v1/device", {"limit": PAGE_SIZE})
    except SlideError as exc:
        raise SlideError(f"failed to get unassigned devices: {exc}") from exc

    tree: List[Dict[str, Any]] = []

    unassigned = [device for device in _rows(all_devices) if not device.get("client_id")]
    if unassigned:
        tree.append(
            {
                "client_id": "",
                "name": UNASSIGNED_CLIENT,
                "comments": "Devices not assigned to any specific client",
                "devices": [_device_node(client, device) for device in unassigned],
            }
        )

    for entry in _rows(clients):
        node: Dict[str, Any] = {
            "client_id": entry.get("client_id"),
            "name": entry.get("name"),
            "comments": entry.get("comments"),
            "devices": [],
        }
        try:
            devices = client.get("/v1/device", {"client_id": entry.get("client_id"), "limit": PAGE_SIZE})
        except SlideError as exc:
            node["devices_error"] = f"Failed to get devices: {exc}"
        else:
            node["devices"] = [_device_node(client, device) for device in _rows(devices)]
        tree.append(node)

    return {"clients": tree, "_metadata": HIERARCHY_METADATA}


# ---------------------------------------------------------------------------
# Snapshot changes
# ---------------------------------------------------------------------------

class _NameResolver:
    """Memoised best-effort agent/device name lookups for one call."""

    def __init__(self, client: SlideClient):
        self.client = client
        self._agents: Dict[str, Optional[Dict[str, Any]]] = {}
        self._devices: Dict[str, Optional[Dict[str, Any]]] = {}

    def _fetch(self, cache: Dict[str, Optional[Dict[str, Any]]], path: str, key: str) -> Optional[Dict[str, Any]]:
        if key not in cache:
            try:
                payload = self.client.get(f"{path}/{key}")
                cache[key] = payload if isinstance(payload, dict) else None
            except SlideError as exc:
                logger.debug("Name lookup %s/%s failed: %s", path, key, exc)
                cache[key] = None
        return cache[key]

    def annotate(self, info: Dict[str, Any]) -> None:
        agent_id = info.get("agent_id")
        if not agent_id:
            return
        agent = self._fetch(self._agents, "/v1/agent", agent_id)
        if agent is None:
            return
        info["agent_name"] = agent.get("display_name") or agent.get("hostname")
        device_id = agent.get("device_id")
        info["device_id"] = device_id
        if device_id:
            device = self._fetch(self._devices, "/v1/device", device_id)
            if device is not None:
                info["device_name"] = device.get("display_name") or device.get("hostname")


def _in_window(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start < moment < end


def _walk_snapshots(client: SlideClient, filters: Dict[str, Any], location: str):
    offset = 0
    while True:
        params = dict(filters, snapshot_location=location, offset=offset)
        try:
            payload = client.get("/v1/snapshot", params)
        except SlideError as exc:
            raise SlideError(f"failed to get snapshots: {exc}") from exc
        yield from _rows(payload)
        next_offset = _next_offset(payload)
        if next_offset is None or next_offset <= offset:
            return
        offset = next_offset


def snapshot_changes(
    client: SlideClient,
    period: str,
    *,
    summary_only: bool = False,
    include_metadata: bool = True,
    client_id: Optional[str] = None,
    device_id: Optional[str] = None,
    agent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    start = period_start(period, now)

    filters: Dict[str, Any] = {"limit": PAGE_SIZE}
    for key, value in (("client_id", client_id), ("device_id", device_id), ("agent_id", agent_id)):
        if value:
            filters[key] = value

    new_total = 0
    deleted_total = 0
    new_agents: Dict[str, int] = {}
    deleted_agents: Dict[str, int] = {}
    new_rows: List[Dict[str, Any]] = []
    deleted_rows: List[Dict[str, Any]] = []

    for snapshot in _walk_snapshots(client, filters, "exists_cloud"):
        if not _in_window(parse_timestamp(snapshot.get("backup_ended_at")), start, now):
            continue
        new_total += 1
        owner = snapshot.get("agent_id") or ""
        new_agents[owner] = new_agents.get(owner, 0) + 1
        if not summary_only and len(new_rows) < DETAIL_LIMIT:
            new_rows.append(
                {
                    "snapshot_id": snapshot.get("snapshot_id"),
                    "agent_id": snapshot.get("agent_id"),
                    "backup_started_at": snapshot.get("backup_started_at"),
                    "backup_ended_at": snapshot.get("backup_ended_at"),
                }
            )

    for snapshot in _walk_snapshots(client, filters, "exists_deleted"):
        if not snapshot.get("deleted"):
            continue
        for deletion in snapshot.get("deletions") or []:
            if not isinstance(deletion, dict):
                continue
            if not _in_window(parse_timestamp(deletion.get("deleted")), start, now):
                continue
            deleted_total += 1
            owner = snapshot.get("agent_id") or ""
            deleted_agents[owner] = deleted_agents.get(owner, 0) + 1
            if not summary_only and len(deleted_rows) < DETAIL_LIMIT:
                deleted_rows.append(
                    {
                        "snapshot_id": snapshot.get("snapshot_id"),
                        "agent_id": snapshot.get("agent_id"),
                        "backup_ended_at": snapshot.get("backup_ended_at"),
                        "deleted_at": deletion.get("deleted"),
                        "deletion_type": deletion.get("type"),
                    }
                )

    result: Dict[str, Any] = {
        "period": period,
        "start_time": rfc3339(start),
        "end_time": rfc3339(now),
    }
    summary = {
        "total_new": new_total,
        "total_deleted": deleted_total,
        "new_by_agent_count": len(new_agents),
        "deleted_by_agent_count": len(deleted_agents),
    }

    if summary_only:
        result["summary"] = summary
        result["_metadata"] = {
            "description": f"Summary of snapshot changes over the last {period}",
            "mode": "summary_only",
            "note": f"Use summary_only=false to get detailed snapshot lists (limited to {DETAIL_LIMIT} each)",
        }
        return result

    if include_metadata:
        resolver = _NameResolver(client)
        for row in new_rows + deleted_rows:
            resolver.annotate(row)

    summary["shown_new"] = len(new_rows)
    summary["shown_deleted"] = len(deleted_rows)
    result["new_snapshots"] = new_rows
    result["deleted_snapshots"] = deleted_rows
    result["summary"] = summary
    metadata: Dict[str, Any] = {
        "description": f"Snapshot changes over the last {period}",
        "mode": "detailed",
        "limit_notice": f"Detailed results are limited to {DETAIL_LIMIT} snapshots each to prevent excessive data",
        "metadata_mode": include_metadata,
    }
    if new_total > DETAIL_LIMIT or deleted_total > DETAIL_LIMIT:
        metadata["truncated"] = True
        metadata["truncation_message"] = (
            f"Showing {len(new_rows)} of {new_total} new and {len(deleted_rows)} of {deleted_total} deleted snapshots"
        )
    result["_metadata"] = metadata
    return result


# ---------------------------------------------------------------------------
# Reporting data
# ---------------------------------------------------------------------------

def _recently_seen(value: Any, now: datetime) -> bool:
    seen = parse_timestamp(value)
    return seen is not None and now - seen < ONLINE_WINDOW


def _client_metrics(node: Dict[str, Any], now: datetime) -> Tuple[Dict[str, Any], int, int]:
    devices = node.get("devices") or []
    agent_count = 0
    active_devices = 0
    online_agents = 0
    for device in devices:
        agents = device.get("agents") or []
        agent_count += len(agents)
        if _recently_seen(device.get("last_seen_at"), now):
            active_devices += 1
        online_agents += sum(1 for agent in agents if _recently_seen(agent.get("last_seen_at"), now))
    metrics = {
        "client_id": node.get("client_id"),
        "client_name": node.get("name"),
        "device_count": len(devices),
        "agent_count": agent_count,
        "active_devices": active_devices,
        "online_agents": online_agents,
    }
    return metrics, active_devices, online_agents


def reporting_data(client: SlideClient, report_type: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    if report_type not in REPORT_PERIODS:
        raise ToolError(f"invalid report_type: {report_type}")
    period, days_back = REPORT_PERIODS[report_type]
    now = now or datetime.now(timezone.utc)

    try:
        hierarchy = build_hierarchy(client)
    except SlideError as exc:
        raise SlideError(f"failed to get hierarchy: {exc}") from exc
    try:
        changes = snapshot_changes(client, period, summary_only=True, now=now)
    except SlideError as exc:
        raise SlideError(f"failed to get snapshot changes: {exc}") from exc

    clients = hierarchy["clients"]
    per_client = []
    devices_active = 0
    agents_online = 0
    for node in clients:
        metrics, active, online = _client_metrics(node, now)
        per_client.append(metrics)
        devices_active += active
        agents_online += online

    summary = changes["summary"]
    return {
        "report_type": report_type,
        "report_date": f"{now.strftime('%B')} {now.day}, {now.year}",
        "report_period": f"Last {days_back} days",
        "metrics": {
            "total_clients": len(clients),
            "total_devices": sum(item["device_count"] for item in per_client),
            "total_agents": sum(item["agent_count"] for item in per_client),
            "devices_active": devices_active,
            "agents_online": agents_online,
            "new_snapshots": summary["total_new"],
            "deleted_snapshots": summary["total_deleted"],
        },
        "client_metrics": per_client,
        "snapshot_summary": summary,
        "_metadata": {
            "description": f"Pre-formatted data for {report_type} report template",
            "usage": (
                "Use this data to populate report templates. All metrics are pre-calculated and formatted for easy "
                "insertion."
            ),
            "note": (
                "Full hierarchy data not included by default to reduce size. Use list_all_clients_devices_and_agents "
                "separately if needed."
            ),
            "template_placeholders": TEMPLATE_PLACEHOLDERS,
        },
    }


# ---------------------------------------------------------------------------
# Tool wiring
# ---------------------------------------------------------------------------

def _time_tools_enabled(config: SlideConfig) -> bool:
    return config.enable_reports or config.enable_presentation


def _require_time_tools(ctx: ToolContext, operation: str) -> None:
    if not _time_tools_enabled(ctx.config):
        raise ToolError(f"{operation} operation requires reporting or presentation tools to be enabled")


def list_hierarchy(ctx: ToolContext, args: Dict[str, Any]) -> str:
    return to_json(build_hierarchy(ctx.client))


def get_snapshot_changes(ctx: ToolContext, args: Dict[str, Any]) -> str:
    _require_time_tools(ctx, "get_snapshot_changes")
    period = require_str(args, "period")
    summary_only = optional_bool(args, "summary_only")
    include_metadata = optional_bool(args, "include_metadata")
    return to_json(
        snapshot_changes(
            ctx.client,
            period,
            summary_only=bool(summary_only),
            include_metadata=True if include_metadata is None else include_metadata,
            client_id=optional_str(args, "client_id"),
            device_id=optional_str(args, "device_id"),
            agent_id=optional_str(args, "agent_id"),
        )
    )


def get_reporting_data(ctx: ToolContext, args: Dict[str, Any]) -> str:
    _require_time_tools(ctx, "get_reporting_data")
    return to_json(reporting_data(ctx.client, require_str(args, "report_type")))


def build_meta_tool(config: SlideConfig) -> ToolSpec:
    """The advertised operation enum depends on the feature gates; the handler table does not."""
    advertised = ["list_all_clients_devices_and_agents"]
    if _time_tools_enabled(config):
        advertised += ["get_snapshot_changes", "get_reporting_data"]

    schema = operation_schema(
        advertised,
        {
            "period": prop(
                "string",
                "Time period for snapshot changes - used with 'get_snapshot_changes' operation",
                enum=["day", "week", "month"],
            ),
            "summary_only": prop(
                "boolean",
                "Return only summary counts without detailed snapshot lists (reduces output size) - default: false",
            ),
            "include_metadata": prop(
                "boolean", "Include agent and device names in detailed results - default: true"
            ),
            "client_id": prop("string", "Filter by client ID - optional for time-based operations"),
            "device_id": prop("string", "Filter by device ID - optional for time-based operations"),
            "agent_id": prop("string", "Filter by agent ID - optional for time-based operations"),
            "report_type": prop(
                "string",
                "Type of report data to generate - used with 'get_reporting_data' operation",
                enum=["daily", "weekly", "monthly"],
            ),
        },
        {"get_snapshot_changes": ["period"], "get_reporting_data": ["report_type"]},
    )

    return ToolSpec(
        name="slide_meta",
        description=(
            "Meta tools for reporting and aggregated data views. Provides hierarchical views and time-based "
            "snapshot analysis."
        ),
        input_schema=schema,
        operations={
            "list_all_clients_devices_and_agents": list_hierarchy,
            "get_snapshot_changes": get_snapshot_changes,
            "get_reporting_data": get_reporting_data,
        },
    )
