"""Tests for slide_mcp.tools.meta: hierarchy, snapshot changes and reporting data."""

import json
from datetime import datetime, timezone

import pytest

from conftest import make_response, page
from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.tools.meta import (
    DETAIL_LIMIT,
    UNASSIGNED_CLIENT,
    build_hierarchy,
    build_meta_tool,
    parse_timestamp,
    period_start,
    reporting_data,
    rfc3339,
    snapshot_changes,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _devices(call):
    client_id = call["params"].get("client_id")
    if client_id == "c1":
        return page([{"device_id": "d1", "hostname": "acme-box", "client_id": "c1", "last_seen_at": "2024-03-15T11:00:00Z"}])
    if client_id == "c2":
        return make_response(500, text="boom")
    return page(
        [
            {"device_id": "d0", "hostname": "loose", "client_id": None, "last_seen_at": "2024-03-01T00:00:00Z"},
            {"device_id": "d1", "hostname": "acme-box", "client_id": "c1", "last_seen_at": "2024-03-15T11:00:00Z"},
        ]
    )


def _agents(call):
    if call["params"].get("device_id") == "d1":
        return page([{"agent_id": "a1", "display_name": "Laptop", "last_seen_at": "2024-03-15T10:00:00Z"}])
    return page([])


def _snapshots(call):
    params = call["params"]
    if params["snapshot_location"] == "exists_cloud":
        if params["offset"] == "0":
            return page(
                [
                    {"snapshot_id": "s1", "agent_id": "a1", "backup_ended_at": "2024-03-15T01:00:00Z"},
                    {"snapshot_id": "s2", "agent_id": "a1", "backup_ended_at": "2024-03-10T01:00:00Z"},
                ],
                next_offset=50,
            )
        return page([{"snapshot_id": "s3", "agent_id": "a2", "backup_ended_at": "2024-03-15T06:00:00Z"}])
    return page(
        [
            {
                "snapshot_id": "s4",
                "agent_id": "a1",
                "deleted": "2024-03-15T02:00:00Z",
                "deletions": [{"deleted": "2024-03-15T02:00:00Z", "type": "retention"}],
            },
            {"snapshot_id": "s5", "agent_id": "a1", "deleted": None, "deletions": []},
        ]
    )


def _routes(**extra):
    routes = {
        ("GET", "/v1/client"): page([{"client_id": "c1", "name": "Acme", "comments": "MSP customer"}]),
        ("GET", "/v1/device"): _devices,
        ("GET", "/v1/agent"): _agents,
        ("GET", "/v1/snapshot"): _snapshots,
        ("GET", "/v1/agent/a1"): {"agent_id": "a1", "display_name": "Laptop", "device_id": "d1"},
        ("GET", "/v1/device/d1"): {"device_id": "d1", "hostname": "acme-box"},
    }
    routes.update(extra)
    return routes


class TestTimeHelpers:
    def test_parse_timestamp_zulu(self):
        assert parse_timestamp("2024-03-15T01:02:03Z") == datetime(2024, 3, 15, 1, 2, 3, tzinfo=timezone.utc)

    def test_parse_timestamp_invalid(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None

    def test_rfc3339(self):
        assert rfc3339(NOW) == "2024-03-15T12:00:00Z"

    def test_period_start(self):
        assert period_start("day", NOW) == datetime(2024, 3, 14, 12, tzinfo=timezone.utc)
        assert period_start("week", NOW) == datetime(2024, 3, 8, 12, tzinfo=timezone.utc)

    def test_month_clamps_day(self):
        end_of_march = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert period_start("month", end_of_march) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_invalid_period(self):
        with pytest.raises(ToolError, match="invalid period: year"):
            period_start("year", NOW)


class TestHierarchy:
    def test_tree_shape(self, make_ctx):
        ctx = make_ctx(_routes())
        tree = build_hierarchy(ctx.client)["clients"]
        assert [node["name"] for node in tree] == [UNASSIGNED_CLIENT, "Acme"]
        assert tree[0]["client_id"] == ""
        assert [device["device_id"] for device in tree[0]["devices"]] == ["d0"]
        acme_device = tree[1]["devices"][0]
        assert acme_device["hostname"] == "acme-box"
        assert acme_device["agents"][0]["display_name"] == "Laptop"

    def test_no_unassigned_group_when_all_assigned(self, make_ctx):
        routes = _routes()
        routes[("GET", "/v1/device")] = lambda call: page([{"device_id": "d1", "client_id": "c1"}])
        tree = build_hierarchy(make_ctx(routes).client)["clients"]
        assert [node["name"] for node in tree] == ["Acme"]

    def test_device_failure_is_recorded(self, make_ctx):
        routes = _routes()
        routes[("GET", "/v1/client")] = page([{"client_id": "c2", "name": "Broken"}])
        tree = build_hierarchy(make_ctx(routes).client)["clients"]
        broken = tree[-1]
        assert broken["devices"] == []
        assert broken["devices_error"] == "Failed to get devices: API error 500: boom"

    def test_agent_failure_is_recorded(self, make_ctx):
        routes = _routes()
        routes[("GET", "/v1/agent")] = make_response(503, text="down")
        tree = build_hierarchy(make_ctx(routes).client)["clients"]
        assert tree[1]["devices"][0]["agents_error"] == "Failed to get agents: API error 503: down"

    def test_client_listing_failure(self, make_ctx):
        routes = _routes()
        routes[("GET", "/v1/client")] = make_response(401, text="unauthorized")
        with pytest.raises(SlideError, match="failed to get clients: API error 401"):
            build_hierarchy(make_ctx(routes).client)


class TestSnapshotChanges:
    def test_detailed(self, make_ctx):
        ctx = make_ctx(_routes())
        result = snapshot_changes(ctx.client, "day", now=NOW)
        assert result["period"] == "day"
        assert result["start_time"] == "2024-03-14T12:00:00Z"
        assert result["end_time"] == "2024-03-15T12:00:00Z"
        assert result["summary"] == {
            "total_new": 2,
            "total_deleted": 1,
            "new_by_agent_count": 2,
            "deleted_by_agent_count": 1,
            "shown_new": 2,
            "shown_deleted": 1,
        }
        first, second = result["new_snapshots"]
        assert first["snapshot_id"] == "s1"
        assert first["agent_name"] == "Laptop"
        assert first["device_name"] == "acme-box"
        assert "agent_name" not in second
        deleted = result["deleted_snapshots"][0]
        assert deleted["deletion_type"] == "retention"
        assert result["_metadata"]["mode"] == "detailed"
        assert "truncated" not in result["_metadata"]

    def test_name_lookups_are_memoised(self, make_ctx):
        ctx = make_ctx(_routes())
        snapshot_changes(ctx.client, "day", now=NOW)
        assert ctx.session.paths().count("/v1/agent/a1") == 1

    def test_without_metadata(self, make_ctx):
        ctx = make_ctx(_routes())
        result = snapshot_changes(ctx.client, "day", include_metadata=False, now=NOW)
        assert "agent_name" not in result["new_snapshots"][0]
        assert "/v1/agent/a1" not in ctx.session.paths()

    def test_summary_only(self, make_ctx):
        ctx = make_ctx(_routes())
        result = snapshot_changes(ctx.client, "day", summary_only=True, now=NOW)
        assert set(result) == {"period", "start_time", "end_time", "summary", "_metadata"}
        assert result["_metadata"]["mode"] == "summary_only"
        assert "shown_new" not in result["summary"]

    def test_filters_forwarded(self, make_ctx):
        ctx = make_ctx(_routes())
        snapshot_changes(ctx.client, "week", summary_only=True, agent_id="a1", now=NOW)
        assert all(call["params"].get("agent_id") == "a1" for call in ctx.session.calls)

    def test_truncation(self, make_ctx):
        rows = [
            {"snapshot_id": f"s{i}", "agent_id": "a9", "backup_ended_at": "2024-03-15T03:00:00Z"}
            for i in range(DETAIL_LIMIT + 5)
        ]

        def snapshots(call):
            if call["params"]["snapshot_location"] == "exists_cloud":
                return page(rows)
            return page([])

        ctx = make_ctx({("GET", "/v1/snapshot"): snapshots})
        result = snapshot_changes(ctx.client, "day", include_metadata=False, now=NOW)
        assert result["summary"]["total_new"] == DETAIL_LIMIT + 5
        assert len(result["new_snapshots"]) == DETAIL_LIMIT
        assert result["_metadata"]["truncated"] is True

    def test_listing_failure(self, make_ctx):
        ctx = make_ctx({("GET", "/v1/snapshot"): make_response(500, text="oops")})
        with pytest.raises(SlideError, match="failed to get snapshots: API error 500: oops"):
            snapshot_changes(ctx.client, "day", now=NOW)


class TestReportingData:
    def test_metrics(self, make_ctx):
        ctx = make_ctx(_routes())
        result = reporting_data(ctx.client, "daily", now=NOW)
        assert result["report_type"] == "daily"
        assert result["report_date"] == "March 15, 2024"
        assert result["report_period"] == "Last 1 days"
        assert result["metrics"] == {
            "total_clients": 2,
            "total_devices": 2,
            "total_agents": 1,
            "devices_active": 1,
            "agents_online": 1,
            "new_snapshots": 2,
            "deleted_snapshots": 1,
        }
        assert result["client_metrics"][1]["client_name"] == "Acme"
        assert "REPORT_DATE" in result["_metadata"]["template_placeholders"]["daily"]

    def test_invalid_report_type(self, make_ctx):
        with pytest.raises(ToolError, match="invalid report_type: yearly"):
            reporting_data(make_ctx().client, "yearly", now=NOW)

    def test_hierarchy_failure(self, make_ctx):
        routes = _routes()
        routes[("GET", "/v1/client")] = make_response(500, text="x")
        with pytest.raises(SlideError, match="failed to get hierarchy: failed to get clients"):
            reporting_data(make_ctx(routes).client, "weekly", now=NOW)


class TestMetaTool:
    def test_schema_without_gates(self, make_config):
        tool = build_meta_tool(make_config())
        assert tool.input_schema["properties"]["operation"]["enum"] == ["list_all_clients_devices_and_agents"]
        assert "allOf" not in tool.input_schema

    def test_schema_with_gate(self, make_config):
        tool = build_meta_tool(make_config(reports=True))
        assert tool.input_schema["properties"]["operation"]["enum"] == [
            "list_all_clients_devices_and_agents",
            "get_snapshot_changes",
            "get_reporting_data",
        ]

    def test_time_operations_refused_without_gates(self, make_ctx):
        ctx = make_ctx(_routes())
        tool = build_meta_tool(ctx.config)
        with pytest.raises(ToolError, match="get_snapshot_changes operation requires reporting or presentation"):
            tool.call(ctx, {"operation": "get_snapshot_changes", "period": "day"})

    def test_hierarchy_operation(self, make_ctx):
        ctx = make_ctx(_routes())
        result = json.loads(build_meta_tool(ctx.config).call(ctx, {"operation": "list_all_clients_devices_and_agents"}))
        assert result["_metadata"]["structure"] == "clients -> devices -> agents"

    def test_snapshot_changes_operation(self, make_ctx):
        ctx = make_ctx(_routes(), presentation=True)
        text = build_meta_tool(ctx.config).call(
            ctx, {"operation": "get_snapshot_changes", "period": "week", "summary_only": True}
        )
        assert json.loads(text)["_metadata"]["mode"] == "summary_only"
