"""Tests for slide_mcp.core.policy: tool and operation admission."""

import pytest

from slide_mcp.core.policy import READ_ONLY_SUFFIX, ToolPolicy


def _policy(make_config, mode, **kwargs):
    return ToolPolicy(make_config(tools_mode=mode, **kwargs))


class TestToolAdmission:
    def test_full_admits_everything_except_gated(self, make_config):
        policy = _policy(make_config, "full")
        assert policy.tool_visible("slide_agents")
        assert policy.tool_visible("slide_meta")
        assert not policy.tool_visible("slide_reports")
        assert not policy.tool_visible("slide_presentation")

    def test_gates_open_tools(self, make_config):
        policy = _policy(make_config, "full-safe", presentation=True, reports=True)
        assert policy.tool_visible("slide_reports")
        assert policy.tool_visible("slide_presentation")

    def test_reporting_mode_hides_reports_tool(self, make_config):
        policy = _policy(make_config, "reporting", reports=True)
        assert not policy.tool_visible("slide_reports")
        assert policy.check_tool("slide_reports") == "Tool 'slide_reports' not available in 'reporting' mode"

    def test_disabled_wins(self, make_config):
        policy = _policy(make_config, "full", disabled_tools=("slide_vms",))
        assert not policy.tool_visible("slide_vms")
        assert policy.check_tool("slide_vms") == "Tool 'slide_vms' is disabled"

    def test_gate_closed_message(self, make_config):
        policy = _policy(make_config, "full")
        assert policy.check_tool("slide_presentation") == "Tool 'slide_presentation' not available in 'full' mode"

    def test_admitted_tool(self, make_config):
        assert _policy(make_config, "restores").check_tool("slide_restores") is None


class TestOperationAdmission:
    def test_full_allows_dangerous(self, make_config):
        policy = _policy(make_config, "full")
        assert policy.operation_allowed("slide_agents", "delete")
        assert policy.operation_allowed("slide_devices", "reboot")

    @pytest.mark.parametrize(
        "tool, operation",
        [
            ("slide_agents", "delete"),
            ("slide_snapshots", "delete"),
            ("slide_devices", "poweroff"),
            ("slide_devices", "reboot"),
        ],
    )
    def test_full_safe_refuses_dangerous(self, make_config, tool, operation):
        policy = _policy(make_config, "full-safe")
        assert not policy.operation_allowed(tool, operation)
        assert policy.check_operation(tool, operation) == (
            f"operation '{operation}' not available for {tool} in 'full-safe' mode"
        )

    def test_full_safe_allows_other_mutations(self, make_config):
        policy = _policy(make_config, "full-safe")
        assert policy.operation_allowed("slide_vms", "delete")
        assert policy.operation_allowed("slide_agents", "create")

    def test_reporting_allows_reads_only(self, make_config):
        policy = _policy(make_config, "reporting")
        assert policy.operation_allowed("slide_agents", "list")
        assert policy.operation_allowed("slide_restores", "browse_file")
        assert policy.operation_allowed("slide_docs", "curl_docs")
        assert not policy.operation_allowed("slide_agents", "create")
        assert not policy.operation_allowed("slide_vms", "create")

    def test_restores_allows_listed_mutations(self, make_config):
        policy = _policy(make_config, "restores")
        assert policy.operation_allowed("slide_vms", "create")
        assert policy.operation_allowed("slide_networks", "create_wg_peer")
        assert policy.operation_allowed("slide_backups", "start")
        assert not policy.operation_allowed("slide_agents", "delete")
        assert not policy.operation_allowed("slide_devices", "reboot")
        assert not policy.operation_allowed("slide_alerts", "update")


class TestDescribe:
    def test_reporting_suffix(self, make_config):
        assert _policy(make_config, "reporting").describe("Agents") == "Agents" + READ_ONLY_SUFFIX

    def test_other_modes_unchanged(self, make_config):
        assert _policy(make_config, "restores").describe("Agents") == "Agents"
