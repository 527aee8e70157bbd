"""Tests for slide_mcp.tools.registry: catalog order and mode filtering."""

import pytest

from slide_mcp.core.policy import READ_ONLY_SUFFIX, ToolPolicy
from slide_mcp.tools.base import ToolSpec
from slide_mcp.tools.registry import ToolRegistry, build_registry

ALL_TOOLS = [
    "slide_agents",
    "slide_backups",
    "slide_snapshots",
    "slide_restores",
    "slide_networks",
    "slide_user_management",
    "slide_alerts",
    "slide_devices",
    "slide_vms",
    "slide_presentation",
    "slide_reports",
    "slide_meta",
    "slide_docs",
]


def _catalog_names(config):
    return [entry["name"] for entry in build_registry(config).catalog(ToolPolicy(config))]


class TestRegistry:
    def test_order(self, config):
        assert build_registry(config).names() == ALL_TOOLS

    def test_duplicate_names_rejected(self):
        tool = ToolSpec(name="x", description="", input_schema={})
        with pytest.raises(ValueError, match="duplicate tool name: x"):
            ToolRegistry([tool, tool])

    def test_lookup(self, config):
        registry = build_registry(config)
        assert "slide_docs" in registry
        assert registry.get("slide_nothing") is None
        assert len(registry) == len(ALL_TOOLS)

    def test_every_schema_declares_operation(self, make_config):
        for tool in build_registry(make_config(presentation=True, reports=True)):
            schema = tool.input_schema
            assert schema["type"] == "object"
            assert schema["required"] == ["operation"]
            assert set(schema["properties"]["operation"]["enum"]) <= set(tool.operations)


class TestCatalog:
    def test_default_hides_gated_tools(self, config):
        names = _catalog_names(config)
        assert "slide_presentation" not in names
        assert "slide_reports" not in names
        assert names[0] == "slide_agents"

    def test_gates_reveal_tools(self, make_config):
        names = _catalog_names(make_config(presentation=True, reports=True))
        assert names == ALL_TOOLS

    def test_reporting_mode(self, make_config):
        config = make_config(tools_mode="reporting", presentation=True, reports=True)
        catalog = build_registry(config).catalog(ToolPolicy(config))
        names = [entry["name"] for entry in catalog]
        assert "slide_reports" not in names
        assert "slide_presentation" in names
        assert all(entry["description"].endswith(READ_ONLY_SUFFIX) for entry in catalog)

    def test_disabled_tools_hidden(self, make_config):
        names = _catalog_names(make_config(disabled_tools=("slide_docs", "slide_vms")))
        assert "slide_docs" not in names
        assert "slide_vms" not in names

    def test_entry_shape(self, config):
        entry = build_registry(config).catalog(ToolPolicy(config))[0]
        assert set(entry) == {"name", "description", "inputSchema"}
