"""
Tool authorization policy.

Two admission layers are evaluated on every tool call:

- tool-mode admission decides whether a tool is visible at all;
- operation-mode admission decides whether one operation inside an admitted
  tool may run.

The deny-list and the feature gates sit in front of both.
"""

import logging
from typing import Dict, FrozenSet, Optional

from slide_mcp.core.config import SlideConfig

logger = logging.getLogger("Slide.Policy")

MODE_REPORTING = "reporting"
MODE_RESTORES = "restores"
MODE_FULL_SAFE = "full-safe"
MODE_FULL = "full"

READ_ONLY_SUFFIX = " (Read-only mode: only list/get operations available)"

# Tools that never mutate upstream state.
READ_ONLY_TOOLS: FrozenSet[str] = frozenset(
    {
        "slide_agents",
        "slide_backups",
        "slide_snapshots",
        "slide_user_management",
        "slide_alerts",
        "slide_devices",
        "slide_networks",
        "slide_vms",
        "slide_restores",
        "slide_presentation",
        "slide_meta",
        "slide_docs",
    }
)

READ_OPERATIONS: FrozenSet[str] = frozenset(
    {
        "list",
        "get",
        "browse",
        "list_deleted",
        "list_files",
        "get_file",
        "browse_file",
        "list_images",
        "get_image",
        "browse_image",
        "list_users",
        "get_user",
        "list_accounts",
        "get_account",
        "list_clients",
        "get_client",
        "get_runbook_template",
        "get_daily_report_template",
        "get_monthly_report_template",
        "get_card",
        "get_rdp_bookmark",
        # docs
        "list_sections",
        "get_topics",
        "search_docs",
        "get_content",
        "get_api_reference",
        "curl_docs",
        # meta
        "list_all_clients_devices_and_agents",
        "get_snapshot_changes",
        "get_reporting_data",
        # reports
        "daily_backup_snapshot",
        "weekly_backup_snapshot",
        "monthly_backup_snapshot",
    }
)

# Mutations admitted in restores mode, per tool.
RESTORES_MUTATIONS: Dict[str, FrozenSet[str]] = {
    "slide_vms": frozenset({"create", "update", "delete"}),
    "slide_restores": frozenset(
        {"create_file", "delete_file", "browse_file", "create_image", "delete_image", "browse_image"}
    ),
    "slide_networks": frozenset(
        {
            "create",
            "update",
            "delete",
            "create_ipsec",
            "update_ipsec",
            "delete_ipsec",
            "create_port_forward",
            "update_port_forward",
            "delete_port_forward",
            "create_wg_peer",
            "update_wg_peer",
            "delete_wg_peer",
        }
    ),
    "slide_devices": frozenset({"update"}),
    "slide_agents": frozenset({"create", "pair", "update"}),
    "slide_backups": frozenset({"start"}),
    "slide_user_management": frozenset(
        {"update_account", "create_client", "update_client", "delete_client"}
    ),
}

# Operations refused in full-safe mode.
DANGEROUS_OPERATIONS: Dict[str, FrozenSet[str]] = {
    "slide_agents": frozenset({"delete"}),
    "slide_snapshots": frozenset({"delete"}),
    "slide_devices": frozenset({"poweroff", "reboot"}),
}

FEATURE_GATED_TOOLS = {
    "slide_presentation": "presentation",
    "slide_reports": "reports",
}


def is_read_operation(operation: str) -> bool:
    return operation in READ_OPERATIONS


class ToolPolicy:
    """Admission decisions for one frozen configuration."""

    def __init__(self, config: SlideConfig):
        self.config = config
        self.mode = config.tools_mode

    @property
    def read_only(self) -> bool:
        return self.mode == MODE_REPORTING

    def is_disabled(self, tool_name: str) -> bool:
        return self.config.is_disabled(tool_name)

    def gate_open(self, tool_name: str) -> bool:
        gate = FEATURE_GATED_TOOLS.get(tool_name)
        if gate is None:
            return True
        return bool(getattr(self.config.features, gate))

    def mode_admits_tool(self, tool_name: str) -> bool:
        if self.mode in (MODE_REPORTING, MODE_RESTORES):
            return tool_name in READ_ONLY_TOOLS
        return True

    def tool_visible(self, tool_name: str) -> bool:
        """True when the tool belongs in ``tools/list`` under this configuration."""
        if self.is_disabled(tool_name):
            return False
        if not self.gate_open(tool_name):
            return False
        return self.mode_admits_tool(tool_name)

    def operation_allowed(self, tool_name: str, operation: str) -> bool:
        if self.mode == MODE_FULL:
            return True
        if self.mode == MODE_FULL_SAFE:
            return operation not in DANGEROUS_OPERATIONS.get(tool_name, frozenset())
        if is_read_operation(operation):
            return True
        if self.mode == MODE_RESTORES:
            return operation in RESTORES_MUTATIONS.get(tool_name, frozenset())
        return False

    def check_tool(self, tool_name: str) -> Optional[str]:
        """Return a denial message for the tool, or None when it is admitted."""
        if self.is_disabled(tool_name):
            return f"Tool '{tool_name}' is disabled"
        if not self.gate_open(tool_name) or not self.mode_admits_tool(tool_name):
            return f"Tool '{tool_name}' not available in '{self.mode}' mode"
        return None

    def check_operation(self, tool_name: str, operation: str) -> Optional[str]:
        if self.operation_allowed(tool_name, operation):
            return None
        logger.info("Denied %s.%s in %s mode", tool_name, operation, self.mode)
        return f"operation '{operation}' not available for {tool_name} in '{self.mode}' mode"

    def describe(self, description: str) -> str:
        if self.read_only:
            return description + READ_ONLY_SUFFIX
        return description
