"""
Tool registry: the ordered catalog of tools for one configuration.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from slide_mcp.core.config import SlideConfig
from slide_mcp.core.policy import ToolPolicy
from slide_mcp.tools import (
    agents,
    alerts,
    backups,
    devices,
    docs,
    networks,
    presentation,
    reports,
    restores,
    snapshots,
    user_management,
    vms,
)
from slide_mcp.tools.base import ToolSpec
from slide_mcp.tools.meta import build_meta_tool


class ToolRegistry:
    """Name -> ToolSpec mapping that preserves catalog order."""

    def __init__(self, tools: List[ToolSpec]):
        self._tools: Dict[str, ToolSpec] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def catalog(self, policy: ToolPolicy) -> List[dict]:
        """``tools/list`` entries admitted by ``policy``, in registry order."""
        return [
            tool.catalog_entry(policy.describe(tool.description))
            for tool in self._tools.values()
            if policy.tool_visible(tool.name)
        ]


def build_registry(config: SlideConfig) -> ToolRegistry:
    return ToolRegistry(
        [
            agents.TOOL,
            backups.TOOL,
            snapshots.TOOL,
            restores.TOOL,
            networks.TOOL,
            user_management.TOOL,
            alerts.TOOL,
            devices.TOOL,
            vms.TOOL,
            presentation.TOOL,
            reports.TOOL,
            build_meta_tool(config),
            docs.TOOL,
        ]
    )
