"""slide_presentation: report templates and display cards from the slideReports repository."""

from __future__ import annotations

from typing import Any, Dict

from slide_mcp.api.client import SlideClient
from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.tools.base import ToolContext, ToolSpec, operation_schema, optional_str, prop, require_str

TEMPLATE_ROOT = "https://raw.githubusercontent.com/amcchord/slideReports/main"
CARD_ROOT = "https://raw.githubusercontent.com/amcchord/slideReports/refs/heads/main/cards"
FETCH_TIMEOUT = 30.0

FORMATS = ["html", "haml", "markdown", "md"]
_EXTENSIONS = {"html": "html", "haml": "haml", "markdown": "md", "md": "md"}

# operation -> (repository folder, label used in error messages, default format)
TEMPLATES = {
    "get_runbook_template": ("runbook", "runbook", "markdown"),
    "get_daily_report_template": ("daily_report", "daily report", "html"),
    "get_monthly_report_template": ("monthly_report", "monthly report", "html"),
}

CARD_DESCRIPTIONS = {
    "agent": (
        "Individual backup agent card - Shows detailed info for a single agent including hostname, OS, status, "
        "recent backups, and client assignment. Use for agent status pages or detailed agent views."
    ),
    "agents_table": (
        "Multiple agents table card - Shows overview table of multiple agents with status, last seen, and "
        "assignments. Use for agent dashboard, status overview, or multi-agent comparison."
    ),
    "client": (
        "Individual client card - Shows detailed info for a single client including name, agent count, device "
        "assignments, and stats. Use for client detail pages or client status views."
    ),
    "clients_table": (
        "Multiple clients table card - Shows overview table of multiple clients with agent counts and "
        "assignments. Use for client dashboard or multi-client management views."
    ),
    "device": (
        "Individual backup device card - Shows detailed info for a single backup device including capacity, "
        "assignments, and storage info. Use for device status pages or detailed device views."
    ),
    "devices_table": (
        "Multiple devices table card - Shows overview table of multiple backup devices with capacity and "
        "assignments. Use for device dashboard or storage management views."
    ),
    "snapshot": (
        "Individual snapshot card - Shows detailed info for a single backup snapshot including date, size, "
        "status, and retention. Use for backup detail pages or snapshot analysis."
    ),
    "snapshots_table": (
        "Multiple snapshots table card - Shows chronological table of multiple backup snapshots with sizes and "
        "status. Use for backup history, snapshot dashboard, or backup timeline views."
    ),
}


def _download(client: SlideClient, url: str, what: str) -> str:
    try:
        response = client.fetch_text(url, timeout=FETCH_TIMEOUT)
    except SlideError as exc:
        raise SlideError(f"failed to download {what}: {exc}") from exc
    if response.status_code != 200:
        raise SlideError(f"failed to download {what}: HTTP {response.status_code}")
    return response.text


def template_urls(operation: str, fmt: str) -> Dict[str, str]:
    folder, _, _ = TEMPLATES[operation]
    if fmt not in _EXTENSIONS:
        raise ToolError(f"unsupported format: {fmt}. Supported formats: html, haml, markdown, md")
    return {
        "context": f"{TEMPLATE_ROOT}/{folder}/context.txt",
        "template": f"{TEMPLATE_ROOT}/{folder}/{folder}.{_EXTENSIONS[fmt]}",
    }


def _template_handler(operation: str):
    _, label, default_format = TEMPLATES[operation]

    def handler(ctx: ToolContext, args: Dict[str, Any]) -> str:
        fmt = optional_str(args, "format") or default_format
        urls = template_urls(operation, fmt)
        context = _download(ctx.client, urls["context"], f"{label} context")
        template = _download(ctx.client, urls["template"], f"{label} template")
        return f"{context}\n\nTEMPLATE CONTENT:\n{template}"

    handler.__name__ = operation
    return handler


def get_card(ctx: ToolContext, args: Dict[str, Any]) -> str:
    card_type = require_str(args, "card_type")
    description = CARD_DESCRIPTIONS.get(card_type)
    if description is None:
        raise ToolError(f"invalid card_type: {card_type}. Valid types: {', '.join(CARD_DESCRIPTIONS)}")
    url = f"{CARD_ROOT}/{card_type}.md"
    content = _download(ctx.client, url, "card")
    return f"CARD TYPE: {card_type}\nDESCRIPTION: {description}\nSOURCE: {url}\n\nCARD CONTENT:\n{content}"


OPERATIONS = {name: _template_handler(name) for name in TEMPLATES}
OPERATIONS["get_card"] = get_card

TOOL = ToolSpec(
    name="slide_presentation",
    description=(
        "Use this tool whenever you present data to the user. It provides professional formatting for backup "
        "system data. Report templates (runbook, daily and monthly reports) give complete documents for "
        "procedures, summaries and analysis. Cards give structured display of agents, clients, devices and "
        "snapshots: single cards for one item in detail, table cards for several items side by side."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            "format": prop(
                "string",
                "Template format - use 'html' for web display, 'haml' for Ruby/Rails apps, 'markdown' for "
                "documentation. Only applies to report templates, not cards.",
                enum=FORMATS,
                default="markdown",
            ),
            "card_type": prop(
                "string",
                "Required for 'get_card' operation. Single item cards: 'agent', 'client', 'device', 'snapshot'. "
                "Table cards for multiple records: 'agents_table', 'clients_table', 'devices_table', "
                "'snapshots_table'.",
                enum=list(CARD_DESCRIPTIONS),
            ),
        },
        {"get_card": ["card_type"]},
    ),
    operations=OPERATIONS,
)
