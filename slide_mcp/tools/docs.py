"""
slide_docs: documentation catalog, search and live page fetches.

The catalog mirrors the docs.slide.tech table of contents. Sections and
ambiguous topics carry descriptions so that similar names ("Networks" in the
console vs "Networking" requirements) can be told apart. Pages outside the
small built-in content set are fetched live with ``curl_docs``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional

from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.tools.base import ToolContext, ToolSpec, operation_schema, optional_str, prop, require_str, to_json

logger = logging.getLogger("Slide.tools.docs")

DOCS_BASE_URL = "https://docs.slide.tech/"
OPENAPI_URL = "http://api.slide.tech/openapi.json"
OPENAPI_TIMEOUT = 10.0
PAGE_TIMEOUT = 15.0
PREVIEW_RADIUS = 50

SECTIONS: Dict[str, List[str]] = {
    "Getting Started": [
        "Introduction to Slide",
        "Quick Start Guide",
        "Installation",
        "Initial Setup",
        "First Backup",
    ],
    "Slide Console": [
        "Dashboard Overview",
        "Protected Systems",
        "Slide Boxes",
        "Snapshots",
        "Restores",
        "Alerts",
        "Users",
        "Clients",
        "Networks (Managing Networks)",
        "My Settings",
    ],
    "Product": [
        "Backups",
        "Slide Agent",
        "Networking (Requirements)",
        "Product Specifications",
        "System Requirements",
        "Security Features",
    ],
    "Billing": ["Quotes", "Subscriptions", "Invoices", "Payment Methods", "Billing Overview"],
    "API": ["API Overview", "Authentication", "Endpoints", "Rate Limits", "Examples", "SDKs and Libraries"],
    "Troubleshooting": [
        "Common Issues",
        "Error Codes",
        "Performance Issues",
        "Network Problems",
        "Agent Issues",
        "Restore Problems",
    ],
    "Best Practices": [
        "Backup Strategies",
        "Retention Policies",
        "Network Configuration",
        "Security Recommendations",
        "Performance Optimization",
    ],
}

SECTION_DESCRIPTIONS = {
    "Getting Started": "Initial setup guides and tutorials for new users getting started with Slide backup solutions",
    "Slide Console": (
        "Web console interface documentation - how to manage and configure your Slide infrastructure through the "
        "UI. Includes managing networks on Slide devices/cloud"
    ),
    "Product": (
        "Technical product documentation including system requirements, networking prerequisites, and core "
        "product features"
    ),
    "Billing": "Billing, subscription management, quotes, invoices, and payment-related documentation",
    "API": "Developer documentation for the Slide API - endpoints, authentication, examples, and SDKs",
    "Troubleshooting": "Common issues, error codes, and problem-solving guides for various Slide components",
    "Best Practices": (
        "Recommended approaches for backup strategies, retention, security, and performance optimization"
    ),
}

TOPIC_DESCRIPTIONS = {
    "Networks (Managing Networks)": (
        "How to create, configure, and manage virtual networks on Slide devices and in the Slide cloud through "
        "the console"
    ),
    "Networking (Requirements)": (
        "Network infrastructure requirements, firewall rules, port configurations, and connectivity prerequisites "
        "for using Slide devices"
    ),
    "Backups": "Core backup functionality - types of backups, backup processes, scheduling, and verification",
    "Restores": "How to restore data from backups - file-level, image-level, and bare metal restore procedures",
    "Alerts": "Configuring and managing system alerts, notifications, and monitoring thresholds",
    "Users": "User management within the Slide console - creating users, permissions, and access control",
    "Clients": "Managing client organizations and multi-tenancy features in Slide",
}

CONTENT = {
    "api_authentication": """# API Authentication

The Slide API uses API keys for authentication. All API requests must include your API key in the Authorization header.

## Getting Your API Key
1. Log into the Slide Console
2. Navigate to My Settings > API Keys
3. Click "Generate New API Key"
4. Copy and securely store your API key

## Using Your API Key
Include your API key in all API requests:
- Header: Authorization: Bearer YOUR_API_KEY

## Security Best Practices
- Never share your API key
- Rotate keys regularly
- Use environment variables to store keys
- Restrict API key permissions when possible""",
    "backup_overview": """# Backups Overview

Slide provides automated, secure backups for your systems with the following features:

## Key Features
- Incremental backups to minimize bandwidth
- End-to-end encryption
- Flexible scheduling options
- Multiple retention policies
- Point-in-time recovery

## Backup Process
1. Agent scans for changes
2. Data is encrypted locally
3. Compressed data is transmitted
4. Backup is verified and stored
5. Retention policies are applied""",
    "restore_process": """# Restore Process

Slide offers multiple restore options to meet different recovery needs.

## Restore Types
1. **File-Level Restore**: Restore individual files or folders
2. **Image-Level Restore**: Full system restore
3. **Virtual Machine Restore**: Boot a snapshot as a virtual machine

## File Restore Steps
1. Navigate to Restores in the console
2. Select the snapshot to restore from
3. Browse and select files/folders
4. Download the files you need

## Best Practices
- Test restores regularly
- Document restore procedures
- Keep network configurations updated""",
    "snapshot_management": """# Snapshot Management

Snapshots are point-in-time copies of your protected systems.

## Understanding Snapshots
- Created after each successful backup
- Immutable once created
- Contain full system state at backup time
- Support instant recovery

## Retention Policies
- Daily snapshots: Keep for X days
- Weekly snapshots: Keep for Y weeks
- Monthly snapshots: Keep for Z months
- Custom policies available

## Best Practices
- Regular snapshot verification
- Appropriate retention periods
- Monitor storage usage""",
}

API_FALLBACK = {
    "base_url": "https://api.slide.tech/v1",
    "authentication": {"type": "Bearer Token", "header": "Authorization: Bearer YOUR_API_KEY"},
    "common_endpoints": {
        "agents": "/agent - Agent management",
        "backups": "/backup - Backup operations",
        "snapshots": "/snapshot - Snapshot management",
        "restores": "/restore - Restore operations",
        "devices": "/device - Device management",
        "clients": "/client - Client management",
        "networks": "/network - Network configuration",
        "alerts": "/alert - Alert management",
    },
}


def _slug(text: str, sep: str) -> str:
    return text.lower().replace(" ", sep)


def section_for_topic(topic: str) -> str:
    wanted = topic.lower()
    for section, topics in SECTIONS.items():
        if any(entry.lower() == wanted for entry in topics):
            return section
    return "General"


def content_preview(content: str, query: str) -> str:
    index = content.lower().find(query.lower())
    if index == -1:
        return ""
    start = max(0, index - PREVIEW_RADIUS)
    end = min(len(content), index + len(query) + PREVIEW_RADIUS)
    preview = content[start:end]
    if start > 0:
        preview = "..." + preview
    if end < len(content):
        preview += "..."
    return preview.replace("\n", " ")


def search(query: str) -> List[Dict[str, Any]]:
    """Case-insensitive substring search over section names, topic names and built-in content."""
    needle = query.lower()
    results: List[Dict[str, Any]] = []
    for section, topics in SECTIONS.items():
        for topic in topics:
            if needle in section.lower() or needle in topic.lower():
                match = {
                    "section": section,
                    "section_description": SECTION_DESCRIPTIONS[section],
                    "topic": topic,
                    "type": "topic_match",
                }
                if topic in TOPIC_DESCRIPTIONS:
                    match["topic_description"] = TOPIC_DESCRIPTIONS[topic]
                results.append(match)
    for key, content in CONTENT.items():
        if needle in content.lower():
            first_line = content.split("\n", 1)[0]
            results.append(
                {
                    "content_key": key,
                    "title": first_line[2:] if first_line.startswith("# ") else "Unknown",
                    "type": "content_match",
                    "preview": content_preview(content, needle),
                }
            )
    return results


class _DocsPageExtractor(HTMLParser):
    """Collects page text, skipping chrome elements and preferring the article body."""

    SKIP_TAGS = ("script", "style", "nav", "header", "footer")
    NOISE_CLASSES = ("md-search", "md-dialog", "md-sidebar")
    MAIN_CLASS = "md-content__inner"

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._main: List[str] = []
        self._skip_tag: Optional[str] = None
        self._skip_depth = 0
        self._main_tag: Optional[str] = None
        self._main_depth = 0

    def handle_starttag(self, tag, attrs):
        if self._skip_tag is not None:
            if tag == self._skip_tag:
                self._skip_depth += 1
            return
        classes = dict(attrs).get("class") or ""
        if tag in self.SKIP_TAGS or any(classes.startswith(name) for name in self.NOISE_CLASSES):
            self._skip_tag = tag
            self._skip_depth = 1
            return
        if self._main_tag is not None:
            if tag == self._main_tag:
                self._main_depth += 1
        elif self.MAIN_CLASS in classes.split():
            self._main_tag = tag
            self._main_depth = 1

    def handle_endtag(self, tag):
        if self._skip_tag is not None:
            if tag == self._skip_tag:
                self._skip_depth -= 1
                if self._skip_depth == 0:
                    self._skip_tag = None
            return
        if self._main_tag is not None and tag == self._main_tag and self._main_depth > 0:
            self._main_depth -= 1

    def handle_data(self, data):
        if self._skip_tag is not None:
            return
        stripped = " ".join(data.split())
        if not stripped:
            return
        self._parts.append(stripped)
        if self._main_depth > 0:
            self._main.append(stripped)

    def get_text(self) -> str:
        return "\n".join(self._main or self._parts)


def clean_html(html: str) -> str:
    parser = _DocsPageExtractor()
    parser.feed(html)
    parser.close()
    return parser.get_text()


def list_sections(ctx: ToolContext, args: Dict[str, Any]) -> str:
    sections = [
        {"name": name, "description": SECTION_DESCRIPTIONS[name], "topic_count": len(topics)}
        for name, topics in SECTIONS.items()
    ]
    return to_json(
        {
            "sections": sections,
            "_metadata": {
                "description": "Available documentation sections from docs.slide.tech with contextual descriptions",
                "usage": (
                    "Use 'get_topics' operation to see topics within a section. Pay attention to descriptions to "
                    "choose the right section."
                ),
                "note": "Some sections have similar names but different purposes - check descriptions carefully",
            },
        }
    )


def get_topics(ctx: ToolContext, args: Dict[str, Any]) -> str:
    section = require_str(args, "section")
    if section not in SECTIONS:
        raise ToolError(f"section '{section}' not found")
    topics = []
    for topic in SECTIONS[section]:
        entry = {"name": topic}
        if topic in TOPIC_DESCRIPTIONS:
            entry["description"] = TOPIC_DESCRIPTIONS[topic]
        topics.append(entry)
    return to_json(
        {
            "section": section,
            "section_description": SECTION_DESCRIPTIONS[section],
            "topics": topics,
            "_metadata": {
                "description": f"Topics available in the '{section}' section",
                "usage": "Use 'get_content' operation to retrieve specific topic content",
                "note": "Topics with descriptions have been clarified to avoid ambiguity",
            },
        }
    )


def search_docs(ctx: ToolContext, args: Dict[str, Any]) -> str:
    query = require_str(args, "query").lower()
    results = search(query)
    return to_json(
        {
            "query": query,
            "results": results,
            "result_count": len(results),
            "_metadata": {
                "description": "Search results from Slide documentation with contextual information",
                "note": "Results include section and topic descriptions to help identify the correct documentation",
            },
        }
    )


def get_content(ctx: ToolContext, args: Dict[str, Any]) -> str:
    topic = require_str(args, "topic")
    content = CONTENT.get(_slug(topic, "_"))
    if content is not None:
        return to_json({"topic": topic, "content": content, "_metadata": {"source": "docs.slide.tech", "format": "markdown"}})

    topic_path = _slug(topic, "-")
    section_path = _slug(section_for_topic(topic), "-")
    return to_json(
        {
            "topic": topic,
            "error": "Content not available in local cache",
            "suggestion": {
                "operation": "curl_docs",
                "description": "Use the curl_docs operation to fetch live content from docs.slide.tech",
                "possible_paths": [f"{topic_path}/", f"{section_path}/{topic_path}/"],
                "example": f'Use: {{"operation": "curl_docs", "path": "{topic_path}/"}}',
            },
            "_metadata": {"note": "Use curl_docs to fetch specific pages from docs.slide.tech"},
        }
    )


def _api_reference_fallback(endpoint: Optional[str]) -> Dict[str, Any]:
    reference: Dict[str, Any] = dict(API_FALLBACK)
    reference["_metadata"] = {
        "description": "Basic API reference (fallback - OpenAPI spec unavailable)",
        "docs_url": "https://docs.slide.tech/api",
        "openapi_url": OPENAPI_URL,
        "note": "Use slide_* tools for direct API access with proper authentication",
    }
    if endpoint:
        reference["endpoint_details"] = (
            f"For detailed information about the '{endpoint}' endpoint, use the appropriate slide_* tool or visit "
            f"https://docs.slide.tech/api/{endpoint}"
        )
    return reference


def get_api_reference(ctx: ToolContext, args: Dict[str, Any]) -> str:
    endpoint = optional_str(args, "endpoint")
    try:
        response = ctx.client.fetch_text(OPENAPI_URL, timeout=OPENAPI_TIMEOUT)
    except SlideError as exc:
        logger.info("OpenAPI fetch failed, using fallback reference: %s", exc)
        return to_json(_api_reference_fallback(endpoint))
    if response.status_code != 200:
        logger.info("OpenAPI fetch returned HTTP %d, using fallback reference", response.status_code)
        return to_json(_api_reference_fallback(endpoint))
    try:
        document = response.json()
    except ValueError:
        logger.info("OpenAPI document is not valid JSON, using fallback reference")
        return to_json(_api_reference_fallback(endpoint))
    return to_json(
        {
            "openapi_spec": document,
            "_metadata": {
                "source": OPENAPI_URL,
                "description": "Complete OpenAPI 3.0 specification for the Slide API",
                "usage_notes": [
                    "This is the authoritative API documentation",
                    "All endpoints, parameters, and schemas are defined here",
                    "Use the slide_* tools to make actual API calls",
                    "Authentication is handled automatically by the slide_* tools",
                ],
            },
        }
    )


def docs_url(path: str) -> str:
    # absolute URLs and "user@host" prefixes are refused
    if "://" in path or "@" in path.lstrip("/").split("/", 1)[0]:
        raise ToolError("invalid path: only docs.slide.tech URLs are allowed")
    return DOCS_BASE_URL + path.lstrip("/")


def curl_docs(ctx: ToolContext, args: Dict[str, Any]) -> str:
    url = docs_url(require_str(args, "path"))
    try:
        response = ctx.client.fetch_text(url, timeout=PAGE_TIMEOUT)
    except SlideError as exc:
        raise SlideError(f"failed to fetch content from {url}: {exc}") from exc
    if response.status_code != 200:
        raise SlideError(f"HTTP {response.status_code} error fetching {url}")
    return to_json(
        {
            "url": url,
            "status": response.status_code,
            "content": clean_html(response.text),
            "_metadata": {
                "source": "docs.slide.tech",
                "fetched_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "content_type": response.headers.get("Content-Type", ""),
                "processing_note": "HTML has been reduced to page text to save context window space",
            },
        }
    )


OPERATIONS = {
    "list_sections": list_sections,
    "get_topics": get_topics,
    "search_docs": search_docs,
    "get_content": get_content,
    "get_api_reference": get_api_reference,
    "curl_docs": curl_docs,
}

TOOL = ToolSpec(
    name="slide_docs",
    description=(
        "Access Slide documentation and API reference. Browse sections and topics from docs.slide.tech (with "
        "descriptions that disambiguate similar names), search across the documentation, retrieve the complete "
        "OpenAPI specification, and fetch live pages from docs.slide.tech with 'curl_docs'. Start with "
        "'list_sections' or 'search_docs'; when 'get_content' reports that content is not cached, use the "
        "suggested 'curl_docs' path. Use the slide_* tools for actual API calls."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            "section": prop("string", "Documentation section name (for get_topics operation)"),
            "topic": prop("string", "Specific topic to retrieve content for (for get_content operation)"),
            "query": prop("string", "Search query to find relevant documentation (for search_docs operation)"),
            "endpoint": prop(
                "string",
                "Specific API endpoint to get reference for (optional for get_api_reference). Only used when the "
                "OpenAPI specification cannot be fetched.",
            ),
            "path": prop(
                "string",
                "The path to fetch from docs.slide.tech (e.g., 'getting-started/', 'backups/', 'networks/'). "
                "Required for curl_docs operation. Do not include the domain.",
            ),
        },
        {
            "get_topics": ["section"],
            "search_docs": ["query"],
            "get_content": ["topic"],
            "curl_docs": ["path"],
        },
    ),
    operations=OPERATIONS,
)
