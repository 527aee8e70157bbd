"""
Slide REST API adapter.
"""

from slide_mcp.api.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, SlideClient
from slide_mcp.api.errors import SlideAPIError, SlideConnectionError, SlideError, ToolError

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "SlideClient",
    "SlideError",
    "SlideConnectionError",
    "SlideAPIError",
    "ToolError",
]
