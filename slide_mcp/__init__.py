"""
Slide MCP Server: the Slide backup API exposed as Model Context Protocol tools.
"""

from slide_mcp.api import SlideAPIError, SlideClient, SlideConnectionError, SlideError, ToolError
from slide_mcp.version import SERVER_NAME, __version__

__all__ = [
    "__version__",
    "SERVER_NAME",
    "SlideClient",
    "SlideError",
    "SlideConnectionError",
    "SlideAPIError",
    "ToolError",
]
