from slide_mcp.core.config import ConfigError, FeatureGates, SlideConfig
from slide_mcp.core.policy import ToolPolicy

__all__ = ["ConfigError", "FeatureGates", "SlideConfig", "ToolPolicy"]
