__version__ = "2.3.0"
SERVER_NAME = "slide-mcp-server"
