"""
MCP Tools for reMarkable Cloud access.

browse, info and status only read; mkdir and upload create documents.
"""

# Import tool modules to trigger registration with the MCP server
from rm_cloud.tools import (  # noqa: F401
    browse,
    create,
    info,
    status,
)
