"""
reMarkable Cloud MCP server initialization.
"""

import logging

from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)


def _build_instructions() -> str:
    """Build server instructions."""
    return """# reMarkable Cloud MCP Server

Browse the document library of a reMarkable Cloud account and create
folders or upload notebooks into it.

## Available Tools

- `remarkable_browse(path, recursive)` - List a folder (use "/" for the root)
- `remarkable_info(path)` - Full metadata of one document or folder
- `remarkable_mkdir(path)` - Create a folder; the parent folder must exist
- `remarkable_upload(file_path, folder, name)` - Upload a notebook archive (.zip)
- `remarkable_status()` - Check connection and diagnose issues

## Notes

- Paths are slash-separated visible names, e.g. "/Work/Meetings".
- Uploads run in three steps (request, upload, confirm). If a step fails the
  error names it; a placeholder document may remain in the cloud.
- The library is fetched fresh on every call.
"""


# Initialize FastMCP server with instructions
mcp = FastMCP("rm-cloud", instructions=_build_instructions())

# Import tools to register them
from rm_cloud import tools  # noqa: E402, F401


def run():
    """Run the MCP server."""
    mcp.run()
