"""remarkable_status tool: check connection and authentication."""

from rm_cloud.server import mcp
from rm_cloud.tools import _helpers


@mcp.tool(annotations=_helpers.STATUS_ANNOTATIONS)
def remarkable_status(compact_output: bool = False) -> str:
    """
    <usecase>Check connection status and authentication with reMarkable Cloud.</usecase>
    <instructions>
    Returns authentication status, the storage endpoint in use and the
    number of documents and folders in the library.
    </instructions>
    <examples>
    - remarkable_status()
    - remarkable_status(compact_output=True)  # Omit hints
    </examples>
    """
    compact = _helpers.is_compact(compact_output)
    connection_info = "environment variable" if _helpers.REMARKABLE_TOKEN else "state file"

    try:
        client, index = _helpers.get_index()

        folders = sum(1 for d in index if d.is_folder)
        trashed = sum(1 for d in index if d.is_trashed)
        result = {
            "authenticated": True,
            "connection": connection_info,
            "status": "connected",
            "endpoint": client.state.endpoint,
            "document_count": len(index) - folders,
            "folder_count": folders,
            "trashed_count": trashed,
        }
        hint = (
            f"Connected. Found {len(index) - folders} documents in {folders} folders. "
            "Use remarkable_browse() to see your files."
        )
        return _helpers.make_response(result, hint, compact=compact)

    except Exception as e:
        result = {
            "authenticated": False,
            "connection": connection_info,
            "error": str(e),
        }
        hint = "To authenticate: run 'rm-cloud setup' and follow the instructions."
        return _helpers.make_response(result, hint, compact=compact)
