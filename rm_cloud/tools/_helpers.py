"""
Shared helpers and re-exports for MCP tool modules.

Tool modules access commonly-patched names through this module
(e.g., ``_helpers.get_index()``) so that a single ``unittest.mock.patch``
target works for all tools.
"""

import os
from typing import Tuple

from mcp.types import ToolAnnotations

# --- Re-exports (commonly patched in tests) ---

from rm_cloud.api import REMARKABLE_TOKEN, get_client, save_client_state  # noqa: F401
from rm_cloud.errors import AuthenticationError, RemarkableError
from rm_cloud.index import DocumentIndex
from rm_cloud.models import Parent  # noqa: F401
from rm_cloud.paths import find_similar_documents, get_item_path  # noqa: F401
from rm_cloud.responses import describe_document, make_error, make_response  # noqa: F401


def is_compact(compact_output: bool = False) -> bool:
    """Compact mode from the argument or REMARKABLE_COMPACT=1."""
    return compact_output or os.environ.get("REMARKABLE_COMPACT", "") in ("1", "true", "yes")


def get_index() -> Tuple[object, DocumentIndex]:
    """Fetch a fresh document listing.

    Returns:
        Tuple of (client, index)
    """
    client = get_client()
    if client is None:
        raise AuthenticationError("Not authenticated. Run: rm-cloud setup")
    index = client.list_documents()
    save_client_state(client)
    return client, index


def not_found_error(path: str, index: DocumentIndex, what: str = "Document") -> str:
    candidates = [d for d in index if not d.is_trashed]
    similar = find_similar_documents(path, candidates)
    return make_error(
        error_type="not_found",
        message=f"{what} not found: '{path}'",
        suggestion="Try remarkable_browse('/') to list the library.",
        did_you_mean=similar if similar else None,
    )


def remote_error(e: RemarkableError) -> str:
    """Turn a client error into a tool error payload."""
    if isinstance(e, AuthenticationError):
        suggestion = "Run 'rm-cloud setup' to register this device."
    elif e.phase:
        suggestion = (
            f"The upload failed while {e.phase}. A placeholder document may remain "
            "in the cloud; check with remarkable_browse() before retrying."
        )
    else:
        suggestion = "Check the connection with remarkable_status()."
    return make_error(
        error_type=type(e).__name__,
        message=e.message,
        suggestion=suggestion,
        phase=e.phase,
    )


# --- Tool annotations ---

_READ_ONLY = {
    "readOnlyHint": True,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": False,  # Private cloud account, not open world
}

_CREATE = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": False,
    "openWorldHint": False,
}

BROWSE_ANNOTATIONS = ToolAnnotations(title="Browse reMarkable Library", **_READ_ONLY)

INFO_ANNOTATIONS = ToolAnnotations(title="Get reMarkable Document Info", **_READ_ONLY)

STATUS_ANNOTATIONS = ToolAnnotations(title="Check reMarkable Connection", **_READ_ONLY)

MKDIR_ANNOTATIONS = ToolAnnotations(title="Create reMarkable Folder", **_CREATE)

UPLOAD_ANNOTATIONS = ToolAnnotations(title="Upload reMarkable Notebook", **_CREATE)
