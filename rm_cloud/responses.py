"""
Response helpers for MCP tools.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from rm_cloud.models import Document, Parent


class CloudJSONEncoder(json.JSONEncoder):
    """JSON encoder for datetimes, ids and parents."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, Parent):
            return obj.to_wire()
        return super().default(obj)


def describe_document(doc: Document, path: Optional[str] = None) -> Dict[str, Any]:
    """Summarize a document for tool output."""
    data: Dict[str, Any] = {
        "id": doc.id,
        "name": doc.visible_name,
        "type": "folder" if doc.is_folder else "document",
        "parent": doc.parent,
        "modified": doc.modified_client,
    }
    if path is not None:
        data["path"] = path
    if not doc.is_folder:
        data["current_page"] = doc.current_page
        data["bookmarked"] = doc.bookmarked
    return data


def make_response(data: Dict[str, Any], hint: str, compact: bool = False) -> str:
    """Create a JSON response with a hint for the model."""
    if not compact:
        data["_hint"] = hint
    return json.dumps(data, indent=2, cls=CloudJSONEncoder)


def make_error(
    error_type: str,
    message: str,
    suggestion: str,
    did_you_mean: Optional[List[str]] = None,
    phase: Optional[str] = None,
) -> str:
    """Create an error response; ``phase`` names the failed upload step."""
    error_body: Dict[str, Any] = {"type": error_type, "message": message}
    if phase:
        error_body["phase"] = phase
    error_body["suggestion"] = suggestion
    if did_you_mean:
        error_body["did_you_mean"] = did_you_mean
    return json.dumps({"_error": error_body}, indent=2, cls=CloudJSONEncoder)
