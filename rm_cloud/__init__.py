"""
reMarkable Cloud client

Lists, resolves and uploads documents through the reMarkable Cloud
document-storage API, with an MCP server and a command line on top.
"""

from rm_cloud.archive import find_primary_id, rekey, synthesize_empty
from rm_cloud.errors import (
    AuthenticationError,
    EncodingError,
    InvalidArchive,
    RemarkableError,
    RemoteProtocolError,
    TransportError,
)
from rm_cloud.index import DocumentIndex
from rm_cloud.models import ROOT, TRASH, DocType, Document, Parent
from rm_cloud.upload import UploadDraft, UploadPhase, UploadProtocol, create_folder, upload_notebook

__version__ = "0.1.0"


def get_mcp():
    """Get the MCP server instance. Only imports when called."""
    from rm_cloud.server import mcp

    return mcp


__all__ = [
    "get_mcp",
    "__version__",
    # Model
    "Document",
    "DocType",
    "DocumentIndex",
    "Parent",
    "ROOT",
    "TRASH",
    # Archives
    "find_primary_id",
    "rekey",
    "synthesize_empty",
    # Upload protocol
    "UploadDraft",
    "UploadPhase",
    "UploadProtocol",
    "create_folder",
    "upload_notebook",
    # Errors
    "RemarkableError",
    "AuthenticationError",
    "EncodingError",
    "InvalidArchive",
    "RemoteProtocolError",
    "TransportError",
]
