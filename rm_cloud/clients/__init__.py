"""
reMarkable transport backends.

Provides the document-storage client implementation.
"""

from rm_cloud.clients.cloud import (  # noqa: F401
    ClientState,
    RemarkableClient,
    load_client_from_file,
    load_client_from_token,
    register_device,
)
