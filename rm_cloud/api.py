"""
reMarkable Cloud client configuration and helpers.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from rm_cloud.clients.cloud import (
    DEFAULT_STATE_FILE,
    ClientState,
    RemarkableClient,
    load_client_from_token,
)

# Configuration - check env var first, then fall back to file
REMARKABLE_TOKEN = os.environ.get("REMARKABLE_TOKEN")
REMARKABLE_STATE_FILE = Path(
    os.environ.get("REMARKABLE_STATE_FILE", "") or DEFAULT_STATE_FILE
).expanduser()

logger = logging.getLogger(__name__)

# --- Singleton client ---
_client_singleton: Optional[RemarkableClient] = None


def get_client() -> Optional[RemarkableClient]:
    """
    Get or initialize the reMarkable API client.

    Uses a singleton pattern so the client is only created once per process.
    The REMARKABLE_TOKEN environment variable wins over the state file.

    Returns:
        The client, or None when no token is configured
    """
    global _client_singleton

    if _client_singleton is not None:
        return _client_singleton

    if REMARKABLE_TOKEN:
        _client_singleton = load_client_from_token(REMARKABLE_TOKEN)
        return _client_singleton

    if not REMARKABLE_STATE_FILE.exists():
        logger.debug("No token in environment and no state file at %s", REMARKABLE_STATE_FILE)
        return None

    _client_singleton = RemarkableClient(ClientState.load(REMARKABLE_STATE_FILE))
    return _client_singleton


def save_client_state(client: RemarkableClient) -> None:
    """Persist renewed tokens and the discovered endpoint to the state file.

    Clients configured through REMARKABLE_TOKEN are left alone.
    """
    if REMARKABLE_TOKEN:
        return
    client.state.save(REMARKABLE_STATE_FILE)
    logger.debug("Saved client state to %s", REMARKABLE_STATE_FILE)


def register_and_get_token(one_time_code: str) -> str:
    """
    Register with reMarkable using a one-time code and return the token JSON.

    The token is also written to the state file.
    Get a code from: https://my.remarkable.com/device/browser/connect
    """
    from rm_cloud.clients.cloud import register_device

    state = ClientState.from_json(register_device(one_time_code))
    state.save(REMARKABLE_STATE_FILE)
    return json.dumps(state.to_json())
