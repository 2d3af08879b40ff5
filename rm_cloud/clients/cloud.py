"""
reMarkable Cloud document-storage client

Talks to the JSON document-storage API (``document-storage/json/2``):
listing documents, downloading blobs, and creating or replacing
documents through the three-step upload protocol in ``rm_cloud.upload``.

Token exchange follows the device/user token scheme: a long-lived device
token is traded for a short-lived user token, renewed on HTTP 401.
"""

import json
import logging
import os
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union
from uuid import UUID, uuid4

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from rm_cloud import upload
from rm_cloud.archive import open_archive
from rm_cloud.errors import (
    AuthenticationError,
    EncodingError,
    RemoteProtocolError,
    TransportError,
)
from rm_cloud.index import DocumentIndex
from rm_cloud.models import Document, Parent

logger = logging.getLogger(__name__)

try:
    _HTTP_TIMEOUT = float(os.environ.get("REMARKABLE_HTTP_TIMEOUT", "60"))
except ValueError:
    logger.warning("Invalid REMARKABLE_HTTP_TIMEOUT value, using default of 60 seconds")
    _HTTP_TIMEOUT = 60.0

# Skip service discovery when set (e.g. "document-storage-production-dot-remarkable-production.appspot.com")
_STORAGE_HOST_OVERRIDE = os.environ.get("REMARKABLE_STORAGE_HOST", "").strip()

# API endpoints
# Note: my.remarkable.com endpoints redirect to doesnotexist.remarkable.com
# So we use webapp-prod.cloud.remarkable.engineering for auth
AUTH_HOST = "https://webapp-prod.cloud.remarkable.engineering"
DEVICE_TOKEN_URL = f"{AUTH_HOST}/token/json/2/device/new"
USER_TOKEN_URL = f"{AUTH_HOST}/token/json/2/user/new"

SERVICE_DISCOVERY_URL = (
    "https://service-manager-production-dot-remarkable-production.appspot.com"
    "/service/json/1/document-storage"
)
SERVICE_DISCOVERY_PARAMS = {
    "environment": "production",
    "group": "auth0|5a68dc51cb30df3877a1d7c4",
    "apiVer": "2",
}

DOCUMENT_LIST_PATH = "document-storage/json/2/docs"

DEFAULT_STATE_FILE = Path.home() / ".rmapi"


@dataclass
class ClientState:
    """Tokens and storage endpoint, persisted between runs."""

    device_token: str = ""
    user_token: str = ""
    endpoint: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ClientState":
        return cls(
            device_token=data.get("devicetoken", ""),
            user_token=data.get("usertoken", ""),
            endpoint=data.get("endpoint", ""),
        )

    def to_json(self) -> Dict[str, str]:
        data = {"devicetoken": self.device_token, "usertoken": self.user_token}
        if self.endpoint:
            data["endpoint"] = self.endpoint
        return data

    @classmethod
    def load(cls, path: Path = DEFAULT_STATE_FILE) -> "ClientState":
        if not path.exists():
            raise AuthenticationError(
                f"Token file not found: {path}\n"
                "Run: rm-cloud setup"
            )
        return cls.from_json(_parse_token_json(path.read_text()))

    def save(self, path: Path = DEFAULT_STATE_FILE) -> None:
        """Write the state as JSON, readable by the owner only."""
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            os.write(fd, json.dumps(self.to_json()).encode())
        finally:
            os.close(fd)


def _parse_token_json(token_data: str) -> Dict[str, Any]:
    try:
        data = json.loads(token_data)
    except json.JSONDecodeError as e:
        raise EncodingError(f"Invalid token JSON: {e}")
    if not isinstance(data, dict):
        raise EncodingError("Token JSON must be an object")
    return data


class RemarkableClient:
    """Client for the reMarkable Cloud document-storage API."""

    def __init__(self, state: Optional[ClientState] = None, session: Optional[requests.Session] = None):
        self.state = state or ClientState()
        self._token_lock = threading.Lock()

        if session is None:
            # Connection-pooling session; only idempotent reads are retried
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=frozenset(["GET", "HEAD"]),
            )
            adapter = HTTPAdapter(
                max_retries=retry_strategy,
                pool_connections=10,
                pool_maxsize=10,
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.headers["User-Agent"] = "rm-cloud"
        self._session = session

    @property
    def device_token(self) -> str:
        return self.state.device_token

    @property
    def user_token(self) -> str:
        return self.state.user_token

    def renew_token(self) -> str:
        """Exchange the device token for a fresh user token."""
        if not self.state.device_token:
            raise AuthenticationError("No device token available. Run: rm-cloud setup")

        headers = {"Authorization": f"Bearer {self.state.device_token}"}

        try:
            response = self._session.post(USER_TOKEN_URL, headers=headers, timeout=30)
        except requests.RequestException as e:
            raise TransportError(f"Network error during token renewal: {e}")

        if response.status_code == 200 and response.text:
            self.state.user_token = response.text.strip()
            logger.debug("Renewed user token")
            return self.state.user_token

        raise AuthenticationError(
            f"Failed to renew user token (HTTP {response.status_code}).\n"
            "Re-authenticate by running: rm-cloud setup"
        )

    def discover_storage_host(self) -> str:
        """Ask the service manager which host serves document storage."""
        if _STORAGE_HOST_OVERRIDE:
            host = _STORAGE_HOST_OVERRIDE
        else:
            try:
                response = self._session.get(
                    SERVICE_DISCOVERY_URL, params=SERVICE_DISCOVERY_PARAMS, timeout=_HTTP_TIMEOUT
                )
            except requests.RequestException as e:
                raise TransportError(f"Network error during storage discovery: {e}")

            try:
                data = response.json()
            except ValueError as e:
                raise EncodingError(
                    f"Invalid JSON from service discovery: {e}\nResponse was: {response.text[:200]}"
                )

            if not isinstance(data, dict) or data.get("Status") != "OK" or not data.get("Host"):
                raise RemoteProtocolError(f"Bad response from storage discovery: {data}")
            host = data["Host"]

        if not host.startswith("http"):
            host = f"https://{host}"
        self.state.endpoint = host.rstrip("/")
        logger.debug("Using storage endpoint %s", self.state.endpoint)
        return self.state.endpoint

    def refresh_state(self) -> None:
        """Renew the user token and rediscover the storage host."""
        self.renew_token()
        self.discover_storage_host()

    def storage_url(self, path: str) -> str:
        if not self.state.endpoint:
            self.discover_storage_host()
        return f"{self.state.endpoint}/{path.lstrip('/')}"

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make an authenticated request using the pooled session.

        Extra keyword arguments go to ``requests.Session.request``. A 401
        triggers one token renewal and a retry.

        Raises:
            TransportError: if no response could be obtained
        """
        if not self.state.user_token:
            self.renew_token()

        extra_headers = kwargs.pop("headers", None) or {}
        kwargs.setdefault("timeout", _HTTP_TIMEOUT)

        def send() -> requests.Response:
            headers = dict(extra_headers)
            headers["Authorization"] = f"Bearer {self.state.user_token}"
            try:
                return self._session.request(method, url, headers=headers, **kwargs)
            except requests.RequestException as e:
                raise TransportError(f"{method} {url} failed: {e}")

        sent_with = self.state.user_token
        response = send()
        logger.debug("%s %s -> HTTP %s", method, url, response.status_code)

        if response.status_code == 401:
            # Token expired, try to renew (thread-safe)
            with self._token_lock:
                # Re-check: another thread may have already renewed
                if sent_with == self.state.user_token:
                    self.renew_token()
            response = send()

        return response

    def list_documents(self, with_blob: bool = False, doc_id: Union[str, UUID, None] = None) -> DocumentIndex:
        """Fetch the flat docs listing and index it by id.

        Args:
            with_blob: Ask for time-limited ``BlobURLGet`` download links
            doc_id: Restrict the listing to a single document
        """
        params = {}
        if with_blob:
            params["withBlob"] = "1"
        if doc_id is not None:
            params["doc"] = str(doc_id)

        response = self.request("GET", self.storage_url(DOCUMENT_LIST_PATH), params=params)
        if response.status_code != 200:
            raise RemoteProtocolError(f"Document listing failed (HTTP {response.status_code})")

        if not response.text or not response.text.strip():
            raise RemoteProtocolError(
                "Empty response from reMarkable API. Your token may have expired.\n"
                "Re-authenticate by running: rm-cloud setup"
            )

        try:
            records = response.json()
        except ValueError as e:
            raise EncodingError(
                f"Invalid JSON from reMarkable API: {e}\nResponse was: {response.text[:200]}"
            )

        index = DocumentIndex.from_json(records)
        logger.debug("Listed %d documents", len(index))
        return index

    def get_document_by_id(self, doc_id: Union[str, UUID]) -> Optional[Document]:
        """Fetch one document with a fresh download link, or None if unknown."""
        return self.list_documents(with_blob=True, doc_id=doc_id).remove(doc_id)

    def download(self, doc: Document) -> bytes:
        """Download a document's archive bytes.

        ``BlobURLGet`` links are single-use and expire, so a fresh link is
        requested first when ``doc`` has none.
        """
        if not doc.blob_url_get:
            fresh = self.get_document_by_id(doc.id)
            if fresh is None or not fresh.blob_url_get:
                raise RemoteProtocolError(f"No download link for document {doc.id}")
            doc = fresh

        try:
            response = self._session.get(doc.blob_url_get, timeout=_HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise TransportError(f"Blob download failed for {doc.id}: {e}")

        if response.status_code != 200:
            raise RemoteProtocolError(
                f"Blob download failed for {doc.id} (HTTP {response.status_code})"
            )
        return response.content

    def download_zip(self, doc: Document) -> zipfile.ZipFile:
        return open_archive(self.download(doc))

    def upload_notebook(
        self,
        doc_id: UUID,
        visible_name: str,
        parent: Parent,
        archive: zipfile.ZipFile,
    ) -> UUID:
        return upload.upload_notebook(self, doc_id, visible_name, parent, archive)

    def create_folder(self, doc_id: UUID, visible_name: str, parent: Parent) -> UUID:
        return upload.create_folder(self, doc_id, visible_name, parent)


def register_device(one_time_code: str) -> Dict[str, str]:
    """
    Register a new device with reMarkable cloud.

    Args:
        one_time_code: Code from https://my.remarkable.com/device/browser/connect

    Returns:
        Dict with devicetoken and usertoken keys
    """
    body = {
        "code": one_time_code,
        "deviceDesc": "desktop-linux",
        "deviceID": str(uuid4()),
    }

    try:
        response = requests.post(DEVICE_TOKEN_URL, json=body, timeout=30)
    except requests.RequestException as e:
        raise TransportError(f"Network error during registration: {e}")

    if response.status_code == 200 and response.text:
        return ClientState(device_token=response.text.strip()).to_json()

    raise AuthenticationError(
        f"Registration failed (HTTP {response.status_code}). This usually means:\n"
        "  1. The code has expired (codes are single-use)\n"
        "  2. The code was already used\n"
        "  3. The code was typed incorrectly\n\n"
        "Get a new code from: https://my.remarkable.com/device/browser/connect"
    )


def load_client_from_token(token_data: str) -> RemarkableClient:
    """
    Create a client from a token string.

    Args:
        token_data: Either:
            - JSON string with devicetoken and optional usertoken/endpoint
            - Raw JWT device token

    Returns:
        Configured RemarkableClient
    """
    token_data = token_data.strip()

    if token_data.startswith("{"):
        return RemarkableClient(ClientState.from_json(_parse_token_json(token_data)))

    # JWT tokens start with "eyJ" (base64 encoded '{"')
    if token_data.startswith("eyJ"):
        return RemarkableClient(ClientState(device_token=token_data))

    raise EncodingError(
        f"Invalid token format. Expected JSON or JWT token.\n"
        f"Token starts with: {token_data[:20]}..."
    )


def load_client_from_file(token_file: Path = DEFAULT_STATE_FILE) -> RemarkableClient:
    """
    Load a client from a token file.

    Args:
        token_file: Path to JSON token file (default: ~/.rmapi)
    """
    return RemarkableClient(ClientState.load(token_file))
