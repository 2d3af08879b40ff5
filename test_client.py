#!/usr/bin/env python3
"""
Tests for the requests-based cloud client and its configuration.
"""

import json
from unittest.mock import Mock, patch
from uuid import uuid4

import pytest
import requests

from rm_cloud.clients.cloud import (
    ClientState,
    RemarkableClient,
    load_client_from_file,
    load_client_from_token,
)
from rm_cloud.errors import (
    AuthenticationError,
    EncodingError,
    RemoteProtocolError,
    TransportError,
)
from rm_cloud.index import DocumentIndex
from rm_cloud.models import Document

HOST = "https://storage.example"

# =============================================================================
# Test Fixtures
# =============================================================================


def http_response(status_code=200, payload=None, text=None, content=b""):
    response = Mock()
    response.status_code = status_code
    if payload is not None:
        response.json.return_value = payload
        response.text = json.dumps(payload)
    else:
        response.json.side_effect = ValueError("No JSON")
        response.text = text if text is not None else ""
    response.content = content
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    state = ClientState(device_token="device", user_token="user", endpoint=HOST)
    return RemarkableClient(state, session=session)


@pytest.fixture
def doc_record():
    return {
        "ID": str(uuid4()),
        "Version": 1,
        "Success": True,
        "VissibleName": "Notes",
        "Type": "DocumentType",
        "Parent": "",
        "ModifiedClient": "2020-01-01T00:00:00Z",
        "BlobURLGet": "https://blobs.example/get?sig=1",
        "BlobURLGetExpires": "2020-01-01T01:00:00Z",
    }


# =============================================================================
# Test Tokens and Discovery
# =============================================================================


class TestTokens:
    """Test device -> user token exchange."""

    def test_renew_token(self, client, session):
        session.post.return_value = http_response(text="fresh-user-token\n")

        assert client.renew_token() == "fresh-user-token"
        assert client.state.user_token == "fresh-user-token"
        headers = session.post.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer device"}

    def test_renew_token_rejected(self, client, session):
        session.post.return_value = http_response(status_code=403)
        with pytest.raises(AuthenticationError, match="HTTP 403"):
            client.renew_token()

    def test_renew_without_device_token(self, session):
        client = RemarkableClient(ClientState(), session=session)
        with pytest.raises(AuthenticationError, match="No device token"):
            client.renew_token()

    def test_renew_network_error(self, client, session):
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(TransportError):
            client.renew_token()


class TestDiscovery:
    """Test storage host discovery."""

    @patch("rm_cloud.clients.cloud._STORAGE_HOST_OVERRIDE", "")
    def test_discover(self, session):
        session.get.return_value = http_response(
            payload={"Status": "OK", "Host": "document-storage.example"}
        )
        client = RemarkableClient(ClientState(device_token="d", user_token="u"), session=session)

        assert client.discover_storage_host() == "https://document-storage.example"
        assert client.storage_url("document-storage/json/2/docs") == (
            "https://document-storage.example/document-storage/json/2/docs"
        )
        session.get.assert_called_once()

    @patch("rm_cloud.clients.cloud._STORAGE_HOST_OVERRIDE", "")
    def test_discover_bad_status(self, session):
        session.get.return_value = http_response(payload={"Status": "Error", "Host": ""})
        client = RemarkableClient(ClientState(), session=session)
        with pytest.raises(RemoteProtocolError, match="storage discovery"):
            client.discover_storage_host()

    @patch("rm_cloud.clients.cloud._STORAGE_HOST_OVERRIDE", "override.example")
    def test_discover_override(self, session):
        client = RemarkableClient(ClientState(), session=session)
        assert client.discover_storage_host() == "https://override.example"
        session.get.assert_not_called()

    def test_storage_url_uses_known_endpoint(self, client, session):
        assert client.storage_url("/a/b") == f"{HOST}/a/b"
        session.get.assert_not_called()


# =============================================================================
# Test Authenticated Requests
# =============================================================================


class TestRequest:
    """Test the authenticated request wrapper."""

    def test_adds_bearer_and_keeps_headers(self, client, session):
        session.request.return_value = http_response()

        client.request("PUT", "https://x", data=b"zip", headers={"Content-Type": ""})

        kwargs = session.request.call_args.kwargs
        assert kwargs["headers"] == {"Content-Type": "", "Authorization": "Bearer user"}
        assert kwargs["data"] == b"zip"
        assert "timeout" in kwargs

    def test_renews_on_401(self, client, session):
        session.request.side_effect = [http_response(status_code=401), http_response()]
        session.post.return_value = http_response(text="new-user")

        response = client.request("GET", "https://x")

        assert response.status_code == 200
        assert session.request.call_count == 2
        retry_headers = session.request.call_args.kwargs["headers"]
        assert retry_headers["Authorization"] == "Bearer new-user"

    def test_renews_when_no_user_token(self, session):
        session.post.return_value = http_response(text="u1")
        session.request.return_value = http_response()
        client = RemarkableClient(ClientState(device_token="d", endpoint=HOST), session=session)

        client.request("GET", "https://x")

        session.post.assert_called_once()

    def test_transport_error(self, client, session):
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(TransportError, match="GET https://x failed"):
            client.request("GET", "https://x")


# =============================================================================
# Test Listing and Download
# =============================================================================


class TestListing:
    """Test the docs listing."""

    def test_list_documents(self, client, session, doc_record):
        session.request.return_value = http_response(payload=[doc_record])

        index = client.list_documents(with_blob=True)

        assert isinstance(index, DocumentIndex)
        assert index.get(doc_record["ID"]).visible_name == "Notes"
        args, kwargs = session.request.call_args
        assert args == ("GET", f"{HOST}/document-storage/json/2/docs")
        assert kwargs["params"] == {"withBlob": "1"}

    def test_list_invalid_json(self, client, session):
        session.request.return_value = http_response(text="<html>oops</html>")
        with pytest.raises(EncodingError):
            client.list_documents()

    def test_list_empty_body(self, client, session):
        session.request.return_value = http_response(text="")
        with pytest.raises(RemoteProtocolError, match="Empty response"):
            client.list_documents()

    def test_list_http_error(self, client, session):
        session.request.return_value = http_response(status_code=500, text="boom")
        with pytest.raises(RemoteProtocolError, match="HTTP 500"):
            client.list_documents()

    def test_get_document_by_id(self, client, session, doc_record):
        session.request.return_value = http_response(payload=[doc_record])

        doc = client.get_document_by_id(doc_record["ID"])

        assert doc.blob_url_get == doc_record["BlobURLGet"]
        params = session.request.call_args.kwargs["params"]
        assert params == {"withBlob": "1", "doc": doc_record["ID"]}

    def test_get_document_by_id_missing(self, client, session):
        session.request.return_value = http_response(payload=[])
        assert client.get_document_by_id(uuid4()) is None

    def test_download(self, client, session, doc_record):
        session.get.return_value = http_response(content=b"PK\x03\x04")

        data = client.download(Document.from_json(doc_record))

        assert data == b"PK\x03\x04"
        assert session.get.call_args[0][0] == doc_record["BlobURLGet"]

    def test_download_fetches_fresh_link(self, client, session, doc_record):
        session.request.return_value = http_response(payload=[doc_record])
        session.get.return_value = http_response(content=b"zip")
        stale = Document.from_json({**doc_record, "BlobURLGet": ""})

        assert client.download(stale) == b"zip"
        session.request.assert_called_once()

    def test_download_http_error(self, client, session, doc_record):
        session.get.return_value = http_response(status_code=403)
        with pytest.raises(RemoteProtocolError, match="HTTP 403"):
            client.download(Document.from_json(doc_record))


# =============================================================================
# Test Client State and Token Loading
# =============================================================================


class TestClientState:
    """Test token parsing and the state file."""

    def test_load_from_json_token(self):
        client = load_client_from_token('{"devicetoken": "dev", "usertoken": "usr"}')
        assert client.device_token == "dev"
        assert client.user_token == "usr"

    def test_load_from_jwt(self):
        client = load_client_from_token("eyJhbGciOiJIUzI1NiJ9.payload.sig")
        assert client.device_token.startswith("eyJ")
        assert client.user_token == ""

    def test_invalid_token(self):
        with pytest.raises(EncodingError, match="Invalid token format"):
            load_client_from_token("garbage")

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "state.json"
        ClientState("dev", "usr", HOST).save(path)

        assert json.loads(path.read_text()) == {
            "devicetoken": "dev",
            "usertoken": "usr",
            "endpoint": HOST,
        }
        assert (path.stat().st_mode & 0o777) == 0o600
        client = load_client_from_file(path)
        assert client.state == ClientState("dev", "usr", HOST)

    def test_missing_file(self, tmp_path):
        with pytest.raises(AuthenticationError, match="Token file not found"):
            load_client_from_file(tmp_path / "nope")


class TestRegistration:
    """Test device registration."""

    @patch("requests.post")
    def test_register_and_get_token(self, mock_post, tmp_path):
        mock_post.return_value = http_response(text="test_device_token_12345")
        state_file = tmp_path / ".rmapi"

        from rm_cloud import api

        with patch.object(api, "REMARKABLE_STATE_FILE", state_file):
            token = api.register_and_get_token("test_code")

        token_data = json.loads(token)
        assert token_data["devicetoken"] == "test_device_token_12345"
        assert "usertoken" in token_data
        assert "webapp-prod.cloud.remarkable.engineering" in mock_post.call_args[0][0]
        assert json.loads(state_file.read_text())["devicetoken"] == "test_device_token_12345"

    @patch("requests.post")
    def test_register_invalid_code(self, mock_post, tmp_path):
        mock_post.return_value = http_response(status_code=400)

        from rm_cloud import api

        with patch.object(api, "REMARKABLE_STATE_FILE", tmp_path / ".rmapi"):
            with pytest.raises(AuthenticationError, match="Registration failed"):
                api.register_and_get_token("invalid_code")


class TestGetClient:
    """Test the client singleton."""

    def test_none_without_token(self, tmp_path):
        from rm_cloud import api

        with patch.object(api, "_client_singleton", None), \
                patch.object(api, "REMARKABLE_TOKEN", None), \
                patch.object(api, "REMARKABLE_STATE_FILE", tmp_path / "missing"):
            assert api.get_client() is None

    def test_from_environment(self):
        from rm_cloud import api

        with patch.object(api, "_client_singleton", None), \
                patch.object(api, "REMARKABLE_TOKEN", '{"devicetoken": "env"}'):
            client = api.get_client()
            assert client.device_token == "env"
            assert api.get_client() is client

    def test_from_state_file(self, tmp_path):
        from rm_cloud import api

        path = tmp_path / "state.json"
        ClientState("dev", "", "").save(path)
        with patch.object(api, "_client_singleton", None), \
                patch.object(api, "REMARKABLE_TOKEN", None), \
                patch.object(api, "REMARKABLE_STATE_FILE", path):
            assert api.get_client().device_token == "dev"

    def test_save_client_state(self, tmp_path):
        from rm_cloud import api

        path = tmp_path / "state.json"
        client = RemarkableClient(ClientState("dev", "usr", HOST), session=Mock())
        with patch.object(api, "REMARKABLE_TOKEN", None), \
                patch.object(api, "REMARKABLE_STATE_FILE", path):
            api.save_client_state(client)
        assert json.loads(path.read_text())["endpoint"] == HOST
