"""
Upload protocol for creating or replacing a notebook or folder.

The document-storage API needs three calls, strictly in order:

1. ``upload/request``: announce the document and receive a signed PUT URL.
   The server may answer with a different id than the one proposed.
2. PUT the zip archive to that URL, rekeyed to the id the server
   confirmed in step 1.
3. ``upload/update-status``: set name, parent and version so the document
   shows up in listings.

Nothing is rolled back on failure. A slot obtained in step 1 stays on the
server if step 2 or 3 fails; the raised error names the phase so the
caller can retry or clean up.
"""

import dataclasses
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from rm_cloud.archive import rekey, synthesize_empty
from rm_cloud.errors import EncodingError, RemarkableError, RemoteProtocolError
from rm_cloud.models import (
    COLLECTION_TYPE,
    DOCUMENT_TYPE,
    Parent,
    RemarkableClientProtocol,
    format_timestamp,
    parse_timestamp,
    parse_uuid,
)

logger = logging.getLogger(__name__)

UPLOAD_REQUEST_PATH = "document-storage/json/2/upload/request"
UPDATE_STATUS_PATH = "document-storage/json/2/upload/update-status"

INITIAL_VERSION = 1


def _version(record: Dict[str, Any], default: int) -> int:
    try:
        return int(record.get("Version") or default)
    except (TypeError, ValueError):
        raise EncodingError(f"Invalid Version in response: {record.get('Version')!r}")


class UploadPhase(str, Enum):
    REQUESTING = "requesting"
    UPLOADING = "uploading"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadSlot:
    """Answer to an upload request: the id to use and where to PUT the blob."""

    id: UUID
    version: int
    blob_url_put: str
    blob_url_put_expires: Optional[datetime] = None
    message: str = ""
    success: bool = True

    @classmethod
    def from_json(cls, record: Dict[str, Any]) -> "UploadSlot":
        if not isinstance(record, dict) or "ID" not in record:
            raise EncodingError(f"Malformed upload request response: {record!r}")
        return cls(
            id=parse_uuid(record["ID"]),
            version=_version(record, INITIAL_VERSION),
            blob_url_put=record.get("BlobURLPut", ""),
            blob_url_put_expires=parse_timestamp(record.get("BlobURLPutExpires")),
            message=record.get("Message", ""),
            success=bool(record.get("Success", False)),
        )


@dataclass(frozen=True)
class StatusConfirmation:
    id: UUID
    version: int
    message: str = ""
    success: bool = True

    @classmethod
    def from_json(cls, record: Dict[str, Any]) -> "StatusConfirmation":
        if not isinstance(record, dict) or "ID" not in record:
            raise EncodingError(f"Malformed update-status response: {record!r}")
        return cls(
            id=parse_uuid(record["ID"]),
            version=_version(record, 0),
            message=record.get("Message", ""),
            success=bool(record.get("Success", False)),
        )


@dataclass(frozen=True)
class UploadDraft:
    """The document being uploaded, as the client currently knows it.

    Drafts are never mutated: once the server confirms a slot,
    ``with_slot`` returns a new draft carrying the server's id and version.
    """

    id: UUID
    doc_type: str
    visible_name: str
    parent: Parent
    version: int = INITIAL_VERSION

    @property
    def is_folder(self) -> bool:
        return self.doc_type == COLLECTION_TYPE

    def with_slot(self, slot: UploadSlot) -> "UploadDraft":
        return dataclasses.replace(self, id=slot.id, version=slot.version)

    def upload_request(self) -> Dict[str, Any]:
        return {"ID": str(self.id), "Type": self.doc_type, "Version": self.version}

    def update_status_request(self, modified: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "ID": str(self.id),
            "Parent": self.parent.to_wire(),
            "VisibleName": self.visible_name,
            "Type": self.doc_type,
            "Version": self.version,
            "ModifiedClient": format_timestamp(modified or datetime.now(timezone.utc)),
        }


def _json_records(response, what: str) -> List[Any]:
    try:
        records = response.json()
    except ValueError as e:
        raise EncodingError(f"Invalid JSON in {what} response: {e}")
    if not isinstance(records, list):
        raise RemoteProtocolError(f"Expected a JSON array from {what}, got: {records!r}")
    return records


def request_upload_slot(client: RemarkableClientProtocol, draft: UploadDraft) -> UploadSlot:
    """Ask the storage API for an upload slot for ``draft``.

    Raises:
        RemoteProtocolError: empty response list or ``Success`` false
    """
    response = client.request(
        "PUT", client.storage_url(UPLOAD_REQUEST_PATH), json=[draft.upload_request()]
    )
    records = _json_records(response, "upload request")
    logger.debug("Upload request response: %s", records)

    if not records:
        raise RemoteProtocolError("No upload slot in response from reMarkable Cloud")
    if len(records) > 1:
        logger.warning("Expected one upload slot, got %d; using the last one", len(records))

    slot = UploadSlot.from_json(records[-1])
    if not slot.success:
        raise RemoteProtocolError(f"Upload request rejected: {slot.message or records[-1]}")
    if not slot.blob_url_put:
        raise RemoteProtocolError("Upload slot has no BlobURLPut")
    return slot


def upload_archive(client: RemarkableClientProtocol, slot: UploadSlot, archive_bytes: bytes) -> None:
    """PUT the archive to the slot's signed URL.

    The Content-Type header is sent explicitly empty; the blob store
    rejects the signed request otherwise.
    """
    response = client.request(
        "PUT",
        slot.blob_url_put,
        data=archive_bytes,
        headers={"Content-Type": ""},
    )
    if response.status_code != 200:
        raise RemoteProtocolError(
            f"Blob upload failed (HTTP {response.status_code}) for document {slot.id}"
        )


def confirm_upload(
    client: RemarkableClientProtocol,
    draft: UploadDraft,
    modified: Optional[datetime] = None,
) -> StatusConfirmation:
    """Send update-status for ``draft`` and check the single answer.

    Raises:
        RemoteProtocolError: if the response is not exactly one record, or
            the record's ``Success`` is false
    """
    response = client.request(
        "PUT",
        client.storage_url(UPDATE_STATUS_PATH),
        json=[draft.update_status_request(modified)],
    )
    records = _json_records(response, "update-status")
    logger.debug("Update status response: %s", records)

    if len(records) != 1:
        logger.warning("Expected a single update-status response, got %d: %s", len(records), records)
        raise RemoteProtocolError(
            f"Expected a single update-status response, got {len(records)}"
        )

    confirmation = StatusConfirmation.from_json(records[0])
    if not confirmation.success:
        raise RemoteProtocolError(
            f"Failed to update status of {draft.id}: {confirmation.message or records[0]}"
        )
    return confirmation


class UploadProtocol:
    """One upload attempt, moving through the phases in order.

    Usage:
        protocol = UploadProtocol(client, draft)
        confirmed_id = protocol.run(archive)   # archive=None for folders

    ``phase`` is the current phase; after a failure it is FAILED,
    ``failed_phase`` names where it happened and ``failure`` holds the error,
    which is re-raised with its ``phase`` attribute set.
    """

    def __init__(self, client: RemarkableClientProtocol, draft: UploadDraft):
        self.client = client
        self.draft = draft
        self.phase = UploadPhase.REQUESTING
        self.slot: Optional[UploadSlot] = None
        self.confirmation: Optional[StatusConfirmation] = None
        self.failed_phase: Optional[UploadPhase] = None
        self.failure: Optional[RemarkableError] = None

    def _advance(self, phase: UploadPhase) -> None:
        logger.info(
            "Upload %s (%s): %s -> %s",
            self.draft.visible_name, self.draft.id, self.phase.value, phase.value,
        )
        self.phase = phase

    def _fail(self, error: RemarkableError) -> None:
        error.phase = self.phase.value
        self.failed_phase = self.phase
        self.failure = error
        logger.warning(
            "Upload of %s failed while %s: %s",
            self.draft.visible_name, self.phase.value, error.message,
        )
        self.phase = UploadPhase.FAILED

    def _payload(self, archive: Optional[zipfile.ZipFile]) -> bytes:
        if archive is None:
            return synthesize_empty(self.draft.id)
        return rekey(self.draft.id, archive)

    def run(self, archive: Optional[zipfile.ZipFile] = None) -> UUID:
        """Run all phases and return the id the server confirmed."""
        if self.phase is not UploadPhase.REQUESTING:
            raise RuntimeError(f"Upload already ran (phase: {self.phase.value})")

        try:
            self.slot = request_upload_slot(self.client, self.draft)
            if self.slot.id != self.draft.id:
                logger.info("Server assigned id %s instead of %s", self.slot.id, self.draft.id)
            self.draft = self.draft.with_slot(self.slot)
            self._advance(UploadPhase.UPLOADING)

            upload_archive(self.client, self.slot, self._payload(archive))
            self._advance(UploadPhase.CONFIRMING)

            self.confirmation = confirm_upload(self.client, self.draft)
            self._advance(UploadPhase.DONE)
        except RemarkableError as e:
            self._fail(e)
            raise

        return self.confirmation.id


def upload_notebook(
    client: RemarkableClientProtocol,
    doc_id: UUID,
    visible_name: str,
    parent: Parent,
    archive: zipfile.ZipFile,
) -> UUID:
    """Upload a notebook archive; returns the id the server confirmed."""
    draft = UploadDraft(doc_id, DOCUMENT_TYPE, visible_name, parent)
    return UploadProtocol(client, draft).run(archive)


def create_folder(
    client: RemarkableClientProtocol,
    doc_id: UUID,
    visible_name: str,
    parent: Parent,
) -> UUID:
    """Create an empty folder; returns the id the server confirmed."""
    logger.info("Creating folder %s under %s", visible_name, parent)
    draft = UploadDraft(doc_id, COLLECTION_TYPE, visible_name, parent)
    return UploadProtocol(client, draft).run()
