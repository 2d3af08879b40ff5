"""
Shared data models for the reMarkable cloud client.

Contains the Parent reference, the Document record as served by the
document-storage API, and the RemarkableClientProtocol interface the
upload protocol talks to.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable
from uuid import UUID

from rm_cloud.errors import EncodingError

# Wire values of the Type discriminator
DOCUMENT_TYPE = "DocumentType"
COLLECTION_TYPE = "CollectionType"

TRASH_WIRE = "trash"

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)


@runtime_checkable
class RemarkableClientProtocol(Protocol):
    """What the upload protocol needs from a client.

    Token handling, retries and host discovery all live behind these two
    calls. ``request`` must raise TransportError when no response arrives.
    """

    def storage_url(self, path: str) -> str: ...
    def request(self, method: str, url: str, **kwargs) -> Any: ...


class DocType(str, Enum):
    """Type discriminator sent to and received from the storage API."""

    NOTEBOOK = DOCUMENT_TYPE
    FOLDER = COLLECTION_TYPE


def parse_uuid(value: Union[str, UUID]) -> UUID:
    """Parse a canonical UUID string, raising EncodingError on bad input."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise EncodingError(f"Not a valid document id: {value!r}")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse the RFC 3339 timestamps the API emits.

    The server sends up to nine fractional digits; datetime keeps six.
    """
    if not value:
        return None
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise EncodingError(f"Invalid timestamp: {value!r}")

    text = match.group("base")
    frac = match.group("frac")
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    tz = match.group("tz")
    if tz is None or tz == "Z":
        text += "+00:00"
    else:
        text += tz if ":" in tz else f"{tz[:3]}:{tz[3:]}"

    try:
        return datetime.fromisoformat(text).astimezone(timezone.utc)
    except ValueError:
        raise EncodingError(f"Invalid timestamp: {value!r}")


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the storage API expects (UTC, ``Z`` suffix)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ParentKind(str, Enum):
    ROOT = "root"
    TRASH = "trash"
    NODE = "node"


@dataclass(frozen=True)
class Parent:
    """Where a document lives: the root, the trash, or inside a folder."""

    kind: ParentKind
    id: Optional[UUID] = None

    def __post_init__(self):
        if (self.kind is ParentKind.NODE) != (self.id is not None):
            raise ValueError("Only NODE parents carry an id")

    @classmethod
    def node(cls, parent_id: Union[str, UUID]) -> "Parent":
        return cls(ParentKind.NODE, parse_uuid(parent_id))

    @property
    def is_root(self) -> bool:
        return self.kind is ParentKind.ROOT

    @property
    def is_trash(self) -> bool:
        return self.kind is ParentKind.TRASH

    def to_wire(self) -> str:
        """Encode as the API's ``Parent`` string."""
        if self.kind is ParentKind.ROOT:
            return ""
        if self.kind is ParentKind.TRASH:
            return TRASH_WIRE
        return str(self.id)

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "Parent":
        """Decode an API ``Parent`` string.

        Raises:
            EncodingError: if the value is neither empty, "trash", nor a UUID
        """
        if not value:
            return ROOT
        if value == TRASH_WIRE:
            return TRASH
        return cls.node(value)

    def __str__(self) -> str:
        return self.to_wire() or "/"


ROOT = Parent(ParentKind.ROOT)
TRASH = Parent(ParentKind.TRASH)


@dataclass(frozen=True)
class Document:
    """A notebook or folder as listed by the document-storage API."""

    id: UUID
    visible_name: str
    parent: Parent = ROOT
    doc_type: str = DOCUMENT_TYPE
    current_page: int = 0
    bookmarked: bool = False
    message: str = ""
    modified_client: Optional[datetime] = None
    blob_url_get: str = ""
    blob_url_get_expires: Optional[datetime] = None
    version: int = 0
    success: bool = True

    @property
    def is_folder(self) -> bool:
        return self.doc_type == COLLECTION_TYPE

    @property
    def is_trashed(self) -> bool:
        return self.parent.is_trash

    @classmethod
    def from_json(cls, record: Dict[str, Any]) -> "Document":
        """Build a Document from one record of the docs listing.

        Raises:
            EncodingError: if the record is not an object or has a bad id,
                parent or timestamp
        """
        if not isinstance(record, dict):
            raise EncodingError(f"Expected a document object, got {type(record).__name__}")
        if "ID" not in record:
            raise EncodingError("Document record has no ID")

        try:
            current_page = int(record.get("CurrentPage") or 0)
            version = int(record.get("Version") or 0)
        except (TypeError, ValueError):
            raise EncodingError(f"Invalid numeric field in document {record['ID']}")

        return cls(
            id=parse_uuid(record["ID"]),
            visible_name=record.get("VissibleName") or "",
            parent=Parent.from_wire(record.get("Parent", "")),
            doc_type=record.get("Type") or DOCUMENT_TYPE,
            current_page=current_page,
            bookmarked=bool(record.get("Bookmarked", False)),
            message=record.get("Message") or "",
            modified_client=parse_timestamp(record.get("ModifiedClient")),
            blob_url_get=record.get("BlobURLGet") or "",
            blob_url_get_expires=parse_timestamp(record.get("BlobURLGetExpires")),
            version=version,
            success=bool(record.get("Success", True)),
        )

    def to_json(self) -> Dict[str, Any]:
        """Inverse of from_json, using the API's field names."""
        return {
            "ID": str(self.id),
            "Version": self.version,
            "Message": self.message,
            "Success": self.success,
            "BlobURLGet": self.blob_url_get,
            "BlobURLGetExpires": (
                format_timestamp(self.blob_url_get_expires) if self.blob_url_get_expires else ""
            ),
            "ModifiedClient": (
                format_timestamp(self.modified_client) if self.modified_client else ""
            ),
            "Type": self.doc_type,
            "VissibleName": self.visible_name,
            "CurrentPage": self.current_page,
            "Bookmarked": self.bookmarked,
            "Parent": self.parent.to_wire(),
        }
