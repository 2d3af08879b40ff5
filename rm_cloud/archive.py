"""
Rekeying of reMarkable document archives.

A document archive is a zip whose entries are named after the document id:
``<uuid>.content``, ``<uuid>.pagedata``, ``<uuid>/<page>.rm`` and so on.
When the server assigns an id, every entry name that embeds the old id
must carry the new one before the archive is uploaded.

Rekeying is a plain substring replacement of the old id's canonical string
form over each full entry name. Entry data is copied raw: the stored
(compressed) bytes, CRC and sizes go over unchanged, nothing is inflated
or deflated again.
"""

import io
import logging
import struct
import zipfile
from typing import Union
from uuid import UUID

from rm_cloud.errors import EncodingError, InvalidArchive
from rm_cloud.models import parse_uuid

logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".content"

# Folders have no payload; the service still wants a content entry
EMPTY_CONTENT = b"{}"

# Local file header: signature, versions, flags, method, time, date,
# CRC, sizes, name length, extra length
_LOCAL_HEADER = struct.Struct("<4s2B4HL2L2H")
_LOCAL_HEADER_MAGIC = b"PK\x03\x04"
_NAME_LENGTH = 10
_EXTRA_LENGTH = 11

_DATA_DESCRIPTOR_FLAG = 0x08
_ZIP64_EXTRA_ID = 0x0001


def open_archive(data: bytes) -> zipfile.ZipFile:
    """Open archive bytes held in memory."""
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise InvalidArchive(f"Not a zip archive: {e}")


def find_primary_id(archive: zipfile.ZipFile) -> UUID:
    """Return the document id encoded in the archive's ``.content`` entry.

    Entries are scanned in stored order and the first ``.content`` entry
    decides.

    Raises:
        InvalidArchive: if there is no ``.content`` entry or its name is
            not ``<uuid>.content``
    """
    for info in archive.infolist():
        if info.filename.endswith(CONTENT_SUFFIX):
            id_str = info.filename[: -len(CONTENT_SUFFIX)]
            try:
                return parse_uuid(id_str)
            except EncodingError:
                raise InvalidArchive(f"Content entry name is not <uuid>.content: {info.filename!r}")

    raise InvalidArchive(f"Archive has no {CONTENT_SUFFIX} entry")


def read_raw(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes:
    """Return an entry's data exactly as stored, still compressed.

    Raises:
        InvalidArchive: if the local header is damaged or the data is cut short
    """
    fp = archive.fp
    try:
        fp.seek(info.header_offset)
        header = fp.read(_LOCAL_HEADER.size)
        if len(header) != _LOCAL_HEADER.size:
            raise InvalidArchive(f"Truncated local header for {info.filename!r}")
        fields = _LOCAL_HEADER.unpack(header)
        if fields[0] != _LOCAL_HEADER_MAGIC:
            raise InvalidArchive(f"Bad local header for {info.filename!r}")
        fp.seek(fields[_NAME_LENGTH] + fields[_EXTRA_LENGTH], io.SEEK_CUR)
        data = fp.read(info.compress_size)
    except (OSError, ValueError) as e:
        raise InvalidArchive(f"Cannot read archive entry {info.filename!r}: {e}")

    if len(data) != info.compress_size:
        raise InvalidArchive(f"Truncated data for {info.filename!r}")
    return data


def _without_zip64(extra: bytes) -> bytes:
    # FileHeader() adds its own zip64 record when sizes need one
    kept = bytearray()
    offset = 0
    while offset + 4 <= len(extra):
        header_id, size = struct.unpack_from("<HH", extra, offset)
        if header_id != _ZIP64_EXTRA_ID:
            kept += extra[offset:offset + 4 + size]
        offset += 4 + size
    return bytes(kept)


def _renamed(info: zipfile.ZipInfo, new_name: str) -> zipfile.ZipInfo:
    renamed = zipfile.ZipInfo(new_name, date_time=info.date_time)
    renamed.compress_type = info.compress_type
    renamed.CRC = info.CRC
    renamed.compress_size = info.compress_size
    renamed.file_size = info.file_size
    # Sizes and CRC go in the local header, so no data descriptor follows
    renamed.flag_bits = info.flag_bits & ~_DATA_DESCRIPTOR_FLAG
    renamed.comment = info.comment
    renamed.extra = _without_zip64(info.extra)
    renamed.create_system = info.create_system
    renamed.create_version = info.create_version
    renamed.extract_version = info.extract_version
    renamed.external_attr = info.external_attr
    renamed.internal_attr = info.internal_attr
    return renamed


def _write_raw(target: zipfile.ZipFile, info: zipfile.ZipInfo, data: bytes) -> None:
    info.header_offset = target.fp.tell()
    target.fp.write(info.FileHeader())
    target.fp.write(data)
    target.filelist.append(info)
    target.NameToInfo[info.filename] = info
    target.start_dir = target.fp.tell()


def rekey(new_id: UUID, archive: zipfile.ZipFile) -> bytes:
    """Rebuild the archive with every occurrence of its id replaced by ``new_id``.

    Every entry is renamed, not only the ``.content`` one, and an entry
    name holding the old id several times has all of them replaced. Each
    entry's compressed stream is copied byte for byte, along with its
    compression method, CRC, timestamp and attributes.

    Returns:
        The rebuilt archive as bytes
    """
    current_id = str(find_primary_id(archive))
    replacement = str(new_id)
    if current_id != replacement:
        logger.debug("Rekeying archive %s -> %s", current_id, replacement)

    entries = [
        (_renamed(info, info.filename.replace(current_id, replacement)), read_raw(archive, info))
        for info in archive.infolist()
    ]

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as rebuilt:
        rebuilt.comment = archive.comment
        for info, data in entries:
            _write_raw(rebuilt, info, data)

    return buffer.getvalue()


def rekey_bytes(new_id: UUID, data: bytes) -> bytes:
    """Like rekey, for archive bytes that have not been opened yet."""
    with open_archive(data) as archive:
        return rekey(new_id, archive)


def synthesize_empty(doc_id: Union[str, UUID]) -> bytes:
    """Build the one-entry archive used when creating a folder."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(f"{parse_uuid(doc_id)}{CONTENT_SUFFIX}", EMPTY_CONTENT)
    return buffer.getvalue()
