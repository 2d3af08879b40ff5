#!/usr/bin/env python3
"""
Tests for archive rekeying.
"""

import io
import struct
import zipfile
from uuid import UUID, uuid4

import pytest

from rm_cloud.archive import (
    find_primary_id,
    open_archive,
    rekey,
    rekey_bytes,
    synthesize_empty,
)
from rm_cloud.errors import InvalidArchive

OLD_ID = UUID("11111111-2222-4333-8444-555555555555")
NEW_ID = UUID("99999999-8888-4777-8666-555555555555")

# =============================================================================
# Test Fixtures
# =============================================================================


def build_zip(entries, compression=zipfile.ZIP_DEFLATED, compresslevel=None):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression, compresslevel=compresslevel) as zf:
        for name, payload in entries:
            zf.writestr(name, payload)
    return buffer.getvalue()


def entries_of(data):
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return [(info.filename, zf.read(info)) for info in zf.infolist()]


def raw_streams(data):
    """Each entry's stored bytes, sliced straight out of the archive."""
    streams = []
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            name_len, extra_len = struct.unpack_from("<HH", data, info.header_offset + 26)
            start = info.header_offset + 30 + name_len + extra_len
            streams.append(data[start:start + info.compress_size])
    return streams


@pytest.fixture
def notebook_entries():
    """A notebook archive the way the tablet lays it out."""
    return [
        (f"{OLD_ID}.pagedata", b"Blank\nBlank\n"),
        (f"{OLD_ID}.content", b'{"fileType": "notebook", "pageCount": 2}'),
        (f"{OLD_ID}/0.rm", bytes(range(256))),
        (f"{OLD_ID}/1.rm", b"\x00\x01\x02version=5"),
        (f"{OLD_ID}.thumbnails/0.jpg", b"\xff\xd8\xff\xe0"),
    ]


@pytest.fixture
def notebook_zip(notebook_entries):
    return build_zip(notebook_entries)


# =============================================================================
# Test find_primary_id
# =============================================================================


class TestFindPrimaryId:
    """Test discovery of the archive's document id."""

    def test_finds_content_entry(self, notebook_zip):
        with open_archive(notebook_zip) as archive:
            assert find_primary_id(archive) == OLD_ID

    def test_first_content_entry_wins(self):
        other = uuid4()
        data = build_zip([(f"{OLD_ID}.content", b"{}"), (f"{other}.content", b"{}")])
        with open_archive(data) as archive:
            assert find_primary_id(archive) == OLD_ID

    def test_no_content_entry(self):
        data = build_zip([(f"{OLD_ID}.pagedata", b"")])
        with open_archive(data) as archive:
            with pytest.raises(InvalidArchive, match="no .content entry"):
                find_primary_id(archive)

    def test_unparseable_content_name(self):
        data = build_zip([("notebook.content", b"{}")])
        with open_archive(data) as archive:
            with pytest.raises(InvalidArchive, match="not <uuid>.content"):
                find_primary_id(archive)

    def test_not_a_zip(self):
        with pytest.raises(InvalidArchive, match="Not a zip"):
            open_archive(b"definitely not a zip")


# =============================================================================
# Test rekey
# =============================================================================


class TestRekey:
    """Test renaming of archive entries to a new id."""

    def test_every_entry_renamed(self, notebook_zip, notebook_entries):
        with open_archive(notebook_zip) as archive:
            rebuilt = rekey(NEW_ID, archive)

        expected = [
            (name.replace(str(OLD_ID), str(NEW_ID)), payload)
            for name, payload in notebook_entries
        ]
        assert entries_of(rebuilt) == expected

    def test_primary_id_is_new_id(self, notebook_zip):
        rebuilt = rekey_bytes(NEW_ID, notebook_zip)
        with open_archive(rebuilt) as archive:
            assert find_primary_id(archive) == NEW_ID

    def test_identity_rekey_keeps_content(self, notebook_zip):
        rebuilt = rekey_bytes(OLD_ID, notebook_zip)
        assert entries_of(rebuilt) == entries_of(notebook_zip)

    def test_all_occurrences_replaced(self):
        data = build_zip(
            [
                (f"{OLD_ID}.content", b"{}"),
                (f"{OLD_ID}/{OLD_ID}-metadata.json", b"[]"),
            ]
        )
        names = [name for name, _ in entries_of(rekey_bytes(NEW_ID, data))]
        assert names == [f"{NEW_ID}.content", f"{NEW_ID}/{NEW_ID}-metadata.json"]

    def test_unrelated_entries_untouched(self):
        data = build_zip([(f"{OLD_ID}.content", b"{}"), ("README", b"hello")])
        assert entries_of(rekey_bytes(NEW_ID, data))[1] == ("README", b"hello")

    def test_compression_and_timestamps_preserved(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            stored = zipfile.ZipInfo(f"{OLD_ID}.content", date_time=(2020, 5, 17, 10, 30, 0))
            stored.compress_type = zipfile.ZIP_STORED
            zf.writestr(stored, b"{}")
            deflated = zipfile.ZipInfo(f"{OLD_ID}/0.rm", date_time=(2021, 1, 2, 3, 4, 6))
            deflated.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(deflated, b"x" * 1000)

        rebuilt = rekey_bytes(NEW_ID, buffer.getvalue())

        with zipfile.ZipFile(io.BytesIO(rebuilt)) as zf:
            infos = zf.infolist()
        assert [i.compress_type for i in infos] == [zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED]
        assert [i.date_time for i in infos] == [(2020, 5, 17, 10, 30, 0), (2021, 1, 2, 3, 4, 6)]

    def test_rekey_without_content_entry_fails(self):
        data = build_zip([("0.rm", b"")])
        with pytest.raises(InvalidArchive):
            rekey_bytes(NEW_ID, data)

    def test_compressed_streams_copied_verbatim(self, notebook_entries):
        # Level 1 streams differ from what a default-level recompression yields
        data = build_zip(notebook_entries + [(f"{OLD_ID}/2.rm", b"stroke " * 200)], compresslevel=1)

        rebuilt = rekey_bytes(NEW_ID, data)

        assert raw_streams(rebuilt) == raw_streams(data)
        with zipfile.ZipFile(io.BytesIO(data)) as before, \
                zipfile.ZipFile(io.BytesIO(rebuilt)) as after:
            assert [i.CRC for i in after.infolist()] == [i.CRC for i in before.infolist()]
            assert [i.file_size for i in after.infolist()] == [
                i.file_size for i in before.infolist()
            ]
            assert after.testzip() is None

    def test_unsupported_compression_is_not_decoded(self):
        data = bytearray(build_zip([(f"{OLD_ID}.content", b"{}")], zipfile.ZIP_STORED))
        # Relabel the entry as Deflate64, which zipfile cannot decompress
        with zipfile.ZipFile(io.BytesIO(bytes(data))) as zf:
            offset = zf.infolist()[0].header_offset
        struct.pack_into("<H", data, offset + 8, 9)
        central = data.find(b"PK\x01\x02")
        struct.pack_into("<H", data, central + 10, 9)

        rebuilt = rekey_bytes(NEW_ID, bytes(data))

        with zipfile.ZipFile(io.BytesIO(rebuilt)) as zf:
            (info,) = zf.infolist()
        assert info.filename == f"{NEW_ID}.content"
        assert info.compress_type == 9
        assert raw_streams(rebuilt) == [b"{}"]

    def test_damaged_local_header(self):
        data = bytearray(build_zip([(f"{OLD_ID}.content", b"{}")]))
        data[0:4] = b"XXXX"
        with pytest.raises(InvalidArchive, match="Bad local header"):
            rekey_bytes(NEW_ID, bytes(data))


# =============================================================================
# Test synthesize_empty
# =============================================================================


class TestSynthesizeEmpty:
    """Test the folder placeholder archive."""

    def test_single_content_entry(self):
        folder_id = uuid4()
        assert entries_of(synthesize_empty(folder_id)) == [(f"{folder_id}.content", b"{}")]

    def test_accepts_string_id(self):
        assert entries_of(synthesize_empty(str(NEW_ID)))[0][0] == f"{NEW_ID}.content"

    def test_primary_id(self):
        with open_archive(synthesize_empty(NEW_ID)) as archive:
            assert find_primary_id(archive) == NEW_ID
