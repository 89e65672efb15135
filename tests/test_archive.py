"""Tests for the STORE writer and the tiered archive encoder."""

import asyncio
import io
import struct
import zipfile
import zlib

import pytest

from docs_md_crawler.archive import (
    ArchiveEncoder,
    ArchiveError,
    ArchiveTier,
    CompressionBackend,
    PayloadType,
    PayloadTypeUnsupportedError,
    ZipfileBackend,
    build_store_zip,
    crc32,
)
from docs_md_crawler.archive.store import count_local_headers, crc32_table, read_central_directory
from docs_md_crawler.models import ZipEntry


ENTRIES = [
    ZipEntry(path="index.md", payload="# Hello\n"),
    ZipEntry(path="guide/Install Guide.md", payload="Ünïcode ✓\n"),
    ZipEntry(path="assets/example.com/logo.png", payload=b"\x89PNG\r\n\x1a\n\x00\x01"),
]


@pytest.mark.parametrize("data", [b"", b"a", b"hello world", bytes(range(256)) * 3])
def test_crc32_matches_zlib(data):
    assert crc32(data) == zlib.crc32(data)


def test_crc32_table_is_cached():
    assert crc32_table() is crc32_table()
    assert crc32_table()[1] == 0x77073096


def test_store_zip_structure():
    data = build_store_zip(ENTRIES, timestamp=0)

    assert data.count(struct.pack("<I", 0x04034B50)) == len(ENTRIES)
    assert data.count(struct.pack("<I", 0x02014B50)) == len(ENTRIES)

    eocd = data.rfind(struct.pack("<I", 0x06054B50))
    _, _, _, on_disk, total, _, _, _ = struct.unpack_from("<IHHHHIIH", data, eocd)
    assert on_disk == total == len(ENTRIES)

    records = read_central_directory(data)
    assert [name for name, _, _ in records] == [entry.path for entry in ENTRIES]
    assert count_local_headers(data, records) == len(ENTRIES)


def test_store_zip_reads_back_with_zipfile():
    data = build_store_zip(ENTRIES)
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.testzip() is None
        assert archive.namelist() == [entry.path for entry in ENTRIES]
        assert archive.read("guide/Install Guide.md").decode("utf-8") == "Ünïcode ✓\n"
        assert archive.getinfo("index.md").compress_type == zipfile.ZIP_STORED


def test_store_zip_empty_archive():
    data = build_store_zip([])
    assert len(data) == 22
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == []


def test_store_zip_rejects_duplicate_paths():
    with pytest.raises(ArchiveError):
        build_store_zip([ZipEntry("a.md", "1"), ZipEntry("a.md", "2")])


class HangingBackend(CompressionBackend):
    def __init__(self):
        self.calls = []

    async def generate(self, entries, payload_type):
        self.calls.append(payload_type)
        await asyncio.Event().wait()


class UnsupportedThenHangBackend(CompressionBackend):
    def __init__(self):
        self.calls = []

    async def generate(self, entries, payload_type):
        self.calls.append(payload_type)
        if payload_type is PayloadType.BYTES:
            raise PayloadTypeUnsupportedError(payload_type)
        await asyncio.Event().wait()


class BytesUnsupportedBackend(ZipfileBackend):
    def __init__(self):
        super().__init__()
        self.calls = []

    async def generate(self, entries, payload_type):
        self.calls.append(payload_type)
        if payload_type is PayloadType.BYTES:
            raise PayloadTypeUnsupportedError(payload_type)
        return await super().generate(entries, payload_type)


class BrokenBackend(CompressionBackend):
    async def generate(self, entries, payload_type):
        raise RuntimeError("library exploded")


def names(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.namelist()


@pytest.mark.asyncio
async def test_primary_tier_compresses():
    encoder = ArchiveEncoder()
    data = await encoder.pack(ENTRIES)

    assert encoder.last_tier == ArchiveTier.PRIMARY
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.getinfo("index.md").compress_type == zipfile.ZIP_DEFLATED
        assert archive.read("assets/example.com/logo.png") == ENTRIES[2].payload


@pytest.mark.asyncio
async def test_primary_timeout_goes_straight_to_manual():
    backend = HangingBackend()
    encoder = ArchiveEncoder(backend, deadline=0.05)

    data = await encoder.pack(ENTRIES)

    assert backend.calls == [PayloadType.BYTES]
    assert encoder.last_tier == ArchiveTier.MANUAL
    assert names(data) == [entry.path for entry in ENTRIES]


@pytest.mark.asyncio
async def test_unsupported_primary_then_hanging_secondary_uses_manual():
    backend = UnsupportedThenHangBackend()
    encoder = ArchiveEncoder(backend, deadline=0.05)

    data = await encoder.pack(ENTRIES)

    assert backend.calls == [PayloadType.BYTES, PayloadType.BYTEARRAY]
    assert encoder.last_tier == ArchiveTier.MANUAL
    records = read_central_directory(data)
    assert len(records) == len(ENTRIES)


@pytest.mark.asyncio
async def test_unsupported_primary_uses_alternate_payload_type():
    backend = BytesUnsupportedBackend()
    encoder = ArchiveEncoder(backend)

    data = await encoder.pack(ENTRIES)

    assert backend.calls == [PayloadType.BYTES, PayloadType.BYTEARRAY]
    assert encoder.last_tier == ArchiveTier.SECONDARY
    assert isinstance(data, bytes)
    assert names(data) == [entry.path for entry in ENTRIES]


@pytest.mark.asyncio
async def test_backend_failure_falls_back_to_manual():
    encoder = ArchiveEncoder(BrokenBackend())
    data = await encoder.pack(ENTRIES)
    assert encoder.last_tier == ArchiveTier.MANUAL
    assert names(data) == [entry.path for entry in ENTRIES]


@pytest.mark.asyncio
async def test_manual_failure_is_fatal():
    encoder = ArchiveEncoder(BrokenBackend())
    with pytest.raises(ArchiveError):
        await encoder.pack([ZipEntry("a.md", "1"), ZipEntry("a.md", "2")])


def test_payload_type_alternate():
    assert PayloadType.BYTES.alternate is PayloadType.BYTEARRAY
    assert PayloadType.BYTEARRAY.alternate is PayloadType.BYTES
