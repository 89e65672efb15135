"""
Minimal STORE-method ZIP writer.

Last-resort archive path: no compression, no ZIP64, no dependencies beyond
struct. Used when the compression library cannot produce an archive in time.
"""

import struct
import time
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import ZipEntry


LOCAL_HEADER_SIGNATURE = 0x04034B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIR_SIGNATURE = 0x06054B50

_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")

VERSION = 20
UTF8_FLAG = 0x0800
METHOD_STORE = 0

MAX_ENTRIES = 0xFFFF
MAX_SIZE = 0xFFFFFFFF

CRC32_POLYNOMIAL = 0xEDB88320


class ArchiveError(Exception):
    """The archive could not be produced."""


@lru_cache(maxsize=1)
def crc32_table() -> Tuple[int, ...]:
    """Reflected CRC-32 lookup table, built once."""
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ CRC32_POLYNOMIAL if c & 1 else c >> 1
        table.append(c)
    return tuple(table)


def crc32(data: bytes) -> int:
    """Standard CRC-32 (as used by ZIP) of a byte string."""
    table = crc32_table()
    crc = 0xFFFFFFFF
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def dos_datetime(timestamp: Optional[float] = None) -> Tuple[int, int]:
    """MS-DOS (time, date) words for a POSIX timestamp (local time)."""
    t = time.localtime(timestamp)
    year = max(1980, min(t.tm_year, 2107))
    dos_time = (t.tm_hour << 11) | (t.tm_min << 5) | (t.tm_sec // 2)
    dos_date = ((year - 1980) << 9) | (t.tm_mon << 5) | t.tm_mday
    return dos_time, dos_date


def build_store_zip(entries: Sequence[ZipEntry], timestamp: Optional[float] = None) -> bytes:
    """
    Encode entries as an uncompressed ZIP archive.

    Writes one local header plus raw data per entry, then the matching
    central directory and the end-of-central-directory record.

    Args:
        entries: Files to store; paths must be unique
        timestamp: Modification time recorded for every entry (default: now)

    Returns:
        Complete ZIP file bytes

    Raises:
        ArchiveError: On duplicate paths or sizes beyond the non-ZIP64 format
    """
    if len(entries) > MAX_ENTRIES:
        raise ArchiveError(f"too many entries for a plain ZIP: {len(entries)}")

    dos_time, dos_date = dos_datetime(timestamp)
    output = bytearray()
    central: List[bytes] = []
    seen = set()

    for entry in entries:
        name = entry.path.replace("\\", "/").lstrip("/")
        if name in seen:
            raise ArchiveError(f"duplicate archive path: {name}")
        seen.add(name)

        name_bytes = name.encode("utf-8")
        data = entry.data()
        size = len(data)
        offset = len(output)
        if size > MAX_SIZE or offset > MAX_SIZE:
            raise ArchiveError(f"entry too large for a plain ZIP: {name}")
        checksum = crc32(data)

        output += _LOCAL_HEADER.pack(
            LOCAL_HEADER_SIGNATURE, VERSION, UTF8_FLAG, METHOD_STORE,
            dos_time, dos_date, checksum, size, size, len(name_bytes), 0
        )
        output += name_bytes
        output += data

        central.append(
            _CENTRAL_HEADER.pack(
                CENTRAL_HEADER_SIGNATURE, VERSION, VERSION, UTF8_FLAG, METHOD_STORE,
                dos_time, dos_date, checksum, size, size, len(name_bytes),
                0, 0, 0, 0, 0, offset
            ) + name_bytes
        )

    central_offset = len(output)
    central_bytes = b"".join(central)
    if central_offset > MAX_SIZE:
        raise ArchiveError("archive too large for a plain ZIP")
    output += central_bytes
    output += _END_OF_CENTRAL_DIR.pack(
        END_OF_CENTRAL_DIR_SIGNATURE, 0, 0, len(entries), len(entries),
        len(central_bytes), central_offset, 0
    )
    return bytes(output)


def read_central_directory(data: bytes) -> List[Tuple[str, int, int]]:
    """
    Read back the central directory of a ZIP file.

    Returns:
        (name, crc32, local header offset) per entry, in directory order

    Raises:
        ArchiveError: If no valid end-of-central-directory record is found
    """
    eocd = data.rfind(struct.pack("<I", END_OF_CENTRAL_DIR_SIGNATURE))
    if eocd < 0 or eocd + _END_OF_CENTRAL_DIR.size > len(data):
        raise ArchiveError("end of central directory not found")
    _, _, _, _, total, cd_size, cd_offset, _ = _END_OF_CENTRAL_DIR.unpack_from(data, eocd)

    records: List[Tuple[str, int, int]] = []
    position = cd_offset
    for _ in range(total):
        fields = _CENTRAL_HEADER.unpack_from(data, position)
        if fields[0] != CENTRAL_HEADER_SIGNATURE:
            raise ArchiveError(f"bad central directory record at {position}")
        name_length, extra_length, comment_length = fields[10], fields[11], fields[12]
        start = position + _CENTRAL_HEADER.size
        name = data[start:start + name_length].decode("utf-8")
        records.append((name, fields[7], fields[16]))
        position = start + name_length + extra_length + comment_length
    if position - cd_offset != cd_size:
        raise ArchiveError("central directory size mismatch")
    return records


def count_local_headers(data: bytes, records: Iterable[Tuple[str, int, int]]) -> int:
    """Count local file headers referenced by central directory records."""
    count = 0
    for _, _, offset in records:
        if _LOCAL_HEADER.unpack_from(data, offset)[0] == LOCAL_HEADER_SIGNATURE:
            count += 1
    return count
