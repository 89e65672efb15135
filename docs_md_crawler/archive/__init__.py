"""
ZIP packaging for exported documentation.
"""

from .encoder import (
    ArchiveEncoder,
    ArchiveTier,
    ArchiveTimeoutError,
    CompressionBackend,
    PayloadType,
    PayloadTypeUnsupportedError,
    ZipfileBackend,
)
from .store import ArchiveError, build_store_zip, crc32

__all__ = [
    "ArchiveEncoder",
    "ArchiveError",
    "ArchiveTier",
    "ArchiveTimeoutError",
    "CompressionBackend",
    "PayloadType",
    "PayloadTypeUnsupportedError",
    "ZipfileBackend",
    "build_store_zip",
    "crc32",
]
