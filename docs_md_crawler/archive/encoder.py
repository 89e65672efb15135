"""
Archive encoder with a three-tier fallback chain.

1. The compression backend is asked for the primary payload type under a
   deadline.
2. If, and only if, the backend reports that payload type as unsupported,
   the alternate payload type is tried under the same deadline.
3. On a timeout (or any other backend failure) the archive is written by the
   hand-rolled STORE encoder in store.py.

Only a failure of the last tier is fatal.
"""

import asyncio
import io
import zipfile
from enum import Enum
from typing import Optional, Sequence, Union

from ..models import ZipEntry
from ..utils.constants import DEFAULT_ARCHIVE_DEADLINE
from ..utils.log import get_logger
from .store import ArchiveError, build_store_zip


class PayloadType(str, Enum):
    """Representations a compression backend can hand back."""

    BYTES = "bytes"
    BYTEARRAY = "bytearray"

    @property
    def alternate(self) -> "PayloadType":
        return PayloadType.BYTEARRAY if self is PayloadType.BYTES else PayloadType.BYTES


class ArchiveTier(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    MANUAL = "manual"


class PayloadTypeUnsupportedError(ArchiveError):
    """The backend cannot produce the requested payload type."""

    def __init__(self, payload_type: PayloadType):
        super().__init__(f"payload type not supported: {payload_type.value}")
        self.payload_type = payload_type


class ArchiveTimeoutError(ArchiveError):
    """A backend tier did not finish before its deadline."""


class CompressionBackend:
    """Produces a compressed ZIP archive from entries."""

    async def generate(
        self,
        entries: Sequence[ZipEntry],
        payload_type: PayloadType
    ) -> Union[bytes, bytearray]:
        raise NotImplementedError


class ZipfileBackend(CompressionBackend):
    """DEFLATE archives through the zipfile module, built in a worker thread."""

    def __init__(self, compresslevel: int = 6):
        self.compresslevel = compresslevel

    async def generate(
        self,
        entries: Sequence[ZipEntry],
        payload_type: PayloadType
    ) -> Union[bytes, bytearray]:
        payload_type = PayloadType(payload_type)
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._build, list(entries))
        if payload_type is PayloadType.BYTEARRAY:
            return bytearray(data)
        return data

    def _build(self, entries: Sequence[ZipEntry]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(
            buffer, "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compresslevel
        ) as archive:
            for entry in entries:
                archive.writestr(entry.path, entry.data())
        return buffer.getvalue()


class ArchiveEncoder:
    """
    Packs ZipEntry lists into ZIP bytes, never hanging on the backend.

    Attributes:
        last_tier: Tier that produced the most recent archive
    """

    def __init__(
        self,
        backend: Optional[CompressionBackend] = None,
        deadline: float = DEFAULT_ARCHIVE_DEADLINE,
        primary_type: PayloadType = PayloadType.BYTES
    ):
        """
        Args:
            backend: Compression backend (default: zipfile)
            deadline: Seconds allowed for each backend tier
            primary_type: Payload type requested first
        """
        self.backend = backend or ZipfileBackend()
        self.deadline = deadline
        self.primary_type = PayloadType(primary_type)
        self.last_tier: Optional[ArchiveTier] = None
        self.logger = get_logger("archive")

    async def pack(self, entries: Sequence[ZipEntry]) -> bytes:
        """
        Encode entries as a ZIP archive.

        Args:
            entries: Files of the archive; paths must be unique

        Returns:
            ZIP file bytes

        Raises:
            ArchiveError: If even the manual STORE encoder fails
        """
        entries = list(entries)

        try:
            data = await self._generate(entries, self.primary_type)
            return self._done(ArchiveTier.PRIMARY, data, len(entries))
        except PayloadTypeUnsupportedError as e:
            self.logger.warning(f"{e}; retrying with {self.primary_type.alternate.value}")
        except ArchiveTimeoutError as e:
            self.logger.warning(f"Primary archive tier timed out ({e}); writing STORE archive")
            return await self._manual(entries)
        except Exception as e:
            self.logger.warning(f"Primary archive tier failed ({e}); writing STORE archive")
            return await self._manual(entries)

        try:
            data = await self._generate(entries, self.primary_type.alternate)
            return self._done(ArchiveTier.SECONDARY, data, len(entries))
        except Exception as e:
            self.logger.warning(f"Secondary archive tier failed ({e}); writing STORE archive")
            return await self._manual(entries)

    async def _generate(self, entries: Sequence[ZipEntry], payload_type: PayloadType) -> bytes:
        try:
            data = await asyncio.wait_for(
                self.backend.generate(entries, payload_type),
                timeout=self.deadline
            )
        except asyncio.TimeoutError:
            raise ArchiveTimeoutError(f"no result after {self.deadline}s")
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise PayloadTypeUnsupportedError(payload_type)
        return bytes(data)

    async def _manual(self, entries: Sequence[ZipEntry]) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, build_store_zip, entries)
        except ArchiveError:
            raise
        except Exception as e:
            raise ArchiveError(f"STORE archive failed: {e}") from e
        return self._done(ArchiveTier.MANUAL, data, len(entries))

    def _done(self, tier: ArchiveTier, data: bytes, count: int) -> bytes:
        self.last_tier = tier
        self.logger.info(f"Packed {count} files into {len(data)} bytes ({tier.value} tier)")
        return data
