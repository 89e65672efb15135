"""
Delivery of the finished archive to the user.
"""

import os
import tempfile
from typing import List, Optional

from .utils.log import get_logger
from .utils.paths import ensure_dir


class DeliveryError(Exception):
    """The archive could not be written anywhere."""


class FileDelivery:
    """
    Writes archives to disk.

    The configured output directory is tried first, then the system
    temporary directory.
    """

    def __init__(self, output_dir: str = ".", fallback_dir: Optional[str] = None):
        """
        Args:
            output_dir: Preferred directory for archives
            fallback_dir: Directory used when output_dir is not writable
                          (default: the system temp directory)
        """
        self.output_dir = output_dir
        self.fallback_dir = fallback_dir or tempfile.gettempdir()
        self.logger = get_logger("delivery")

    def deliver(self, payload: bytes, filename: str) -> str:
        """
        Save an archive.

        Args:
            payload: Archive bytes
            filename: File name (no directories)

        Returns:
            Absolute path of the written file

        Raises:
            DeliveryError: If neither location accepts the file
        """
        filename = os.path.basename(filename) or "archive.zip"
        errors: List[str] = []

        for directory in (self.output_dir, self.fallback_dir):
            target = os.path.abspath(os.path.join(directory, filename))
            try:
                ensure_dir(directory)
                with open(target, "wb") as f:
                    f.write(payload)
            except OSError as e:
                self.logger.warning(f"Could not write {target}: {e}")
                errors.append(f"{target}: {e}")
                continue
            self.logger.info(f"Saved archive to {target}")
            return target

        raise DeliveryError("; ".join(errors))
