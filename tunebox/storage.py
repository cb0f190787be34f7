"""
Byte storage for uploaded audio files.

Files are written under the configured upload directory with generated names.
Songs store the returned reference ("uploads/<name>") verbatim; the same
string is the URL path the web server serves the bytes from.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Optional, Tuple

from .errors import InvalidArgument

if TYPE_CHECKING:
    from .config_manager import ConfigManager


REFERENCE_PREFIX = "uploads"
CHUNK_SIZE = 1024 * 1024


class FileStorage:
    """Stores uploaded audio files on local disk."""

    def __init__(self, config_manager: "ConfigManager"):
        """
        Initialize FileStorage.

        Args:
            config_manager: ConfigManager for runtime config access
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager

    @property
    def base_directory(self) -> Path:
        """Get upload directory from config, creating it if needed."""
        return self.config_manager.get_upload_directory()

    def _allowed_extensions(self):
        return {ext.lower() for ext in self.config_manager.get_list("allowed_extensions")}

    def _create_file(self, extension: str) -> Tuple[str, BinaryIO]:
        """
        Create a new file named from the current time in milliseconds.

        Names are claimed with exclusive creation; a taken name moves on to
        the next "-N" suffix, so an existing file is never overwritten.
        """
        directory = self.base_directory
        stamp = int(time.time() * 1000)
        name = f"{stamp}{extension}"
        counter = 1
        while True:
            try:
                return name, (directory / name).open("xb")
            except FileExistsError:
                name = f"{stamp}-{counter}{extension}"
                counter += 1

    def resolve(self, reference: str) -> Path:
        """
        Map a stored reference to its path on disk.

        Only the final path component is used, so a reference can never
        point outside the upload directory.
        """
        return self.base_directory / Path(reference).name

    def save(self, stream: BinaryIO, original_filename: Optional[str]) -> str:
        """
        Write an uploaded stream to disk.

        Args:
            stream: Readable binary stream with the file contents
            original_filename: Name the client uploaded the file as

        Returns:
            Reference to store on the song (e.g. "uploads/1700000000000.mp3")

        Raises:
            InvalidArgument: Missing name, disallowed extension, empty or oversized file
        """
        if not original_filename:
            raise InvalidArgument("Uploaded file has no name")

        extension = Path(original_filename).suffix.lower()
        allowed = self._allowed_extensions()
        if allowed and extension not in allowed:
            raise InvalidArgument(f"Unsupported file type: {extension or '(none)'}")

        max_bytes = self.config_manager.get_int("max_upload_mb", 50) * 1024 * 1024
        name, destination = self._create_file(extension)
        path = self.base_directory / name

        written = 0
        try:
            with destination:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise InvalidArgument(
                            f"File exceeds maximum upload size of {max_bytes // (1024 * 1024)} MB"
                        )
                    destination.write(chunk)
            if written == 0:
                raise InvalidArgument("Uploaded file is empty")
        except Exception:
            path.unlink(missing_ok=True)
            raise

        self.logger.info(
            "Stored upload %s as %s (%.2f MB)", original_filename, name, written / (1024**2)
        )
        return f"{REFERENCE_PREFIX}/{name}"

    def delete(self, reference: str) -> bool:
        """
        Delete a stored file.

        Never raises: a missing or undeletable file is logged and reported
        as False.
        """
        if not reference:
            return False

        path = self.resolve(reference)
        try:
            path.unlink()
        except OSError as e:
            self.logger.warning("File delete warning for %s: %s", reference, e)
            return False

        self.logger.info("Deleted file %s", path.name)
        return True
