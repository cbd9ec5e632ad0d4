"""Random-access reader over a downloaded log bundle.

The bundle is a zip archive. Entries are decompressed one at a time, only
when requested, so walking a job never materializes unrelated step logs.
"""

from __future__ import annotations

import zipfile
import zlib
from io import BytesIO
from typing import BinaryIO, Iterator, Union

from reviewkit.checks.errors import ArchiveFormatError, TruncatedArchiveError

# General purpose bit 11: the entry name is stored as UTF-8
UTF8_NAME_FLAG = 0x800


def _entry_name(info: zipfile.ZipInfo) -> str:
    """Entry name as written by the provider.

    zipfile decodes names without the UTF-8 flag as cp437, but bundles carry
    UTF-8 names either way. Names that are not valid UTF-8 are kept as decoded.
    """
    if info.flag_bits & UTF8_NAME_FLAG:
        return info.filename
    try:
        return info.filename.encode("cp437").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return info.filename


class LogArchive:
    """Read-only view over the entries of a zip log bundle."""

    def __init__(self, data: Union[bytes, bytearray, BinaryIO]):
        """Open the archive.

        Args:
            data: Raw archive bytes or a seekable binary stream

        Raises:
            ArchiveFormatError: If the bytes are not a zip archive
        """
        stream = BytesIO(bytes(data)) if isinstance(data, (bytes, bytearray)) else data
        try:
            self._zip = zipfile.ZipFile(stream)
        except (zipfile.BadZipFile, EOFError, OSError) as e:
            raise ArchiveFormatError(f"Log bundle is not a valid zip archive: {e}") from e
        self._infos = {_entry_name(info): info for info in self._zip.infolist()}

    def names(self) -> list[str]:
        """Entry names in archive order."""
        return list(self._infos)

    def __contains__(self, name: object) -> bool:
        return name in self._infos

    def __iter__(self) -> Iterator[str]:
        return iter(self._infos)

    def __len__(self) -> int:
        return len(self._infos)

    def open_entry(self, name: str) -> bytes:
        """Decompress one entry and return its full content.

        Raises:
            KeyError: If the archive has no entry with this name
            TruncatedArchiveError: If the entry is corrupt or shorter than declared
        """
        info = self._infos[name]
        try:
            with self._zip.open(info) as f:
                content = f.read()
        except (zipfile.BadZipFile, EOFError, zlib.error, OSError) as e:
            raise TruncatedArchiveError(name, str(e)) from e
        if len(content) != info.file_size:
            raise TruncatedArchiveError(
                name, f"expected {info.file_size} bytes, read {len(content)}"
            )
        return content

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "LogArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
