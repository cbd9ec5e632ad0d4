import io
import zipfile
from typing import Callable, Dict, Union

import pytest


def build_zip(entries: Dict[str, Union[str, bytes, None]]) -> bytes:
    """Build a zip archive in memory; a None value adds a bare directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            if content is None:
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip() -> Callable[[Dict[str, Union[str, bytes, None]]], bytes]:
    return build_zip


def build_unflagged_zip(name: str, content: bytes) -> bytes:
    """Build a zip whose single entry name is UTF-8 without the UTF-8 flag bit."""
    encoded = name.encode("utf-8")
    placeholder = "x" * len(encoded)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(placeholder, content)
    # Names are not covered by the CRC, so swapping the bytes keeps the entry valid
    return buffer.getvalue().replace(placeholder.encode("ascii"), encoded)


@pytest.fixture
def make_unflagged_zip() -> Callable[[str, bytes], bytes]:
    return build_unflagged_zip
