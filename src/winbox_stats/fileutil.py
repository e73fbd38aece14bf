"""
Atomic file replacement.

Exports and charts are rewritten in full on every graph run. They are written
to a temporary file in the destination directory, flushed to disk and then
renamed over the destination, so a reader sees either the previous file or
the complete new one.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO


@contextlib.contextmanager
def atomic_write(path: str | Path) -> Iterator[BinaryIO]:
    """
    Open a temporary binary file that replaces `path` on successful exit.

    If the block raises, the temporary file is removed and `path` is left
    untouched.

    Args:
        path: Final destination of the file.

    Yields:
        Writable binary file object.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
            f.flush()
            # Ensure data is written to disk
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(temp_name)
        raise


def atomic_write_bytes(path: str | Path, data: bytes) -> Path:
    """Atomically replace `path` with `data`."""
    with atomic_write(path) as f:
        f.write(data)
    return Path(path)
