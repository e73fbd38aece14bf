"""
Store partitioning: one store file per (month, host, metric).

File names follow `{YYYY-MM}@{HOST}@{TAG}.sqlite`, e.g.
`2024-01@WORKSTATION@CPU.sqlite`. The month is taken from the local calendar
date of the sample, so a capture on a new month lands in a new file; nothing
is migrated from the previous month's store.
"""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from winbox_stats.errors import PathParseError
from winbox_stats.logging import get_logger
from winbox_stats.metrics.kinds import MetricKind

logger = get_logger(__name__)

STORE_EXTENSION = ".sqlite"
IDENTITY_SEPARATOR = "@"
UNKNOWN_HOST = "UNKNOWN"

_YEAR_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_INVALID_HOST_CHARS = re.compile(r"[@/\\\s]+")


@dataclass(frozen=True, order=True)
class StoreIdentity:
    """
    The (month, host, metric) triple naming one store.

    Attributes:
        year_month: Local calendar month, "YYYY-MM".
        host: Upper-cased host name.
        metric: The metric kind stored.
    """

    year_month: str
    host: str
    metric: MetricKind

    @property
    def stem(self) -> str:
        """Base file name shared by the store, its export and its chart."""
        return IDENTITY_SEPARATOR.join((self.year_month, self.host, self.metric.tag))

    def __str__(self) -> str:
        return self.stem


def sanitize_host(name: str) -> str:
    """Upper-case a host name and replace characters unsafe in file names."""
    cleaned = _INVALID_HOST_CHARS.sub("_", name.strip()).upper()
    return cleaned or UNKNOWN_HOST


def resolve_hostname() -> str:
    """
    Get the local host name as used in store file names.

    Returns:
        Upper-cased, sanitized host name, or "UNKNOWN" if it cannot be read.
    """
    try:
        return sanitize_host(socket.gethostname())
    except OSError as e:
        logger.warning("Failed to resolve hostname", extra={"error": str(e)})
        return UNKNOWN_HOST


def identity_for(timestamp: datetime, host: str, metric: MetricKind) -> StoreIdentity:
    """
    Derive the store identity a sample belongs to.

    Aware timestamps are converted to local time before the month is taken;
    naive timestamps are assumed to already be local.

    Args:
        timestamp: Capture time of the sample.
        host: Host name (sanitized as in resolve_hostname()).
        metric: Metric kind of the sample.

    Returns:
        The StoreIdentity for the sample.
    """
    local = timestamp.astimezone() if timestamp.tzinfo is not None else timestamp
    return StoreIdentity(
        year_month=f"{local.year:04d}-{local.month:02d}",
        host=sanitize_host(host),
        metric=metric,
    )


def resolve_path(identity: StoreIdentity, directory: str | Path = ".") -> Path:
    """Build the store file path for an identity inside `directory`."""
    return Path(directory) / f"{identity.stem}{STORE_EXTENSION}"


def parse_store_path(path: str | Path) -> StoreIdentity:
    """
    Recover the StoreIdentity encoded in a store file name.

    Args:
        path: Path of a store file.

    Returns:
        The identity named by the file.

    Raises:
        PathParseError: If the name does not follow `{YYYY-MM}@{HOST}@{TAG}`.
    """
    path = Path(path)
    details = {"path": str(path)}

    if path.suffix.lower() != STORE_EXTENSION:
        raise PathParseError("Not a store file", details=details)

    parts = path.stem.split(IDENTITY_SEPARATOR)
    if len(parts) != 3:
        raise PathParseError(
            "Store file name must have three '@'-separated parts", details=details
        )

    year_month, host, tag = parts
    if not _YEAR_MONTH_RE.match(year_month):
        raise PathParseError(f"Invalid year-month: {year_month!r}", details=details)
    if not host:
        raise PathParseError("Empty host name", details=details)

    return StoreIdentity(
        year_month=year_month,
        host=host,
        metric=MetricKind.from_tag(tag),
    )


def discover_all(root_dir: str | Path = ".") -> list[Path]:
    """
    List every store file under a directory tree.

    Files are matched on extension only; whether the name parses is left to
    the caller. The result is sorted by path so runs are reproducible.

    Args:
        root_dir: Directory to walk recursively.

    Returns:
        Sorted list of store file paths.
    """
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root_dir):
        dirnames.sort()
        for filename in filenames:
            if Path(filename).suffix.lower() == STORE_EXTENSION:
                candidate = Path(dirpath) / filename
                if candidate.is_file():
                    found.append(candidate)
    found.sort()

    logger.debug(
        "Discovered store files",
        extra={"root_dir": str(root_dir), "count": len(found)},
    )
    return found
