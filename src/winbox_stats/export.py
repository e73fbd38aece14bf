"""
JSON export of a metric store.

Each store `{stem}.sqlite` is exported to `{stem}.json` beside it:

    {
      "schema_version": 1,
      "year_month": "2024-01",
      "host": "WORKSTATION",
      "metric": "CPU",
      "count": 2,
      "samples": [
        {"Timestamp": "2024-01-31T23:59:58+01:00", "Value": 12.5},
        {"Timestamp": "2024-01-31T23:59:59+01:00", "Value": 14.0}
      ]
    }

The document is a pure function of the store's identity and samples, so
exporting an unchanged store twice produces identical bytes.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from winbox_stats.errors import PathParseError, StoreCorruptError
from winbox_stats.fileutil import atomic_write_bytes
from winbox_stats.logging import get_logger
from winbox_stats.metrics.kinds import MetricKind
from winbox_stats.metrics.partition import StoreIdentity
from winbox_stats.metrics.storage import Sample, format_timestamp, parse_timestamp

logger = get_logger(__name__)

EXPORT_EXTENSION = ".json"
EXPORT_SCHEMA_VERSION = 1


def export_path(store_path: str | Path) -> Path:
    """Path of the JSON export belonging to a store file."""
    return Path(store_path).with_suffix(EXPORT_EXTENSION)


def build_document(identity: StoreIdentity, samples: Sequence[Sample]) -> dict[str, Any]:
    """
    Build the export document for one store.

    Args:
        identity: Identity of the store.
        samples: The store's samples, oldest first.

    Returns:
        JSON-serializable document.
    """
    return {
        "schema_version": EXPORT_SCHEMA_VERSION,
        "year_month": identity.year_month,
        "host": identity.host,
        "metric": identity.metric.tag,
        "count": len(samples),
        "samples": [
            {"Timestamp": format_timestamp(s.timestamp), "Value": s.value}
            for s in samples
        ],
    }


def render_document(identity: StoreIdentity, samples: Sequence[Sample]) -> bytes:
    """Serialize the export document to UTF-8 bytes."""
    text = json.dumps(
        build_document(identity, samples), indent=2, ensure_ascii=False, allow_nan=False
    )
    return (text + "\n").encode("utf-8")


def export(identity: StoreIdentity, samples: Sequence[Sample], path: str | Path) -> Path:
    """
    Write the export document for one store, replacing any previous export.

    Args:
        identity: Identity of the store.
        samples: The store's samples, oldest first.
        path: Destination file.

    Returns:
        The path written.
    """
    written = atomic_write_bytes(path, render_document(identity, samples))
    logger.debug(
        "Exported store",
        extra={"path": str(written), "store": identity.stem, "count": len(samples)},
    )
    return written


def parse_document(text: str | bytes) -> tuple[StoreIdentity, list[Sample]]:
    """
    Parse an export document back into an identity and samples.

    Args:
        text: Contents of an export file.

    Returns:
        (StoreIdentity, samples in document order).

    Raises:
        StoreCorruptError: If the document is not a valid export.
    """
    try:
        data = json.loads(text)
        identity = StoreIdentity(
            year_month=data["year_month"],
            host=data["host"],
            metric=MetricKind.from_tag(data["metric"]),
        )
        samples = []
        for entry in data["samples"]:
            timestamp = parse_timestamp(entry["Timestamp"])
            if timestamp is None:
                raise ValueError(f"Invalid timestamp: {entry['Timestamp']!r}")
            samples.append(Sample(timestamp=timestamp, value=float(entry["Value"])))
    except (KeyError, TypeError, ValueError, PathParseError) as e:
        raise StoreCorruptError(f"Invalid export document: {e}") from e
    return identity, samples
