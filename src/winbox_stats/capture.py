"""
Capture mode: append one snapshot of host metrics to the monthly stores.

Every metric in the snapshot goes to its own store, resolved from the
snapshot's timestamp, the host name and the metric kind. A write failure
aborts the run; the caller reports it and exits non-zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from winbox_stats.logging import get_logger
from winbox_stats.metrics.partition import identity_for, resolve_hostname, resolve_path
from winbox_stats.metrics.sampler import collect_snapshot
from winbox_stats.metrics.storage import MetricStore, format_timestamp

if TYPE_CHECKING:
    from winbox_stats.config import CaptureConfig

logger = get_logger(__name__)


@dataclass
class CaptureResult:
    """Outcome of one capture run.

    Attributes:
        host: Host name used in the store names.
        timestamp: Shared capture time of the snapshot.
        written: Store files a sample was appended to.
    """

    host: str
    timestamp: datetime | None = None
    written: list[Path] = field(default_factory=list)


def run_capture(
    config: CaptureConfig,
    *,
    host: str | None = None,
    now: datetime | None = None,
) -> CaptureResult:
    """
    Take one snapshot and append each reading to its store.

    Args:
        config: Capture-mode configuration.
        host: Host name override (defaults to the local host name).
        now: Capture time override (defaults to now).

    Returns:
        CaptureResult listing the stores written.

    Raises:
        StoreWriteError: If any store cannot be opened or appended to.
    """
    result = CaptureResult(host=host or resolve_hostname())
    snapshot = collect_snapshot(
        cpu_interval=config.cpu_interval_seconds,
        include_drives=config.include_drives,
        now=now,
    )

    for kind, sample in snapshot:
        identity = identity_for(sample.timestamp, result.host, kind)
        path = resolve_path(identity, config.directory)
        with MetricStore.open(path) as store:
            store.append(sample)

        result.timestamp = sample.timestamp
        result.written.append(path)
        logger.info(
            "Wrote record",
            extra={
                "path": str(path),
                "metric": kind.tag,
                "value": round(sample.value, 2),
                "timestamp": format_timestamp(sample.timestamp),
            },
        )

    if not snapshot:
        logger.warning("No metrics could be read; nothing was written")

    return result
