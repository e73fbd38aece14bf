"""
Host metric sampling.

One call to collect_snapshot() reads CPU load, memory usage and the usage of
every fixed local volume, stamping all readings with a single capture time so
that the snapshot is consistent across metrics. A metric that cannot be read
is logged and left out; it never aborts the rest of the snapshot.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import psutil

from winbox_stats.errors import SampleUnavailableError
from winbox_stats.logging import get_logger
from winbox_stats.metrics.kinds import MetricKind
from winbox_stats.metrics.storage import Sample, capture_timestamp

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

# 0.5-1 s gives stable CPU readings
DEFAULT_CPU_INTERVAL = 0.75

# Filesystems that are never fixed local volumes
SKIPPED_FSTYPES = frozenset({"", "squashfs", "iso9660", "udf", "tmpfs", "devtmpfs"})

Snapshot = list[tuple[MetricKind, Sample]]

# =============================================================================
# Metric readers
# =============================================================================


def read_cpu_percent(interval: float = DEFAULT_CPU_INTERVAL) -> float:
    """
    Measure system-wide CPU load over `interval` seconds.

    Raises:
        SampleUnavailableError: If the CPU counters cannot be read.
    """
    try:
        return float(psutil.cpu_percent(interval=interval))
    except (psutil.Error, OSError) as e:
        raise SampleUnavailableError(
            f"Failed to read CPU usage: {e}", details={"metric": "CPU"}
        ) from e


def read_ram_percent() -> float:
    """
    Read the share of physical memory in use, as a percentage.

    Computed from available memory so that reclaimable caches count as free.

    Raises:
        SampleUnavailableError: If memory statistics cannot be read.
    """
    try:
        memory = psutil.virtual_memory()
    except (psutil.Error, OSError) as e:
        raise SampleUnavailableError(
            f"Failed to read memory usage: {e}", details={"metric": "RAM"}
        ) from e

    total = float(memory.total)
    if total <= 0:
        return 0.0
    return (1.0 - float(memory.available) / total) * 100.0


def list_fixed_volumes() -> list[tuple[MetricKind, str]]:
    """
    Enumerate the fixed local volumes present right now.

    Removable drives, optical media and pseudo filesystems are left out. When two
    mount points map to the same drive tag, the first one wins.

    Returns:
        (MetricKind, mount point) pairs in enumeration order.
    """
    try:
        partitions = psutil.disk_partitions(all=False)
    except (psutil.Error, OSError) as e:
        logger.warning("Failed to enumerate volumes", extra={"error": str(e)})
        return []

    volumes: list[tuple[MetricKind, str]] = []
    seen: set[MetricKind] = set()
    for partition in partitions:
        opts = partition.opts.split(",")
        if partition.fstype.lower() in SKIPPED_FSTYPES or {"cdrom", "removable"} & set(opts):
            continue
        kind = MetricKind.from_mount_point(partition.mountpoint)
        if kind in seen:
            logger.debug(
                "Skipping volume with duplicate tag",
                extra={"mount_point": partition.mountpoint, "tag": kind.tag},
            )
            continue
        seen.add(kind)
        volumes.append((kind, partition.mountpoint))
    return volumes


def read_drive_percent(mount_point: str) -> tuple[float, int] | None:
    """
    Read the used share of a volume, as a percentage.

    Args:
        mount_point: Mount point of the volume.

    Returns:
        (used percent, total bytes), or None for a zero-sized volume.

    Raises:
        SampleUnavailableError: If the volume cannot be queried.
    """
    try:
        usage = psutil.disk_usage(mount_point)
    except (psutil.Error, OSError) as e:
        raise SampleUnavailableError(
            f"Failed to read drive usage: {e}", details={"mount_point": mount_point}
        ) from e

    total = float(usage.total)
    if total <= 0:
        return None
    return (1.0 - float(usage.free) / total) * 100.0, int(usage.total)


# =============================================================================
# Snapshot
# =============================================================================


def _try_read(kind: MetricKind, reader: Callable[[], float]) -> float | None:
    try:
        return reader()
    except SampleUnavailableError as e:
        logger.warning(
            "Metric unavailable, skipping",
            extra={"metric": kind.tag, "error": e.message},
        )
        return None


def collect_snapshot(
    *,
    cpu_interval: float = DEFAULT_CPU_INTERVAL,
    include_drives: bool = True,
    now: datetime | None = None,
) -> Snapshot:
    """
    Take one reading of every supported metric.

    Args:
        cpu_interval: CPU measurement window in seconds.
        include_drives: Whether to sample every fixed local volume.
        now: Capture time to stamp the snapshot with (defaults to now).

    Returns:
        (MetricKind, Sample) pairs, all sharing the same timestamp.
    """
    timestamp = capture_timestamp(now)
    snapshot: Snapshot = []

    cpu = _try_read(MetricKind.cpu(), lambda: read_cpu_percent(cpu_interval))
    if cpu is not None:
        snapshot.append((MetricKind.cpu(), Sample(timestamp=timestamp, value=cpu)))

    ram = _try_read(MetricKind.ram(), read_ram_percent)
    if ram is not None:
        snapshot.append((MetricKind.ram(), Sample(timestamp=timestamp, value=ram)))

    if include_drives:
        for kind, mount_point in list_fixed_volumes():
            try:
                reading = read_drive_percent(mount_point)
            except SampleUnavailableError as e:
                logger.warning(
                    "Metric unavailable, skipping",
                    extra={"metric": kind.tag, "error": e.message},
                )
                continue
            if reading is None:
                continue
            used_percent, total_bytes = reading
            snapshot.append(
                (
                    kind,
                    Sample(
                        timestamp=timestamp,
                        value=used_percent,
                        metadata={"mount_point": mount_point, "total_bytes": total_bytes},
                    ),
                )
            )

    logger.debug(
        "Collected snapshot",
        extra={"count": len(snapshot), "timestamp": timestamp.isoformat()},
    )
    return snapshot
