"""
Tests for metrics sampler module.

This test module validates:
- Reading CPU, memory and drive usage through psutil
- One shared timestamp per snapshot
- Per-metric failures being skipped without aborting the snapshot
- Volume enumeration and filtering
"""

from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import patch

import psutil
import pytest

from winbox_stats.errors import SampleUnavailableError
from winbox_stats.metrics.kinds import MetricKind
from winbox_stats.metrics.sampler import (
    DEFAULT_CPU_INTERVAL,
    collect_snapshot,
    list_fixed_volumes,
    read_cpu_percent,
    read_drive_percent,
    read_ram_percent,
)


def _partition(mountpoint: str, fstype: str = "ext4", opts: str = "rw") -> SimpleNamespace:
    return SimpleNamespace(device="/dev/x", mountpoint=mountpoint, fstype=fstype, opts=opts)


# =============================================================================
# Tests for individual readers
# =============================================================================


class TestReaders:
    """Tests for the per-metric readers."""

    def test_cpu_percent_uses_interval(self, fake_host: SimpleNamespace) -> None:
        """Test that CPU load is measured over the configured window."""
        assert read_cpu_percent(0.5) == 25.0
        fake_host.cpu_percent.assert_called_once_with(interval=0.5)

    def test_cpu_percent_failure(self) -> None:
        """Test that psutil errors become SampleUnavailableError."""
        with patch("psutil.cpu_percent", side_effect=psutil.AccessDenied()):
            with pytest.raises(SampleUnavailableError):
                read_cpu_percent()

    def test_ram_percent_uses_available(self, fake_host: SimpleNamespace) -> None:
        """Test RAM usage computed from available memory."""
        assert read_ram_percent() == pytest.approx(40.0)

    def test_ram_percent_zero_total(self, fake_host: SimpleNamespace) -> None:
        """Test that a zero memory total reads as 0%."""
        fake_host.virtual_memory.return_value = SimpleNamespace(total=0, available=0)
        assert read_ram_percent() == 0.0

    def test_drive_percent_uses_free(self, fake_host: SimpleNamespace) -> None:
        """Test drive usage computed from free space."""
        assert read_drive_percent("/") == (pytest.approx(25.0), 2000)

    def test_drive_percent_zero_size(self, fake_host: SimpleNamespace) -> None:
        """Test that zero-sized volumes yield no reading."""
        fake_host.disk_usage.return_value = SimpleNamespace(total=0, used=0, free=0, percent=0)
        assert read_drive_percent("/") is None

    def test_drive_percent_failure(self) -> None:
        """Test that an unreadable volume raises SampleUnavailableError."""
        with patch("psutil.disk_usage", side_effect=PermissionError("denied")):
            with pytest.raises(SampleUnavailableError) as exc_info:
                read_drive_percent("E:\\")
        assert exc_info.value.details["mount_point"] == "E:\\"


# =============================================================================
# Tests for volume enumeration
# =============================================================================


class TestListFixedVolumes:
    """Tests for list_fixed_volumes."""

    def test_skips_optical_and_pseudo(self) -> None:
        """Test that CD-ROM and image filesystems are left out."""
        partitions = [
            _partition("C:\\", fstype="NTFS"),
            _partition("D:\\", fstype="CDFS", opts="ro,cdrom"),
            _partition("/snap/core/1", fstype="squashfs"),
            _partition("/media/dvd", fstype="iso9660"),
        ]
        with patch("psutil.disk_partitions", return_value=partitions):
            volumes = list_fixed_volumes()

        assert volumes == [(MetricKind.drive("C"), "C:\\")]

    def test_skips_removable(self) -> None:
        """Test that removable drives are not sampled."""
        partitions = [
            _partition("C:\\", fstype="NTFS", opts="rw,fixed"),
            _partition("E:\\", fstype="FAT32", opts="rw,removable"),
        ]
        with patch("psutil.disk_partitions", return_value=partitions):
            volumes = list_fixed_volumes()

        assert volumes == [(MetricKind.drive("C"), "C:\\")]

    def test_duplicate_tags_keep_first(self) -> None:
        """Test that two mount points with one tag are sampled once."""
        partitions = [_partition("/boot/efi", fstype="vfat"), _partition("/efi", fstype="vfat")]
        with patch("psutil.disk_partitions", return_value=partitions):
            volumes = list_fixed_volumes()

        assert volumes == [(MetricKind.drive("EFI"), "/boot/efi")]

    def test_enumeration_failure_is_empty(self) -> None:
        """Test that a failed enumeration yields no volumes."""
        with patch("psutil.disk_partitions", side_effect=OSError("boom")):
            assert list_fixed_volumes() == []


# =============================================================================
# Tests for collect_snapshot
# =============================================================================


class TestCollectSnapshot:
    """Tests for the snapshot."""

    def test_collects_every_kind(self, fake_host: SimpleNamespace) -> None:
        """Test that CPU, RAM and each drive produce one sample."""
        snapshot = collect_snapshot()

        kinds = [kind for kind, _ in snapshot]
        assert kinds == [MetricKind.cpu(), MetricKind.ram(), MetricKind.drive("DISK")]
        fake_host.cpu_percent.assert_called_once_with(interval=DEFAULT_CPU_INTERVAL)

    def test_shared_timestamp(self, fake_host: SimpleNamespace) -> None:
        """Test that all samples of a snapshot share one timestamp."""
        now = datetime(2024, 1, 31, 23, 59, 59, 500000)
        snapshot = collect_snapshot(now=now)

        timestamps = {sample.timestamp for _, sample in snapshot}
        assert timestamps == {now.astimezone().replace(microsecond=0)}

    def test_drive_metadata(self, fake_host: SimpleNamespace) -> None:
        """Test that drive samples record their mount point and size."""
        snapshot = collect_snapshot()

        _, drive_sample = snapshot[-1]
        assert drive_sample.metadata == {"mount_point": "/", "total_bytes": 2000}

    def test_drives_can_be_disabled(self, fake_host: SimpleNamespace) -> None:
        """Test the include_drives switch."""
        snapshot = collect_snapshot(include_drives=False)

        assert [kind for kind, _ in snapshot] == [MetricKind.cpu(), MetricKind.ram()]
        fake_host.disk_partitions.assert_not_called()

    def test_failed_metric_is_skipped(
        self, fake_host: SimpleNamespace, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that one unreadable metric does not abort the snapshot."""
        fake_host.cpu_percent.side_effect = psutil.AccessDenied()

        with caplog.at_level("WARNING"):
            snapshot = collect_snapshot()

        assert [kind.tag for kind, _ in snapshot] == ["RAM", "DISK_Drive"]
        assert "Metric unavailable" in caplog.text

    def test_failed_drive_is_skipped(self, fake_host: SimpleNamespace) -> None:
        """Test that an unreadable volume is left out of the snapshot."""
        fake_host.disk_usage.side_effect = OSError("not ready")

        snapshot = collect_snapshot()

        assert [kind.tag for kind, _ in snapshot] == ["CPU", "RAM"]

    def test_values_are_percentages(self, fake_host: SimpleNamespace) -> None:
        """Test the values produced from the fake host."""
        values = {kind.tag: sample.value for kind, sample in collect_snapshot()}

        assert values == {
            "CPU": pytest.approx(25.0),
            "RAM": pytest.approx(40.0),
            "DISK_Drive": pytest.approx(25.0),
        }


@pytest.mark.integration
class TestLiveHost:
    """Tests against the real host (no psutil mocks)."""

    def test_snapshot_is_in_range(self) -> None:
        """Test that real readings are percentages."""
        snapshot = collect_snapshot(cpu_interval=0.1)

        assert {kind.tag for kind, _ in snapshot} >= {"CPU", "RAM"}
        for _, sample in snapshot:
            assert 0.0 <= sample.value <= 100.0
