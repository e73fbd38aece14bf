"""
Pytest configuration for the winbox-stats tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from winbox_stats.metrics.kinds import MetricKind
from winbox_stats.metrics.partition import StoreIdentity, resolve_path
from winbox_stats.metrics.storage import MetricStore, Sample, capture_timestamp


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


@pytest.fixture(autouse=True)
def _cleanup_loggers() -> Iterator[None]:
    """Drop handlers added to the package logger by a test (autouse fixture)."""
    yield
    logger = logging.getLogger("winbox_stats")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def cpu_identity() -> StoreIdentity:
    """Identity of a January 2024 CPU store."""
    return StoreIdentity(year_month="2024-01", host="TESTHOST", metric=MetricKind.cpu())


@pytest.fixture
def base_time() -> datetime:
    """A fixed local capture time in January 2024."""
    return capture_timestamp(datetime(2024, 1, 10, 12, 0, 0))


@pytest.fixture
def make_samples(base_time: datetime) -> Callable[..., list[Sample]]:
    """Build samples one minute apart starting at base_time."""

    def _make(values: list[float], step: timedelta = timedelta(minutes=1)) -> list[Sample]:
        return [
            Sample(timestamp=base_time + step * i, value=value)
            for i, value in enumerate(values)
        ]

    return _make


@pytest.fixture
def write_store() -> Callable[..., Path]:
    """Create a store file for an identity and append the given samples."""

    def _write(directory: Path, identity: StoreIdentity, samples: list[Sample]) -> Path:
        path = resolve_path(identity, directory)
        with MetricStore.open(path) as store:
            for sample in samples:
                store.append(sample)
        return path

    return _write


@pytest.fixture
def fake_host() -> Iterator[SimpleNamespace]:
    """
    Patch psutil with a deterministic host: 25% CPU, 40% RAM and one volume.

    Yields the namespace of mocks so tests can adjust the return values.
    """
    memory = SimpleNamespace(total=1000, available=600)
    partition = SimpleNamespace(device="/dev/sda1", mountpoint="/", fstype="ext4", opts="rw")
    usage = SimpleNamespace(total=2000, used=500, free=1500, percent=25.0)

    with (
        patch("psutil.cpu_percent", return_value=25.0) as cpu_percent,
        patch("psutil.virtual_memory", return_value=memory) as virtual_memory,
        patch("psutil.disk_partitions", return_value=[partition]) as disk_partitions,
        patch("psutil.disk_usage", return_value=usage) as disk_usage,
    ):
        yield SimpleNamespace(
            cpu_percent=cpu_percent,
            virtual_memory=virtual_memory,
            disk_partitions=disk_partitions,
            disk_usage=disk_usage,
        )
