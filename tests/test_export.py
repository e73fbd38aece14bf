"""
Tests for the JSON exporter.
"""

from __future__ import annotations

import json
import math
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from winbox_stats.errors import StoreCorruptError
from winbox_stats.export import (
    EXPORT_SCHEMA_VERSION,
    build_document,
    export,
    export_path,
    parse_document,
)
from winbox_stats.metrics.kinds import MetricKind
from winbox_stats.metrics.partition import StoreIdentity
from winbox_stats.metrics.storage import Sample


class TestBuildDocument:
    """Tests for the document layout."""

    def test_document_fields(
        self, cpu_identity: StoreIdentity, make_samples: Callable[..., list[Sample]]
    ) -> None:
        """Test identity fields and sample entries."""
        samples = make_samples([1.5, 2.5])

        doc = build_document(cpu_identity, samples)

        assert doc["schema_version"] == EXPORT_SCHEMA_VERSION
        assert doc["year_month"] == "2024-01"
        assert doc["host"] == "TESTHOST"
        assert doc["metric"] == "CPU"
        assert doc["count"] == 2
        assert [entry["Value"] for entry in doc["samples"]] == [1.5, 2.5]
        assert doc["samples"][0]["Timestamp"] == samples[0].timestamp.isoformat()

    def test_empty_document(self, cpu_identity: StoreIdentity) -> None:
        """Test that an empty store yields a valid empty document."""
        doc = build_document(cpu_identity, [])

        assert doc["count"] == 0
        assert doc["samples"] == []


class TestExport:
    """Tests for writing exports."""

    def test_export_path_is_sibling(self) -> None:
        """Test that the export sits beside the store with a .json extension."""
        assert export_path(Path("d/2024-01@H@CPU.sqlite")) == Path("d/2024-01@H@CPU.json")

    def test_round_trip(
        self,
        tmp_path: Path,
        cpu_identity: StoreIdentity,
        make_samples: Callable[..., list[Sample]],
    ) -> None:
        """Test that parsing an export recovers identity and samples."""
        samples = make_samples([10.0, 20.0, 30.0])
        path = export(cpu_identity, samples, tmp_path / "out.json")

        identity, parsed = parse_document(path.read_text(encoding="utf-8"))

        assert identity == cpu_identity
        assert parsed == samples

    def test_round_trip_drive(self, tmp_path: Path, make_samples: Callable[..., list[Sample]]) -> None:
        """Test round trip for a drive identity."""
        identity = StoreIdentity("2024-01", "H", MetricKind.drive("C"))
        path = export(identity, make_samples([5.0]), tmp_path / "out.json")

        assert parse_document(path.read_bytes())[0] == identity

    def test_export_is_byte_stable(
        self,
        tmp_path: Path,
        cpu_identity: StoreIdentity,
        make_samples: Callable[..., list[Sample]],
    ) -> None:
        """Test that exporting the same samples twice gives identical bytes."""
        samples = make_samples([1.0, 2.0])
        first = export(cpu_identity, samples, tmp_path / "a.json").read_bytes()
        second = export(cpu_identity, samples, tmp_path / "a.json").read_bytes()

        assert first == second

    def test_export_overwrites(
        self,
        tmp_path: Path,
        cpu_identity: StoreIdentity,
        make_samples: Callable[..., list[Sample]],
    ) -> None:
        """Test that a new export fully replaces the old one."""
        path = tmp_path / "out.json"
        export(cpu_identity, make_samples([1.0, 2.0, 3.0]), path)
        export(cpu_identity, make_samples([9.0]), path)

        assert json.loads(path.read_text(encoding="utf-8"))["count"] == 1
        assert os.listdir(tmp_path) == ["out.json"]

    def test_failed_write_keeps_previous_export(
        self,
        tmp_path: Path,
        cpu_identity: StoreIdentity,
        make_samples: Callable[..., list[Sample]],
    ) -> None:
        """Test that a failure mid-write leaves the old file and no temp file."""
        path = tmp_path / "out.json"
        export(cpu_identity, make_samples([1.0]), path)
        before = path.read_bytes()

        with patch("os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                export(cpu_identity, make_samples([1.0, 2.0]), path)

        assert path.read_bytes() == before
        assert os.listdir(tmp_path) == ["out.json"]

    def test_non_finite_value_is_rejected(
        self, tmp_path: Path, cpu_identity: StoreIdentity, base_time: datetime
    ) -> None:
        """Test that an infinite value never reaches disk as invalid JSON."""
        path = tmp_path / "out.json"

        with pytest.raises(ValueError):
            export(cpu_identity, [Sample(timestamp=base_time, value=math.inf)], path)

        assert not path.exists()
        assert os.listdir(tmp_path) == []


class TestParseDocument:
    """Tests for parse_document error handling."""

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "{}",
            '{"year_month": "2024-01", "host": "H", "metric": "GPU", "samples": []}',
            '{"year_month": "2024-01", "host": "H", "metric": "CPU", '
            '"samples": [{"Timestamp": "soon", "Value": 1}]}',
        ],
    )
    def test_invalid_documents(self, text: str) -> None:
        """Test that malformed documents raise StoreCorruptError."""
        with pytest.raises(StoreCorruptError):
            parse_document(text)
