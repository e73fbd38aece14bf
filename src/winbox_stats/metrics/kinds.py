"""
Metric kinds sampled by winbox-stats.

A MetricKind is one of a closed set of variants: CPU, RAM or a specific drive.
Each variant maps to exactly one textual tag, used in store file names and in
exported documents:

    CPU            -> "CPU"
    RAM            -> "RAM"
    Drive("C")     -> "C_Drive"
    Drive("HOME")  -> "HOME_Drive"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from winbox_stats.errors import PathParseError

DRIVE_TAG_SUFFIX = "_Drive"

# Identifier used for a POSIX mount point with no usable last segment ("/")
ROOT_DRIVE_ID = "DISK"

_INVALID_ID_CHARS = re.compile(r"[:@/\\\s]+")


class MetricCategory(str, Enum):
    """Variant discriminator of a MetricKind."""

    CPU = "cpu"
    RAM = "ram"
    DRIVE = "drive"


def _normalize_drive_id(identifier: str) -> str:
    """Upper-case a drive identifier and strip characters unsafe in file names."""
    cleaned = _INVALID_ID_CHARS.sub("", identifier).upper()
    return cleaned or ROOT_DRIVE_ID


@dataclass(frozen=True, order=True)
class MetricKind:
    """
    One sampled metric.

    Use the `cpu()`, `ram()` and `drive()` constructors rather than building
    instances directly; they keep `drive_id` set exactly for DRIVE kinds.

    Attributes:
        category: Which variant this kind is.
        drive_id: Normalized drive identifier (DRIVE kinds only).
    """

    category: MetricCategory
    drive_id: str | None = None

    def __post_init__(self) -> None:
        if (self.category is MetricCategory.DRIVE) != (self.drive_id is not None):
            raise ValueError("drive_id must be set for DRIVE kinds and only for them")

    @classmethod
    def cpu(cls) -> MetricKind:
        return cls(MetricCategory.CPU)

    @classmethod
    def ram(cls) -> MetricKind:
        return cls(MetricCategory.RAM)

    @classmethod
    def drive(cls, identifier: str) -> MetricKind:
        return cls(MetricCategory.DRIVE, _normalize_drive_id(identifier))

    @classmethod
    def from_mount_point(cls, mount_point: str) -> MetricKind:
        """
        Build the DRIVE kind for a mount point.

        Windows mount points ("C:\\") use their drive letter; POSIX mount
        points use their last path segment, and "/" maps to DISK.

        Args:
            mount_point: Mount point as reported by the operating system.

        Returns:
            The DRIVE MetricKind for the volume.
        """
        if len(mount_point) >= 2 and mount_point[1] == ":":
            return cls.drive(mount_point[0])

        segments = [s for s in re.split(r"[/\\]", mount_point) if s]
        return cls.drive(segments[-1] if segments else ROOT_DRIVE_ID)

    @classmethod
    def from_tag(cls, tag: str) -> MetricKind:
        """
        Parse a tag back into a MetricKind (case-insensitive).

        Args:
            tag: Tag as produced by `MetricKind.tag`.

        Returns:
            The matching MetricKind.

        Raises:
            PathParseError: If the tag names no known metric kind.
        """
        upper = tag.upper()
        if upper == "CPU":
            return cls.cpu()
        if upper == "RAM":
            return cls.ram()
        suffix = DRIVE_TAG_SUFFIX.upper()
        if upper.endswith(suffix) and len(upper) > len(suffix):
            identifier = tag[: -len(suffix)]
            if _INVALID_ID_CHARS.search(identifier) is None:
                return cls.drive(identifier)
        raise PathParseError(f"Unknown metric tag: {tag!r}", details={"tag": tag})

    @property
    def tag(self) -> str:
        """Stable textual tag used in file names and exports."""
        match self.category:
            case MetricCategory.CPU:
                return "CPU"
            case MetricCategory.RAM:
                return "RAM"
            case MetricCategory.DRIVE:
                return f"{self.drive_id}{DRIVE_TAG_SUFFIX}"

    @property
    def axis_label(self) -> str:
        """Y-axis label for charts of this metric."""
        match self.category:
            case MetricCategory.CPU:
                return "CPU % Usage"
            case MetricCategory.RAM:
                return "RAM % Usage"
            case MetricCategory.DRIVE:
                return "HDD % Usage"

    def __str__(self) -> str:
        return self.tag
