"""
Graph mode: export and chart every store under a directory tree.

Each discovered store is handled on its own. A file whose name does not parse
is skipped quietly; a store that cannot be read (or whose outputs cannot be
written) is skipped with a warning. Neither stops the remaining files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from winbox_stats.errors import PathParseError, StatsError, StoreCorruptError
from winbox_stats.export import export, export_path
from winbox_stats.graph.plot import chart_path, render
from winbox_stats.logging import get_logger
from winbox_stats.metrics.partition import discover_all, parse_store_path
from winbox_stats.metrics.storage import MetricStore

if TYPE_CHECKING:
    from winbox_stats.config import GraphConfig

logger = get_logger(__name__)


@dataclass
class SkippedStore:
    """A discovered file that produced no outputs.

    Attributes:
        path: The store file.
        error_code: StatsError code explaining the skip.
        reason: Human-readable reason.
    """

    path: Path
    error_code: str
    reason: str


@dataclass
class GraphReport:
    """Outcome of one graph-mode run.

    Attributes:
        exported: JSON files written.
        rendered: PNG files written.
        skipped: Files that were not processed, with the reason.
    """

    exported: list[Path] = field(default_factory=list)
    rendered: list[Path] = field(default_factory=list)
    skipped: list[SkippedStore] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "exported": [str(p) for p in self.exported],
            "rendered": [str(p) for p in self.rendered],
            "skipped": [
                {"path": str(s.path), "error_code": s.error_code, "reason": s.reason}
                for s in self.skipped
            ],
        }


def process_store(
    path: Path,
    *,
    width: int,
    height: int,
    dpi: int,
) -> tuple[Path, Path]:
    """
    Export and chart one store file.

    Args:
        path: The store file.
        width: Chart width in pixels.
        height: Chart height in pixels.
        dpi: Chart resolution.

    Returns:
        (export path, chart path).

    Raises:
        PathParseError: If the file name is not a store name.
        StoreCorruptError: If the store cannot be read or outputs cannot be written.
    """
    identity = parse_store_path(path)

    with MetricStore.open(path, create=False) as store:
        samples = store.read_all()

    try:
        json_out = export(identity, samples, export_path(path))
        png_out = render(
            identity, samples, chart_path(path), width=width, height=height, dpi=dpi
        )
    except (OSError, ValueError, OverflowError, RuntimeError) as e:
        raise StoreCorruptError(
            f"Failed to write outputs: {e}", details={"path": str(path)}
        ) from e

    return json_out, png_out


def run_graph(config: GraphConfig) -> GraphReport:
    """
    Export and chart every store found under `config.root_dir`.

    Args:
        config: Graph-mode configuration.

    Returns:
        GraphReport listing outputs and skipped files.
    """
    report = GraphReport()
    paths = discover_all(config.root_dir)
    logger.info(
        "Graph run started",
        extra={"root_dir": config.root_dir, "store_count": len(paths)},
    )

    for path in paths:
        try:
            json_out, png_out = process_store(
                path, width=config.width, height=config.height, dpi=config.dpi
            )
        except PathParseError as e:
            logger.debug(
                "Skipping file with non-store name",
                extra={"path": str(path), "error": e.message},
            )
            report.skipped.append(SkippedStore(path, e.error_code, e.message))
            continue
        except StatsError as e:
            logger.warning(
                "Skipping unreadable store",
                extra={"path": str(path), "error_code": e.error_code, "error": e.message},
            )
            report.skipped.append(SkippedStore(path, e.error_code, e.message))
            continue

        report.exported.append(json_out)
        report.rendered.append(png_out)

    logger.info(
        "Graph run finished",
        extra={
            "exported": len(report.exported),
            "rendered": len(report.rendered),
            "skipped": len(report.skipped),
        },
    )
    return report
