"""
PNG charts of a metric store.

Charts are drawn with matplotlib's object-oriented API on an Agg canvas, so
no display or global pyplot state is involved. The x axis carries one tick per
day of the month with light vertical grid lines; the y axis is scaled to the
observed values.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.dates import AutoDateLocator, DateFormatter, DayLocator
from matplotlib.figure import Figure

from winbox_stats.fileutil import atomic_write
from winbox_stats.logging import get_logger
from winbox_stats.metrics.partition import StoreIdentity
from winbox_stats.metrics.storage import Sample

logger = get_logger(__name__)

CHART_EXTENSION = ".png"

DEFAULT_WIDTH = 1600
DEFAULT_HEIGHT = 900
DEFAULT_DPI = 100

# Half-height of the y axis when every value is the same
FLAT_RANGE_HALF_HEIGHT = 1.0
# Fraction of the value span added above and below the data
RANGE_PADDING = 0.05
# Range shown when there is nothing to plot
EMPTY_RANGE = (0.0, 100.0)
# Time shown either side of a single point
SINGLE_POINT_SPAN = timedelta(minutes=30)
# Longest x span labelled with one tick per day
MAX_DAY_TICK_SPAN = timedelta(days=62)

LINE_COLOR = "tab:blue"
GRID_COLOR = "#dcdcdc"

# Fixed metadata keeps the PNG bytes stable between runs
PNG_METADATA = {"Software": None}


def chart_path(store_path: str | Path) -> Path:
    """Path of the PNG chart belonging to a store file."""
    return Path(store_path).with_suffix(CHART_EXTENSION)


def value_range(values: Sequence[float]) -> tuple[float, float]:
    """
    Y-axis limits for a series.

    Args:
        values: Observed values.

    Returns:
        (low, high) with high > low.
    """
    if not values:
        return EMPTY_RANGE

    low, high = min(values), max(values)
    if high - low <= 0:
        return low - FLAT_RANGE_HALF_HEIGHT, high + FLAT_RANGE_HALF_HEIGHT

    padding = (high - low) * RANGE_PADDING
    return low - padding, high + padding


def month_span(year_month: str) -> tuple[datetime, datetime]:
    """First instant of the month and of the following month, as naive local times."""
    year, month = (int(part) for part in year_month.split("-"))
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def _to_local_naive(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone().replace(tzinfo=None)


def build_figure(
    identity: StoreIdentity,
    samples: Sequence[Sample],
    *,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
    dpi: int = DEFAULT_DPI,
) -> Figure:
    """
    Draw the value-over-time chart for one store.

    Samples are plotted in the order given. An empty sequence yields a
    placeholder chart covering the store's month; a single sample is drawn
    as one marker without a line.

    Args:
        identity: Identity of the store (used for the title and axis label).
        samples: The store's samples, oldest first.
        width: Image width in pixels.
        height: Image height in pixels.
        dpi: Resolution used to size the figure.

    Returns:
        Figure attached to an Agg canvas.
    """
    fig = Figure(figsize=(width / dpi, height / dpi), dpi=dpi)
    FigureCanvasAgg(fig)
    ax = fig.add_subplot(1, 1, 1)

    times = [_to_local_naive(s.timestamp) for s in samples]
    values = [s.value for s in samples]

    if not samples:
        x_min, x_max = month_span(identity.year_month)
        ax.text(
            0.5,
            0.5,
            "No samples",
            transform=ax.transAxes,
            ha="center",
            va="center",
            fontsize=20,
            color="gray",
        )
    elif min(times) == max(times):
        x_min, x_max = times[0] - SINGLE_POINT_SPAN, times[-1] + SINGLE_POINT_SPAN
        ax.plot(times, values, linestyle="none", marker="o", color=LINE_COLOR)
    else:
        x_min, x_max = min(times), max(times)
        ax.plot(times, values, color=LINE_COLOR, linewidth=1.2)

    ax.set_xlim(x_min, x_max)
    ax.set_ylim(*value_range(values))

    span = x_max - x_min
    if timedelta(days=1) <= span <= MAX_DAY_TICK_SPAN:
        ax.xaxis.set_major_locator(DayLocator())
        ax.xaxis.set_major_formatter(DateFormatter("%d"))
    elif span > MAX_DAY_TICK_SPAN:
        ax.xaxis.set_major_locator(AutoDateLocator())
        ax.xaxis.set_major_formatter(DateFormatter("%Y-%m-%d"))
    else:
        ax.xaxis.set_major_locator(AutoDateLocator())
        ax.xaxis.set_major_formatter(DateFormatter("%d %H:%M"))
    ax.grid(axis="x", color=GRID_COLOR, linewidth=0.8)
    ax.grid(axis="y", color=GRID_COLOR, linewidth=0.5, linestyle=":")

    ax.set_title(
        f"{identity.year_month} {identity.host} {identity.metric.tag}", fontsize=20
    )
    ax.set_xlabel("Date", fontsize=16)
    ax.set_ylabel(identity.metric.axis_label, fontsize=16)
    ax.tick_params(labelsize=12)

    return fig


def render(
    identity: StoreIdentity,
    samples: Sequence[Sample],
    path: str | Path,
    *,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
    dpi: int = DEFAULT_DPI,
) -> Path:
    """
    Render the chart for one store to a PNG file, replacing any previous one.

    Args:
        identity: Identity of the store.
        samples: The store's samples, oldest first.
        path: Destination PNG file.
        width: Image width in pixels.
        height: Image height in pixels.
        dpi: Resolution used to size the figure.

    Returns:
        The path written.
    """
    fig = build_figure(identity, samples, width=width, height=height, dpi=dpi)
    with atomic_write(path) as f:
        fig.savefig(f, format="png", dpi=dpi, metadata=PNG_METADATA)

    logger.debug(
        "Rendered chart",
        extra={"path": str(path), "store": identity.stem, "count": len(samples)},
    )
    return Path(path)
