"""
Metrics module for winbox-stats.

Components:
- kinds: the closed set of sampled metric kinds and their tags
- sampler: one-shot CPU/RAM/drive snapshot via psutil
- partition: store identity, file naming and discovery
- storage: append-only SQLite store for one metric stream
"""

from winbox_stats.metrics.kinds import MetricCategory, MetricKind
from winbox_stats.metrics.partition import (
    StoreIdentity,
    discover_all,
    identity_for,
    parse_store_path,
    resolve_hostname,
    resolve_path,
)
from winbox_stats.metrics.sampler import collect_snapshot
from winbox_stats.metrics.storage import MetricStore, Sample

__all__ = [
    "MetricCategory",
    "MetricKind",
    "MetricStore",
    "Sample",
    "StoreIdentity",
    "collect_snapshot",
    "discover_all",
    "identity_for",
    "parse_store_path",
    "resolve_hostname",
    "resolve_path",
]
