"""
SQLite storage for a single metric stream.

Each store file holds the samples of one metric, for one host, for one
calendar month (see winbox_stats.metrics.partition). Stores are append-only:
samples are never updated or deleted, and a month's file is never rewritten
once the month has rolled over.

SQLite Schema (version 1):
    CREATE TABLE stats (
        ts TEXT NOT NULL,        -- ISO 8601 local time with UTC offset
        value REAL NOT NULL,
        metadata TEXT            -- optional JSON metadata
    );
    CREATE INDEX ix_stats_ts ON stats(ts);
    CREATE TABLE store_info (
        key TEXT PRIMARY KEY,    -- year_month, host, metric, schema_version, created_at
        value TEXT NOT NULL
    );

Readers only rely on a timestamp and a value column, so files written by older
versions (a `Timestamp`/`Value` table, naive timestamps) stay readable.
"""

from __future__ import annotations

import json
import math
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from winbox_stats.errors import StoreCorruptError, StoreWriteError
from winbox_stats.logging import get_logger
from winbox_stats.metrics.partition import StoreIdentity, parse_store_path

logger = get_logger(__name__)

SCHEMA_VERSION = 1
SAMPLE_TABLE = "stats"
INFO_TABLE = "store_info"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {SAMPLE_TABLE} (
    ts TEXT NOT NULL,
    value REAL NOT NULL,
    metadata TEXT
);

CREATE INDEX IF NOT EXISTS ix_{SAMPLE_TABLE}_ts ON {SAMPLE_TABLE}(ts);

CREATE TABLE IF NOT EXISTS {INFO_TABLE} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

# Column names accepted when reading, matched case-insensitively
TIMESTAMP_COLUMNS = ("ts", "timestamp", "time")
VALUE_COLUMNS = ("value", "val")

# Formats written by earlier capture versions
LEGACY_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y/%m/%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
)

# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class Sample:
    """A single metric observation.

    Attributes:
        timestamp: Capture time (timezone-aware, local offset).
        value: The metric value.
        metadata: Optional JSON-serializable context (not part of equality).
    """

    timestamp: datetime
    value: float
    metadata: Mapping[str, Any] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": format_timestamp(self.timestamp),
            "value": self.value,
            "metadata": dict(self.metadata) if self.metadata else None,
        }


def capture_timestamp(now: datetime | None = None) -> datetime:
    """
    Normalize a capture time: local timezone, whole seconds.

    Args:
        now: Time to normalize; defaults to the current time.

    Returns:
        Timezone-aware datetime without microseconds.
    """
    moment = now if now is not None else datetime.now()
    return moment.astimezone().replace(microsecond=0)


def format_timestamp(timestamp: datetime) -> str:
    """Serialize a timestamp as ISO 8601 with its UTC offset."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    timespec = "microseconds" if timestamp.microsecond else "seconds"
    return timestamp.isoformat(timespec=timespec)


def parse_timestamp(text: str) -> datetime | None:
    """
    Parse a stored timestamp.

    Accepts ISO 8601 (with or without offset) and the legacy formats in
    LEGACY_TIMESTAMP_FORMATS. Naive values are taken as local time.

    Args:
        text: Timestamp text read from a store.

    Returns:
        Timezone-aware datetime, or None if the text matches no format or
        lies outside the range that can be expressed in local time.
    """
    text = text.strip()
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in LEGACY_TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    # Values at the edges of the datetime range cannot be shifted to local time
    try:
        local = parsed.astimezone()
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo is not None else local


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


# =============================================================================
# MetricStore Class
# =============================================================================


class MetricStore:
    """
    Append-only SQLite store for one StoreIdentity.

    A store handle is not safe for concurrent writers; one capturing process
    at a time per identity is assumed.

    Example:
        >>> with MetricStore.open("2024-01@HOST@CPU.sqlite") as store:
        ...     store.append(Sample(timestamp=capture_timestamp(), value=12.5))
        ...     samples = store.read_all()
    """

    def __init__(
        self,
        path: Path,
        identity: StoreIdentity,
        conn: sqlite3.Connection,
        *,
        readonly: bool,
    ) -> None:
        """
        Wrap an open connection. Use MetricStore.open() instead.

        Args:
            path: Path of the store file.
            identity: Identity parsed from the file name.
            conn: Open SQLite connection.
            readonly: Whether the connection was opened read-only.
        """
        self.path = path
        self.identity = identity
        self.readonly = readonly
        self._conn: sqlite3.Connection | None = conn
        self._last_timestamp: datetime | None = None

    @classmethod
    def open(cls, path: str | Path, *, create: bool = True) -> MetricStore:
        """
        Open a store file.

        With `create=True` the file (and its parent directory) is created when
        absent, with an empty sample table and a header describing the
        identity encoded in the file name. With `create=False` the file must
        exist and is opened read-only.

        Args:
            path: Path of the store file.
            create: Create the store if missing and open it for writing.

        Returns:
            An open MetricStore.

        Raises:
            PathParseError: If the file name is not a store name.
            StoreWriteError: If the store cannot be created or initialized.
            StoreCorruptError: If a read-only store is missing or unreadable.
        """
        path = Path(path)
        identity = parse_store_path(path)

        if create:
            return cls._open_for_write(path, identity)
        return cls._open_for_read(path, identity)

    @classmethod
    def _open_for_write(cls, path: Path, identity: StoreIdentity) -> MetricStore:
        conn: sqlite3.Connection | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), timeout=30.0)
            conn.row_factory = sqlite3.Row
            # Capture runs are short-lived; every commit must reach the disk
            conn.execute("PRAGMA synchronous=FULL")
            conn.executescript(SCHEMA_SQL)
            header = {
                "year_month": identity.year_month,
                "host": identity.host,
                "metric": identity.metric.tag,
                "schema_version": str(SCHEMA_VERSION),
                "created_at": format_timestamp(capture_timestamp()),
            }
            with conn:
                conn.executemany(
                    f"INSERT OR IGNORE INTO {INFO_TABLE} (key, value) VALUES (?, ?)",
                    header.items(),
                )
            last = conn.execute(
                f"SELECT ts FROM {SAMPLE_TABLE} ORDER BY rowid DESC LIMIT 1"
            ).fetchone()
        except (OSError, sqlite3.Error) as e:
            if conn is not None:
                conn.close()
            logger.error(
                "Failed to open metric store",
                extra={"path": str(path), "error": str(e)},
            )
            raise StoreWriteError(
                f"Failed to open metric store: {e}",
                details={"path": str(path)},
            ) from e

        store = cls(path, identity, conn, readonly=False)
        if last is not None:
            store._last_timestamp = parse_timestamp(str(last["ts"]))
        return store

    @classmethod
    def _open_for_read(cls, path: Path, identity: StoreIdentity) -> MetricStore:
        if not path.is_file():
            raise StoreCorruptError(
                "Metric store does not exist",
                details={"path": str(path)},
            )
        try:
            conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
            conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StoreCorruptError(
                f"Failed to open metric store: {e}",
                details={"path": str(path)},
            ) from e

        return cls(path, identity, conn, readonly=True)

    @property
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreCorruptError(
                "Metric store is closed", details={"path": str(self.path)}
            )
        return self._conn

    @property
    def header(self) -> dict[str, str]:
        """
        Key/value header rows describing the store.

        Stores written before the header existed return an empty dict.

        Raises:
            StoreCorruptError: If the file cannot be read.
        """
        try:
            if INFO_TABLE not in self._table_names():
                return {}
            rows = self._connection.execute(
                f"SELECT key, value FROM {INFO_TABLE} ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreCorruptError(
                f"Failed to read store header: {e}",
                details={"path": str(self.path)},
            ) from e
        return {row["key"]: row["value"] for row in rows}

    def append(self, sample: Sample) -> None:
        """
        Append one sample and commit it to stable storage.

        Either the whole row is committed or nothing is: a failed insert is
        rolled back.

        Args:
            sample: The Sample to append.

        Raises:
            StoreWriteError: If the store is read-only or the write fails.
        """
        if self.readonly:
            raise StoreWriteError(
                "Metric store was opened read-only",
                details={"path": str(self.path)},
            )

        timestamp = sample.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()

        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            logger.warning(
                "Sample timestamp is earlier than the previous sample",
                extra={
                    "path": str(self.path),
                    "timestamp": format_timestamp(timestamp),
                    "previous": format_timestamp(self._last_timestamp),
                },
            )

        try:
            with self._connection as conn:
                conn.execute(
                    f"INSERT INTO {SAMPLE_TABLE} (ts, value, metadata) VALUES (?, ?, ?)",
                    (
                        format_timestamp(timestamp),
                        float(sample.value),
                        json.dumps(dict(sample.metadata), sort_keys=True)
                        if sample.metadata
                        else None,
                    ),
                )
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(
                "Failed to append metric sample",
                extra={"path": str(self.path), "error": str(e)},
            )
            raise StoreWriteError(
                f"Failed to append metric sample: {e}",
                details={"path": str(self.path), "metric": self.identity.metric.tag},
            ) from e

        self._last_timestamp = timestamp

    def read_all(self) -> list[Sample]:
        """
        Read every stored sample in append order.

        Returns:
            List of Samples, oldest first. Rows with an unparseable timestamp
            or a non-numeric or non-finite value are skipped.

        Raises:
            StoreCorruptError: If the file is not a readable store.
        """
        try:
            table = self._sample_table()
            if table is None:
                return []
            ts_col, value_col, meta_col = self._pick_columns(table)

            columns = [_quote_identifier(ts_col), _quote_identifier(value_col)]
            if meta_col is not None:
                columns.append(_quote_identifier(meta_col))
            rows = self._connection.execute(
                f"SELECT {', '.join(columns)} FROM {_quote_identifier(table)} "
                "ORDER BY rowid"
            ).fetchall()
        except sqlite3.Error as e:
            logger.error(
                "Failed to read metric store",
                extra={"path": str(self.path), "error": str(e)},
            )
            raise StoreCorruptError(
                f"Failed to read metric store: {e}",
                details={"path": str(self.path)},
            ) from e

        samples: list[Sample] = []
        skipped = 0
        for row in rows:
            timestamp = parse_timestamp(str(row[0])) if row[0] is not None else None
            try:
                value = float(row[1])
            except (TypeError, ValueError):
                timestamp = None
            else:
                if not math.isfinite(value):
                    timestamp = None
            if timestamp is None:
                skipped += 1
                continue

            metadata = None
            if meta_col is not None and row[2]:
                try:
                    metadata = json.loads(row[2])
                except json.JSONDecodeError:
                    metadata = None
            samples.append(Sample(timestamp=timestamp, value=value, metadata=metadata))

        if skipped:
            logger.debug(
                "Skipped unreadable rows",
                extra={"path": str(self.path), "skipped": skipped},
            )

        if samples:
            self._last_timestamp = samples[-1].timestamp
        return samples

    def _table_names(self) -> list[str]:
        rows = self._connection.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
        return [row[0] for row in rows]

    def _sample_table(self) -> str | None:
        """Name of the table holding samples, or None for an empty database."""
        tables = [t for t in self._table_names() if t != INFO_TABLE]
        for table in tables:
            if table.lower() == SAMPLE_TABLE:
                return table
        return tables[0] if tables else None

    def _pick_columns(self, table: str) -> tuple[str, str, str | None]:
        rows = self._connection.execute(
            f"PRAGMA table_info({_quote_identifier(table)})"
        ).fetchall()
        names = [row[1] for row in rows]

        def _find(candidates: tuple[str, ...]) -> str | None:
            for candidate in candidates:
                for name in names:
                    if name.lower() == candidate:
                        return name
            return None

        ts_col = _find(TIMESTAMP_COLUMNS)
        value_col = _find(VALUE_COLUMNS)
        if ts_col is None or value_col is None:
            raise StoreCorruptError(
                "Sample table has no timestamp/value columns",
                details={"path": str(self.path), "table": table, "columns": names},
            )
        return ts_col, value_col, _find(("metadata",))

    def close(self) -> None:
        """Close the underlying connection. Safe to call more than once."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> MetricStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
