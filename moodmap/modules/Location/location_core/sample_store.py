"""SQLite-backed store for positional samples.

One table, keyed by whole epoch seconds::

    samples(timestamp INTEGER PRIMARY KEY, latitude REAL, longitude REAL)

All engine work runs in worker threads via ``asyncio.to_thread``. Writes are
serialized through a single writer connection; file databases run in WAL mode
with a second, read-only connection so reads never wait on an in-flight insert
and only ever see committed rows.
"""

from __future__ import annotations

import asyncio
import re
import sqlite3
import threading
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Tuple, TypeVar, Union

from moodmap.core.logging_utils import get_module_logger
from .constants import DEFAULT_ITER_BATCH_SIZE, MAX_TIMESTAMP, SAMPLES_TABLE
from .errors import InvalidSample, QueryFailed, StorageUnavailable
from .sample import Sample

logger = get_module_logger("SampleStore")

T = TypeVar("T")

MEMORY_DB = ":memory:"

_DIGITS = re.compile(r"[0-9]+")

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {SAMPLES_TABLE} (
    timestamp INTEGER PRIMARY KEY,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL
)
"""

_UPSERT = (
    f"INSERT INTO {SAMPLES_TABLE} (timestamp, latitude, longitude) VALUES (?, ?, ?) "
    "ON CONFLICT(timestamp) DO UPDATE SET "
    "latitude = excluded.latitude, longitude = excluded.longitude"
)

_SELECT = f"SELECT timestamp, latitude, longitude FROM {SAMPLES_TABLE}"


def prefix_ranges(prefix: str) -> List[Tuple[int, int]]:
    """Inclusive integer ranges whose decimal rendering starts with ``prefix``.

    ``"17"`` covers 17, 170-179, 1700-1799, ... up to the 64-bit limit, which
    lets a text-prefix match use the primary key instead of a table scan.
    Non-digit prefixes match nothing.
    """
    if not prefix or not _DIGITS.fullmatch(prefix):
        return []
    if prefix.startswith("0"):
        # Only zero itself renders with a leading zero.
        return [(0, 0)] if prefix == "0" else []

    base = int(prefix)
    ranges: List[Tuple[int, int]] = []
    scale = 1
    while base * scale <= MAX_TIMESTAMP:
        low = base * scale
        high = min((base + 1) * scale - 1, MAX_TIMESTAMP)
        ranges.append((low, high))
        scale *= 10
    return ranges


class SampleStore:
    """Durable, idempotent store of :class:`Sample` rows.

    Example:
        store = SampleStore(Path("samples.db"))
        await store.open()
        await store.insert(Sample.create(1000, 48.1, 11.5))
        first = await store.get_first()
        await store.close()
    """

    def __init__(self, db_path: Union[Path, str]):
        """Initialize the store.

        Args:
            db_path: SQLite file path, or ``":memory:"`` for a private
                in-process database.
        """
        self.db_path: Union[Path, str] = db_path if str(db_path) == MEMORY_DB else Path(db_path)

        self._writer: Optional[sqlite3.Connection] = None
        self._reader: Optional[sqlite3.Connection] = None

        # asyncio locks order callers; threading locks guard each connection
        # even if a cancelled caller leaves a worker thread running.
        self._write_lock = asyncio.Lock()
        self._writer_guard = threading.Lock()
        if self.is_memory:
            self._read_lock = self._write_lock
            self._reader_guard = self._writer_guard
        else:
            self._read_lock = asyncio.Lock()
            self._reader_guard = threading.Lock()

        self._open = False

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == MEMORY_DB

    @property
    def is_open(self) -> bool:
        return self._open

    async def __aenter__(self) -> "SampleStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """Open the database and create the schema if absent.

        Calling this on an open store is a no-op.

        Raises:
            StorageUnavailable: If the database cannot be opened or created.
        """
        async with self._write_lock:
            if self._open:
                return
            try:
                self._writer, self._reader = await asyncio.to_thread(self._open_sync)
            except (sqlite3.Error, OSError) as exc:
                logger.error("Cannot open sample store at %s: %s", self.db_path, exc)
                raise StorageUnavailable(f"Cannot open sample store at {self.db_path}: {exc}") from exc
            self._open = True
        logger.info("Sample store ready at %s", self.db_path)

    def _open_sync(self) -> Tuple[sqlite3.Connection, sqlite3.Connection]:
        if self.is_memory:
            writer = sqlite3.connect(MEMORY_DB, check_same_thread=False)
            try:
                with writer:
                    writer.execute(_SCHEMA)
            except sqlite3.Error:
                writer.close()
                raise
            return writer, writer

        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        writer = sqlite3.connect(str(path), check_same_thread=False, timeout=10.0)
        try:
            writer.execute("PRAGMA journal_mode=WAL")
            writer.execute("PRAGMA synchronous=NORMAL")
            with writer:
                writer.execute(_SCHEMA)
            reader = sqlite3.connect(
                f"{path.resolve().as_uri()}?mode=ro",
                uri=True,
                check_same_thread=False,
                timeout=10.0,
            )
        except sqlite3.Error:
            writer.close()
            raise
        return writer, reader

    async def close(self) -> None:
        """Close both connections once in-flight operations finish."""
        async with self._write_lock:
            if not self._open:
                return
            if self.is_memory:
                await asyncio.to_thread(self._close_connections)
            else:
                async with self._read_lock:
                    await asyncio.to_thread(self._close_connections)
        logger.info("Sample store closed (%s)", self.db_path)

    def _close_connections(self) -> None:
        with self._writer_guard:
            if self._reader is not None and self._reader is not self._writer:
                with self._reader_guard:
                    self._reader.close()
            if self._writer is not None:
                self._writer.close()
        self._writer = None
        self._reader = None
        self._open = False

    # =========================================================================
    # Engine plumbing
    # =========================================================================

    def _require_open(self) -> None:
        if not self._open:
            raise StorageUnavailable("Sample store is not open")

    async def _run_write(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        async with self._write_lock:
            self._require_open()
            conn = self._writer
            guard = self._writer_guard

            def _call() -> T:
                with guard:
                    with conn:
                        return func(conn)

            try:
                return await asyncio.to_thread(_call)
            except sqlite3.Error as exc:
                logger.error("%s failed: %s", operation, exc)
                raise QueryFailed(f"{operation} failed: {exc}") from exc

    async def _run_read(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        async with self._read_lock:
            self._require_open()
            conn = self._reader
            guard = self._reader_guard

            def _call() -> T:
                with guard:
                    return func(conn)

            try:
                return await asyncio.to_thread(_call)
            except sqlite3.Error as exc:
                logger.error("%s failed: %s", operation, exc)
                raise QueryFailed(f"{operation} failed: {exc}") from exc

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert(self, sample: Sample) -> None:
        """Insert one sample, replacing the coordinates of an existing timestamp.

        Raises:
            InvalidSample: If the sample fails validation.
            QueryFailed: If the engine rejects the write.
            StorageUnavailable: If the store is not open.
        """
        if not isinstance(sample, Sample):
            raise InvalidSample(f"Expected Sample, got {type(sample).__name__}")
        sample.validate()
        row = sample.to_row()
        await self._run_write("insert", lambda conn: conn.execute(_UPSERT, row))

    async def clear_all(self) -> int:
        """Delete every row. Waits for any in-flight write first.

        Returns:
            Number of rows removed.
        """
        removed = await self._run_write(
            "clear_all",
            lambda conn: conn.execute(f"DELETE FROM {SAMPLES_TABLE}").rowcount,
        )
        logger.info("Cleared %d samples", removed)
        return removed

    async def prune(self, max_rows: int) -> int:
        """Delete the oldest rows so that at most ``max_rows`` remain.

        A non-positive ``max_rows`` means unbounded retention and deletes nothing.

        Returns:
            Number of rows removed.
        """
        if max_rows <= 0:
            return 0
        sql = (
            f"DELETE FROM {SAMPLES_TABLE} WHERE timestamp < ("
            f"SELECT timestamp FROM {SAMPLES_TABLE} ORDER BY timestamp DESC LIMIT 1 OFFSET ?)"
        )
        removed = await self._run_write("prune", lambda conn: conn.execute(sql, (max_rows - 1,)).rowcount)
        if removed:
            logger.debug("Pruned %d samples (max_rows=%d)", removed, max_rows)
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    async def count(self) -> int:
        return await self._run_read(
            "count",
            lambda conn: conn.execute(f"SELECT COUNT(*) FROM {SAMPLES_TABLE}").fetchone()[0],
        )

    async def get_first(self) -> Optional[Sample]:
        """Sample with the smallest timestamp, or None when the store is empty."""
        row = await self._run_read(
            "get_first",
            lambda conn: conn.execute(f"{_SELECT} ORDER BY timestamp ASC LIMIT 1").fetchone(),
        )
        return Sample.from_row(row) if row else None

    async def get_last(self) -> Optional[Sample]:
        """Sample with the largest timestamp, or None when the store is empty."""
        row = await self._run_read(
            "get_last",
            lambda conn: conn.execute(f"{_SELECT} ORDER BY timestamp DESC LIMIT 1").fetchone(),
        )
        return Sample.from_row(row) if row else None

    async def get_by_timestamp_prefix(self, prefix: str) -> List[Sample]:
        """All samples whose decimal timestamp starts with ``prefix``, ascending.

        Returns an empty list when nothing matches or ``prefix`` is not a
        run of decimal digits.
        """
        ranges = prefix_ranges(str(prefix))
        if not ranges:
            logger.debug("No timestamp can match prefix %r", prefix)
            return []

        where = " OR ".join("timestamp BETWEEN ? AND ?" for _ in ranges)
        params = [bound for pair in ranges for bound in pair]
        sql = f"{_SELECT} WHERE {where} ORDER BY timestamp ASC"
        rows = await self._run_read(
            "get_by_timestamp_prefix",
            lambda conn: conn.execute(sql, params).fetchall(),
        )
        return [Sample.from_row(row) for row in rows]

    async def iter_all(self, batch_size: int = DEFAULT_ITER_BATCH_SIZE) -> AsyncIterator[Sample]:
        """Stream every sample in ascending timestamp order.

        Rows are fetched in keyset pages of ``batch_size`` so the table is never
        loaded into memory at once. Rows inserted mid-iteration with a larger
        timestamp than the current page are included.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        sql = f"{_SELECT} WHERE timestamp > ? ORDER BY timestamp ASC LIMIT ?"
        after = -1
        while True:
            rows = await self._run_read(
                "iter_all",
                lambda conn, after=after: conn.execute(sql, (after, batch_size)).fetchall(),
            )
            for row in rows:
                yield Sample.from_row(row)
            if len(rows) < batch_size:
                return
            after = rows[-1][0]


__all__ = ["SampleStore", "prefix_ranges", "MEMORY_DB"]
