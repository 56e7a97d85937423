"""SQLite-backed response cache with TTL expiration."""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from clai.errors import CacheError

logger = logging.getLogger(__name__)

DB_FILENAME = "clai_cache.sqlite"

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS responses ("
    "cache_key TEXT PRIMARY KEY, "
    "response TEXT NOT NULL, "
    "provider TEXT NOT NULL, "
    "created_at TEXT NOT NULL"
    ")",
    "CREATE INDEX IF NOT EXISTS idx_responses_created_at ON responses(created_at)",
)


def cache_key(text: str, mode: str, provider: str) -> str:
    """Fingerprint of a cacheable request: sha256 over ``text:mode:provider``."""
    combined = ":".join((text, mode, provider))
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    response: str
    provider: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class CacheStats:
    count: int
    size_bytes: int
    path: Path


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_db(value: datetime) -> str:
    # fixed width so lexical order matches time order
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class CacheStore:
    """One row per key; rows older than ``ttl_days`` are dropped when read.

    Every operation opens a short-lived connection in WAL mode, so the store
    can be shared by concurrent tasks and by separate clai processes. Readers
    see either the old or the new row while a writer upserts.
    """

    def __init__(
        self,
        directory: Path,
        ttl_days: int = 7,
        *,
        clock: Callable[[], datetime] = _utcnow,
        sweep_on_open: bool = True,
    ) -> None:
        if ttl_days <= 0:
            raise ValueError("ttl_days must be > 0")
        self.directory = Path(directory)
        self.db_path = self.directory / DB_FILENAME
        self.ttl = timedelta(days=ttl_days)
        self._clock = clock
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self._conn() as conn:
                conn.execute("PRAGMA journal_mode = WAL")
                for statement in _SCHEMA:
                    conn.execute(statement)
        except (OSError, sqlite3.Error) as exc:
            raise CacheError(f"cannot open cache at {self.db_path}: {exc}") from exc
        if sweep_on_open:
            threading.Thread(
                target=self._background_sweep, name="clai-cache-sweep", daemon=True
            ).start()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode keeps write locks short across processes.
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA busy_timeout = 10000")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _expired(self, created_at: datetime) -> bool:
        return self._clock() >= created_at + self.ttl

    def get(self, key: str) -> CacheEntry | None:
        try:
            with self._conn() as conn:
                row = conn.execute(
                    "SELECT response, provider, created_at FROM responses WHERE cache_key=?",
                    (key,),
                ).fetchone()
                if row is None:
                    return None
                created_at = datetime.fromisoformat(str(row["created_at"]))
                if self._expired(created_at):
                    # only drop the row we judged stale; a concurrent writer may have replaced it
                    conn.execute(
                        "DELETE FROM responses WHERE cache_key=? AND created_at=?",
                        (key, row["created_at"]),
                    )
                    logger.debug("Dropped expired cache entry %s", key[:12])
                    return None
        except (sqlite3.Error, ValueError) as exc:
            raise CacheError(f"cache read failed: {exc}") from exc
        return CacheEntry(
            key=key,
            response=str(row["response"]),
            provider=str(row["provider"]),
            created_at=created_at,
        )

    def set(self, key: str, response: str, provider: str) -> None:
        try:
            with self._conn() as conn:
                conn.execute(
                    (
                        "INSERT INTO responses(cache_key, response, provider, created_at) "
                        "VALUES(?,?,?,?) "
                        "ON CONFLICT(cache_key) DO UPDATE SET "
                        "response=excluded.response, provider=excluded.provider, "
                        "created_at=excluded.created_at"
                    ),
                    (key, response, provider, _to_db(self._clock())),
                )
        except sqlite3.Error as exc:
            raise CacheError(f"cache write failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._conn() as conn:
                conn.execute("DELETE FROM responses WHERE cache_key=?", (key,))
        except sqlite3.Error as exc:
            raise CacheError(f"cache delete failed: {exc}") from exc

    def clear_all(self) -> int:
        try:
            with self._conn() as conn:
                cursor = conn.execute("DELETE FROM responses")
                return int(cursor.rowcount)
        except sqlite3.Error as exc:
            raise CacheError(f"cache clear failed: {exc}") from exc

    def cleanup_expired(self) -> int:
        cutoff = _to_db(self._clock() - self.ttl)
        try:
            with self._conn() as conn:
                cursor = conn.execute("DELETE FROM responses WHERE created_at <= ?", (cutoff,))
                return int(cursor.rowcount)
        except sqlite3.Error as exc:
            raise CacheError(f"cache cleanup failed: {exc}") from exc

    def _background_sweep(self) -> None:
        try:
            removed = self.cleanup_expired()
        except CacheError as exc:
            logger.debug("Background cache sweep failed: %s", exc)
            return
        if removed:
            logger.debug("Background cache sweep removed %d entries", removed)

    def stats(self) -> CacheStats:
        try:
            with self._conn() as conn:
                row = conn.execute("SELECT COUNT(*) AS n FROM responses").fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"cache stats failed: {exc}") from exc
        size = 0
        for suffix in ("", "-wal", "-shm"):
            part = self.db_path.with_name(self.db_path.name + suffix)
            try:
                size += part.stat().st_size
            except FileNotFoundError:
                continue
        return CacheStats(count=int(row["n"]), size_bytes=size, path=self.db_path)


def open_cache(directory: Path, ttl_days: int) -> CacheStore | None:
    """Open the store, or return None so callers degrade to uncached operation."""
    try:
        return CacheStore(directory, ttl_days)
    except CacheError as exc:
        logger.warning("Response cache disabled: %s", exc)
        return None
