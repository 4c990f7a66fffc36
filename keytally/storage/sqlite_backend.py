"""LocalSQLiteBackend — aiosqlite-based async storage backend.

Uses aiosqlite EXCLUSIVELY; the stdlib sqlite3 synchronous API would block
the event loop on every credential check.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (concurrent readers while writing)
  - Schema version guard: PRAGMA user_version=1, RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - One asyncio.Lock around every statement+commit pair: a statement and its
    commit are never split by another coroutine, so no uncommitted row is ever
    read back through the shared connection
  - Credential uniqueness: key_hash PRIMARY KEY; revoked rows are kept
  - Idempotent usage appends: INSERT OR IGNORE on event_id UNIQUE constraint
  - Every aiosqlite/sqlite failure is re-raised as StorageError
"""

from __future__ import annotations

import asyncio
import os
import sqlite3
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from keytally.errors import StorageError
from keytally.storage.models import CredentialRecord, UsageEvent, UsageEventFilters
from keytally.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    key_hash        TEXT PRIMARY KEY,
    allowed         INTEGER NOT NULL DEFAULT 1 CHECK(allowed IN (0, 1)),
    created_at      TEXT NOT NULL,
    revoked_at      TEXT
);

CREATE TABLE IF NOT EXISTS usage_events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id        TEXT NOT NULL UNIQUE,
    api_key         TEXT NOT NULL,
    endpoint        TEXT NOT NULL,
    called_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_usage_called_at
    ON usage_events(called_at DESC);

CREATE INDEX IF NOT EXISTS idx_usage_api_key
    ON usage_events(api_key);

CREATE INDEX IF NOT EXISTS idx_usage_endpoint_called_at
    ON usage_events(endpoint, called_at DESC);
"""

_SCHEMA_VERSION = 1

# Driver exceptions translated to StorageError. sqlite3.Error is the base of
# everything aiosqlite re-raises from its worker thread.
_DB_ERRORS = (sqlite3.Error, ValueError, OSError)


# ─── Row deserialisers ────────────────────────────────────────────────────────


def _row_to_credential(row: aiosqlite.Row) -> CredentialRecord:
    revoked_raw: Optional[str] = row["revoked_at"]
    return CredentialRecord(
        key_hash=row["key_hash"],
        allowed=bool(row["allowed"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        revoked_at=datetime.fromisoformat(revoked_raw) if revoked_raw else None,
    )


def _row_to_usage_event(row: aiosqlite.Row) -> UsageEvent:
    return UsageEvent(
        event_id=row["event_id"],
        api_key=row["api_key"],
        endpoint=row["endpoint"],
        called_at=datetime.fromisoformat(row["called_at"]),
    )


# ─── LocalSQLiteBackend ───────────────────────────────────────────────────────


class LocalSQLiteBackend:
    """Async SQLite storage backend using aiosqlite exclusively.

    Default path: ~/.keytally/keytally.db
    Override via: storage.path in config or KEYTALLY_DB_PATH.
    Pass ":memory:" for a throwaway in-process database.

    Usage:
        backend = LocalSQLiteBackend(db_path)
        await backend.initialize()   # raises RuntimeError on schema version mismatch
        await backend.insert_credential(key_hash, now)
        await backend.close()
    """

    name = "sqlite"

    def __init__(self, db_path: str = "~/.keytally/keytally.db") -> None:
        self._db_path: str = (
            db_path if db_path == ":memory:" else os.path.expanduser(db_path)
        )
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the SQLite connection, enable WAL mode, and create/verify schema.

        Steps:
          1. Create parent directory if absent
          2. Open aiosqlite connection (long-lived; reused on repeat calls)
          3. Enable WAL: PRAGMA journal_mode=WAL
          4. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → no-op (idempotent)
             - other: raises RuntimeError

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
            StorageError: If the file cannot be opened or the DDL fails.
        """
        if self._db is None:
            parent_dir = os.path.dirname(self._db_path)
            if parent_dir and self._db_path != ":memory:":
                os.makedirs(parent_dir, exist_ok=True)
            try:
                self._db = await aiosqlite.connect(self._db_path)
            except _DB_ERRORS as exc:
                raise StorageError(f"Cannot open database {self._db_path}") from exc
            self._db.row_factory = aiosqlite.Row

        async with self._lock:
            try:
                await self._db.execute("PRAGMA journal_mode=WAL;")
                cursor = await self._db.execute("PRAGMA user_version;")
                row = await cursor.fetchone()
                current_version: int = row[0] if row else 0

                if current_version == 0:
                    await self._db.executescript(_CREATE_SCHEMA_SQL)
                    await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
                    await self._db.commit()
                    logger.info(
                        "storage_schema_created",
                        db_path=self._db_path,
                        schema_version=_SCHEMA_VERSION,
                    )
                    return
            except _DB_ERRORS as exc:
                raise StorageError("Schema initialization failed") from exc

        if current_version == _SCHEMA_VERSION:
            logger.info(
                "storage_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
            return

        await self.close()
        raise RuntimeError(
            f"Unsupported keytally database schema version: {current_version}. "
            f"Delete {self._db_path} to reset."
        )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("storage_closed", db_path=self._db_path)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Database not initialized; call initialize() first")
        return self._db

    async def _rollback_quietly(self) -> None:
        if self._db is None:
            return
        try:
            await self._db.rollback()
        except _DB_ERRORS as exc:
            logger.warning("storage_rollback_failed", error=str(exc))

    # ── Credentials ───────────────────────────────────────────────────────────

    async def insert_credential(self, key_hash: str, created_at: datetime) -> bool:
        """INSERT an allowed row; False on PRIMARY KEY conflict."""
        async with self._lock:
            db = self._conn()
            try:
                await db.execute(
                    "INSERT INTO api_keys (key_hash, allowed, created_at) VALUES (?, 1, ?)",
                    (key_hash, created_at.isoformat()),
                )
                await db.commit()
            except sqlite3.IntegrityError:
                await self._rollback_quietly()
                return False
            except _DB_ERRORS as exc:
                await self._rollback_quietly()
                raise StorageError("Failed to persist credential") from exc
        return True

    async def revoke_credential(self, key_hash: str, revoked_at: datetime) -> bool:
        """UPDATE allowed=0 for an allowed row; True if one changed."""
        async with self._lock:
            db = self._conn()
            try:
                cursor = await db.execute(
                    "UPDATE api_keys SET allowed = 0, revoked_at = ? "
                    "WHERE key_hash = ? AND allowed = 1",
                    (revoked_at.isoformat(), key_hash),
                )
                await db.commit()
            except _DB_ERRORS as exc:
                await self._rollback_quietly()
                raise StorageError("Failed to revoke credential") from exc
        return cursor.rowcount > 0

    async def get_credential(self, key_hash: str) -> Optional[CredentialRecord]:
        async with self._lock:
            db = self._conn()
            try:
                cursor = await db.execute(
                    "SELECT key_hash, allowed, created_at, revoked_at "
                    "FROM api_keys WHERE key_hash = ?",
                    (key_hash,),
                )
                row = await cursor.fetchone()
            except _DB_ERRORS as exc:
                raise StorageError("Failed to read credential") from exc
        return _row_to_credential(row) if row is not None else None

    # ── Usage log ─────────────────────────────────────────────────────────────

    async def append_usage_event(self, event: UsageEvent) -> None:
        """INSERT OR IGNORE on event_id, so appends are idempotent.

        Unlike an audit sink, this raises StorageError on failure; swallowing
        and logging is the UsageRecorder's job.
        """
        async with self._lock:
            db = self._conn()
            try:
                await db.execute(
                    "INSERT OR IGNORE INTO usage_events "
                    "(event_id, api_key, endpoint, called_at) VALUES (?, ?, ?, ?)",
                    (
                        event.event_id,
                        event.api_key,
                        event.endpoint,
                        event.called_at.isoformat(),
                    ),
                )
                await db.commit()
            except _DB_ERRORS as exc:
                await self._rollback_quietly()
                raise StorageError("Failed to append usage event") from exc

    async def query_usage_events(self, filters: UsageEventFilters) -> list[UsageEvent]:
        """Return matching events sorted by called_at DESC."""
        sql, params = _build_select_sql(filters, count_only=False)
        async with self._lock:
            db = self._conn()
            try:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
            except _DB_ERRORS as exc:
                raise StorageError("Failed to query usage events") from exc
        return [_row_to_usage_event(row) for row in rows]

    async def count_usage_events(self, filters: UsageEventFilters) -> int:
        """SELECT COUNT(*) with the same filters, ignoring limit/offset."""
        sql, params = _build_select_sql(filters, count_only=True)
        async with self._lock:
            db = self._conn()
            try:
                cursor = await db.execute(sql, params)
                row = await cursor.fetchone()
            except _DB_ERRORS as exc:
                raise StorageError("Failed to count usage events") from exc
        return row[0] if row else 0

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        if self._db is None:
            return False
        try:
            async with self._lock:
                await self._db.execute("SELECT 1")
            return True
        except _DB_ERRORS:
            return False


# ─── SQL Builder Helper ───────────────────────────────────────────────────────


def _build_select_sql(
    filters: UsageEventFilters, *, count_only: bool
) -> tuple[str, list[Any]]:
    """Build a parameterized SELECT over usage_events from UsageEventFilters.

    Returns:
        (sql_string, params_list) — pass directly to aiosqlite.Connection.execute()

    All filter values use ? placeholders; limit/offset are coerced to int.
    """
    if count_only:
        sql = "SELECT COUNT(*) FROM usage_events"
    else:
        sql = "SELECT event_id, api_key, endpoint, called_at FROM usage_events"

    conditions: list[str] = []
    params: list[Any] = []

    if filters.api_key is not None:
        conditions.append("api_key = ?")
        params.append(filters.api_key)

    if filters.endpoint is not None:
        conditions.append("endpoint = ?")
        params.append(filters.endpoint)

    if filters.since is not None:
        conditions.append("called_at >= ?")
        params.append(filters.since.isoformat())

    if filters.until is not None:
        conditions.append("called_at <= ?")
        params.append(filters.until.isoformat())

    if conditions:
        sql += " WHERE " + " AND ".join(conditions)

    if not count_only:
        sql += " ORDER BY called_at DESC, id DESC"
        sql += f" LIMIT {int(filters.limit)} OFFSET {int(filters.offset)}"

    return sql, params
