"""DuckDB backup journal for unit rewrites.

Append-only history of original/rewritten text pairs, one record per
rewrite, keyed by a monotonic sequence id. A record's status only moves
forward::

    BACKED_UP -> UPDATED -> ROLLED_BACK

Every transition is also written to ``backup_events`` in the same
transaction, so the full status history of a record stays queryable.
``original_text`` is written once by :meth:`BackupJournal.append` and no
method updates it.

Records are never deleted except by :meth:`BackupJournal.purge`, which
requires an explicit ``confirm=True``.
"""
from __future__ import annotations

import contextlib
import importlib
import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, TypeAlias

from procmod.io_utils import save_jsonl
from procmod.unit_types import UnitIdentity

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

log = logging.getLogger(__name__)

BackupStatus: TypeAlias = Literal["BACKED_UP", "UPDATED", "ROLLED_BACK"]

BACKED_UP: BackupStatus = "BACKED_UP"
UPDATED: BackupStatus = "UPDATED"
ROLLED_BACK: BackupStatus = "ROLLED_BACK"

# The only legal transitions: current status -> next status.
_NEXT_STATUS: dict[str, BackupStatus] = {
    BACKED_UP: UPDATED,
    UPDATED: ROLLED_BACK,
}

SCHEMA_VERSION = "1.0.0"


class JournalWriteFailure(RuntimeError):
    """Raised when a backup record could not be durably written."""


class InvalidTransition(ValueError):
    """Raised on any status change other than the forward transitions."""


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass(frozen=True, slots=True)
class BackupRecord:
    backup_id: int
    schema_name: str
    unit_name: str
    original_text: str
    rewritten_text: str | None
    status: BackupStatus
    created_at: datetime
    updated_at: datetime | None = None
    rolled_back_at: datetime | None = None

    @property
    def identity(self) -> UnitIdentity:
        return UnitIdentity(self.schema_name, self.unit_name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class BackupEvent:
    event_id: int
    backup_id: int
    from_status: str | None
    to_status: str
    created_at: datetime


_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
);

CREATE SEQUENCE IF NOT EXISTS backup_seq START 1;

CREATE TABLE IF NOT EXISTS modernization_backups (
    backup_id BIGINT PRIMARY KEY DEFAULT nextval('backup_seq'),
    schema_name VARCHAR NOT NULL,
    unit_name VARCHAR NOT NULL,
    original_text VARCHAR NOT NULL,
    rewritten_text VARCHAR,
    status VARCHAR NOT NULL DEFAULT 'BACKED_UP',
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP,
    rolled_back_at TIMESTAMP
);

CREATE SEQUENCE IF NOT EXISTS backup_event_seq START 1;

CREATE TABLE IF NOT EXISTS backup_events (
    event_id BIGINT PRIMARY KEY DEFAULT nextval('backup_event_seq'),
    backup_id BIGINT NOT NULL,
    from_status VARCHAR,
    to_status VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL
);
"""

_RECORD_COLS = (
    "backup_id, schema_name, unit_name, original_text, rewritten_text, "
    "status, created_at, updated_at, rolled_back_at"
)

# Timestamp column stamped by each target status.
_STATUS_TIMESTAMP: dict[str, str] = {
    UPDATED: "updated_at",
    ROLLED_BACK: "rolled_back_at",
}


def _record(row: tuple[Any, ...]) -> BackupRecord:
    return BackupRecord(
        backup_id=int(row[0]),
        schema_name=str(row[1]),
        unit_name=str(row[2]),
        original_text=str(row[3]),
        rewritten_text=row[4],
        status=row[5],
        created_at=row[6],
        updated_at=row[7],
        rolled_back_at=row[8],
    )


class BackupJournal:
    """Read/write interface to the backup journal database."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        create_if_missing: bool = False,
    ) -> None:
        in_memory = str(db_path) == ":memory:"
        self._db_path = None if in_memory else Path(db_path)
        if self._db_path is not None and not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Journal database not found: {self._db_path}")
        self._conn: Any = _duckdb_mod.connect(str(db_path))
        self._create_schema()

    def _create_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.execute(
            "INSERT OR REPLACE INTO _schema_version (table_name, version) VALUES (?, ?)",
            ["journal", SCHEMA_VERSION],
        )

    # ─── Writes ──────────────────────────────────────────────────

    def append(
        self,
        identity: UnitIdentity,
        original_text: str,
        rewritten_text: str | None,
    ) -> BackupRecord:
        """Append a BACKED_UP record; raise JournalWriteFailure if not durable."""
        now = _now()
        self._conn.execute("BEGIN TRANSACTION")
        try:
            row = self._conn.execute(f"""
                INSERT INTO modernization_backups
                (schema_name, unit_name, original_text, rewritten_text, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING {_RECORD_COLS}
            """, [
                identity.schema_name, identity.name,
                original_text, rewritten_text, BACKED_UP, now,
            ]).fetchone()
            self._log_event(int(row[0]), None, BACKED_UP, now)
            self._conn.execute("COMMIT")
        except _duckdb_mod.Error as exc:
            with contextlib.suppress(_duckdb_mod.Error):
                self._conn.execute("ROLLBACK")
            raise JournalWriteFailure(
                f"Could not back up {identity.qualified}: {exc}",
            ) from exc
        record = _record(row)
        log.debug("Backed up %s as record %d", identity.qualified, record.backup_id)
        return record

    def mark_updated(self, backup_id: int) -> BackupRecord:
        return self._transition(backup_id, UPDATED)

    def mark_rolled_back(self, backup_id: int) -> BackupRecord:
        return self._transition(backup_id, ROLLED_BACK)

    def _transition(self, backup_id: int, to_status: BackupStatus) -> BackupRecord:
        current = self.get(backup_id)
        if current is None:
            raise KeyError(f"Backup record not found: {backup_id}")
        if _NEXT_STATUS.get(current.status) != to_status:
            raise InvalidTransition(
                f"Record {backup_id}: {current.status} -> {to_status} is not allowed",
            )
        now = _now()
        column = _STATUS_TIMESTAMP[to_status]
        self._conn.execute("BEGIN TRANSACTION")
        try:
            self._conn.execute(
                f"UPDATE modernization_backups SET status = ?, {column} = ? "
                "WHERE backup_id = ? AND status = ?",
                [to_status, now, backup_id, current.status],
            )
            self._log_event(backup_id, current.status, to_status, now)
            self._conn.execute("COMMIT")
        except _duckdb_mod.Error as exc:
            with contextlib.suppress(_duckdb_mod.Error):
                self._conn.execute("ROLLBACK")
            raise JournalWriteFailure(
                f"Could not mark backup {backup_id} {to_status}: {exc}",
            ) from exc
        updated = self.get(backup_id)
        if updated is None:
            raise KeyError(f"Backup record not found: {backup_id}")
        return updated

    def _log_event(
        self,
        backup_id: int,
        from_status: str | None,
        to_status: str,
        created_at: datetime,
    ) -> None:
        self._conn.execute(
            "INSERT INTO backup_events (backup_id, from_status, to_status, created_at) "
            "VALUES (?, ?, ?, ?)",
            [backup_id, from_status, to_status, created_at],
        )

    # ─── Reads ───────────────────────────────────────────────────

    def get(self, backup_id: int) -> BackupRecord | None:
        row = self._conn.execute(
            f"SELECT {_RECORD_COLS} FROM modernization_backups WHERE backup_id = ?",
            [backup_id],
        ).fetchone()
        return _record(row) if row else None

    def history(self, identity: UnitIdentity) -> list[BackupRecord]:
        """All records for a unit, oldest first."""
        return self.records(identity=identity)

    def records(
        self,
        *,
        status: BackupStatus | None = None,
        identity: UnitIdentity | None = None,
    ) -> list[BackupRecord]:
        conditions: list[str] = []
        params: list[Any] = []
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        if identity is not None:
            conditions.append("schema_name = ? AND unit_name = ?")
            params.extend([identity.schema_name, identity.name])
        where = " WHERE " + " AND ".join(conditions) if conditions else ""
        rows = self._conn.execute(
            f"SELECT {_RECORD_COLS} FROM modernization_backups{where} ORDER BY backup_id",
            params,
        ).fetchall()
        return [_record(r) for r in rows]

    def latest_updated(
        self,
        identity: UnitIdentity,
        backup_id: int | None = None,
    ) -> BackupRecord | None:
        """Most recent UPDATED record for *identity* (optionally one specific id)."""
        params: list[Any] = [identity.schema_name, identity.name, UPDATED]
        extra = ""
        if backup_id is not None:
            extra = " AND backup_id = ?"
            params.append(backup_id)
        row = self._conn.execute(
            f"SELECT {_RECORD_COLS} FROM modernization_backups "
            f"WHERE schema_name = ? AND unit_name = ? AND status = ?{extra} "
            "ORDER BY backup_id DESC LIMIT 1",
            params,
        ).fetchone()
        return _record(row) if row else None

    def events(self, backup_id: int) -> list[BackupEvent]:
        rows = self._conn.execute(
            "SELECT event_id, backup_id, from_status, to_status, created_at "
            "FROM backup_events WHERE backup_id = ? ORDER BY event_id",
            [backup_id],
        ).fetchall()
        return [
            BackupEvent(int(r[0]), int(r[1]), r[2], str(r[3]), r[4]) for r in rows
        ]

    def count_by_status(self) -> dict[str, int]:
        counts = {BACKED_UP: 0, UPDATED: 0, ROLLED_BACK: 0}
        rows = self._conn.execute(
            "SELECT status, COUNT(*) FROM modernization_backups GROUP BY status",
        ).fetchall()
        for status, n in rows:
            counts[str(status)] = int(n)
        return counts

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM modernization_backups").fetchone()
        return int(row[0]) if row else 0

    # ─── Export / purge ──────────────────────────────────────────

    def export_jsonl(self, path: Path) -> int:
        """Write every record to a JSON Lines file; returns the record count."""
        rows = [r.to_dict() for r in self.records()]
        save_jsonl(rows, path)
        return len(rows)

    def purge(self, *, confirm: bool = False) -> int:
        """Delete all records and events. Requires ``confirm=True``."""
        if not confirm:
            raise ValueError("Refusing to purge the backup journal without confirm=True")
        removed = self.count()
        self._conn.execute("BEGIN TRANSACTION")
        try:
            self._conn.execute("DELETE FROM backup_events")
            self._conn.execute("DELETE FROM modernization_backups")
            self._conn.execute("COMMIT")
        except Exception:
            with contextlib.suppress(Exception):
                self._conn.execute("ROLLBACK")
            raise
        log.info("Purged %d backup record(s)", removed)
        return removed

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> BackupJournal:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
