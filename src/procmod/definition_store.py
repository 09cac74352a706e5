"""Definition stores: where unit text is read from and committed to.

Two interfaces are consumed by the controllers:

* ``CatalogProvider.iter_units``: ordered enumeration of candidate units.
* ``DefinitionStore.get_text`` / ``set_text``: read and commit unit text.

Both are implemented by:

* :class:`DuckDBDefinitionStore`: a ``unit_definitions`` table in a
  DuckDB file (or ``:memory:``).
* :class:`SqlDirectoryStore`: one ``<schema>.<name>.sql`` file per unit.
"""
from __future__ import annotations

import importlib
import logging
import re
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from procmod.analysis import has_legacy_signature
from procmod.unit_types import DEFAULT_SCHEMA, SourceUnit, UnitIdentity, UnitScope

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

log = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"

_KIND_RE = re.compile(
    r"\b(?:CREATE(?:\s+OR\s+ALTER)?|ALTER)\s+(PROCEDURE|PROC|FUNCTION|TRIGGER|VIEW)\b",
    re.IGNORECASE,
)


class CommitFailure(RuntimeError):
    """Raised when writing unit text back to a definition store fails."""

    def __init__(self, identity: UnitIdentity, reason: str) -> None:
        super().__init__(f"Commit failed for {identity.qualified}: {reason}")
        self.identity = identity
        self.reason = reason


class CatalogProvider(Protocol):
    def iter_units(
        self,
        schema_name: str | None = None,
        unit_name: str | None = None,
        *,
        legacy_only: bool = False,
    ) -> Iterator[SourceUnit]: ...


class DefinitionStore(Protocol):
    def get_text(self, identity: UnitIdentity) -> str: ...

    def set_text(self, identity: UnitIdentity, text: str) -> None: ...


def detect_unit_kind(text: str) -> str:
    """Normalized unit kind from the first definition keyword, default PROCEDURE."""
    m = _KIND_RE.search(text)
    if m is None:
        return "PROCEDURE"
    kind = m.group(1).upper()
    return "PROCEDURE" if kind == "PROC" else kind


def _filter_units(
    units: Iterable[SourceUnit],
    scope: UnitScope,
    legacy_only: bool,
) -> Iterator[SourceUnit]:
    for unit in units:
        if not scope.matches(unit.identity):
            continue
        if legacy_only and not has_legacy_signature(unit.text):
            continue
        yield unit


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS unit_definitions (
    schema_name VARCHAR NOT NULL,
    unit_name VARCHAR NOT NULL,
    unit_kind VARCHAR NOT NULL DEFAULT 'PROCEDURE',
    definition VARCHAR NOT NULL,
    modified_at TIMESTAMP,
    PRIMARY KEY (schema_name, unit_name)
);
"""


class DuckDBDefinitionStore:
    """Read/write definition store backed by a DuckDB table."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        create_if_missing: bool = False,
    ) -> None:
        self._in_memory = str(db_path) == ":memory:"
        self._db_path = Path(db_path) if not self._in_memory else None
        if self._db_path is not None and not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Definitions database not found: {self._db_path}")
        self._conn: Any = _duckdb_mod.connect(str(db_path))
        self._create_schema()

    def _create_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.execute(
            "INSERT OR REPLACE INTO _schema_version (table_name, version) VALUES (?, ?)",
            ["definitions", SCHEMA_VERSION],
        )

    def put_unit(self, identity: UnitIdentity, text: str, *, kind: str | None = None) -> None:
        """Insert or replace a unit definition."""
        self._conn.execute(
            "INSERT OR REPLACE INTO unit_definitions "
            "(schema_name, unit_name, unit_kind, definition, modified_at) "
            "VALUES (?, ?, ?, ?, ?)",
            [identity.schema_name, identity.name, kind or detect_unit_kind(text), text, _now()],
        )

    def get_text(self, identity: UnitIdentity) -> str:
        row = self._conn.execute(
            "SELECT definition FROM unit_definitions WHERE schema_name = ? AND unit_name = ?",
            [identity.schema_name, identity.name],
        ).fetchone()
        if row is None:
            raise KeyError(f"Unit not found: {identity.qualified}")
        return str(row[0])

    def set_text(self, identity: UnitIdentity, text: str) -> None:
        try:
            row = self._conn.execute(
                "SELECT 1 FROM unit_definitions WHERE schema_name = ? AND unit_name = ?",
                [identity.schema_name, identity.name],
            ).fetchone()
            if row is None:
                raise CommitFailure(identity, "unit does not exist")
            self._conn.execute(
                "UPDATE unit_definitions SET definition = ?, modified_at = ? "
                "WHERE schema_name = ? AND unit_name = ?",
                [text, _now(), identity.schema_name, identity.name],
            )
        except _duckdb_mod.Error as exc:
            raise CommitFailure(identity, str(exc)) from exc

    def iter_units(
        self,
        schema_name: str | None = None,
        unit_name: str | None = None,
        *,
        legacy_only: bool = False,
    ) -> Iterator[SourceUnit]:
        conditions: list[str] = []
        params: list[Any] = []
        if schema_name is not None:
            conditions.append("schema_name = ?")
            params.append(schema_name)
        if unit_name is not None:
            conditions.append("unit_name = ?")
            params.append(unit_name)
        where = " WHERE " + " AND ".join(conditions) if conditions else ""
        rows = self._conn.execute(
            "SELECT schema_name, unit_name, unit_kind, definition "
            f"FROM unit_definitions{where} ORDER BY schema_name, unit_name",
            params,
        ).fetchall()
        units = (
            SourceUnit(UnitIdentity(str(r[0]), str(r[1])), str(r[3]), kind=str(r[2]))
            for r in rows
        )
        yield from _filter_units(units, UnitScope(schema_name, unit_name), legacy_only)

    def count_units(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM unit_definitions").fetchone()
        return int(row[0]) if row else 0

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> DuckDBDefinitionStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class SqlDirectoryStore:
    """Definition store over a directory of ``<schema>.<name>.sql`` files.

    Files without a schema prefix (``name.sql``) belong to ``dbo``.
    """

    def __init__(self, root: Path | str, *, encoding: str = "utf-8") -> None:
        self._root = Path(root)
        if not self._root.is_dir():
            raise FileNotFoundError(f"Definitions directory not found: {self._root}")
        self._encoding = encoding

    @staticmethod
    def identity_for(path: Path) -> UnitIdentity:
        return UnitIdentity.parse(path.stem, default_schema=DEFAULT_SCHEMA)

    def path_for(self, identity: UnitIdentity) -> Path:
        qualified = self._root / f"{identity.qualified}.sql"
        if qualified.exists() or identity.schema_name != DEFAULT_SCHEMA:
            return qualified
        bare = self._root / f"{identity.name}.sql"
        return bare if bare.exists() else qualified

    def get_text(self, identity: UnitIdentity) -> str:
        path = self.path_for(identity)
        if not path.exists():
            raise KeyError(f"Unit not found: {identity.qualified}")
        return path.read_text(encoding=self._encoding)

    def set_text(self, identity: UnitIdentity, text: str) -> None:
        path = self.path_for(identity)
        if not path.exists():
            raise CommitFailure(identity, f"{path} does not exist")
        try:
            path.write_text(text, encoding=self._encoding)
        except OSError as exc:
            raise CommitFailure(identity, str(exc)) from exc

    def iter_units(
        self,
        schema_name: str | None = None,
        unit_name: str | None = None,
        *,
        legacy_only: bool = False,
    ) -> Iterator[SourceUnit]:
        units: list[SourceUnit] = []
        for path in self._root.glob("*.sql"):
            if not path.is_file():
                continue
            text = path.read_text(encoding=self._encoding)
            units.append(SourceUnit(self.identity_for(path), text, kind=detect_unit_kind(text)))
        units.sort(key=lambda u: u.identity)
        yield from _filter_units(units, UnitScope(schema_name, unit_name), legacy_only)
