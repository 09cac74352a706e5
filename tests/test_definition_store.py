"""Tests for procmod.definition_store: DuckDB and directory stores."""
from __future__ import annotations

from pathlib import Path

import pytest

from procmod.definition_store import (
    SCHEMA_VERSION,
    CommitFailure,
    DuckDBDefinitionStore,
    SqlDirectoryStore,
    detect_unit_kind,
)
from procmod.unit_types import UnitIdentity

LEGACY = "CREATE PROCEDURE dbo.usp_Legacy AS\nRAISERROR 50001 @msg\n"
CLEAN = "CREATE PROCEDURE dbo.usp_Clean AS\nSELECT 1\n"


# ───────────────────── Fixtures ──────────────────────────────────────


@pytest.fixture()
def store() -> DuckDBDefinitionStore:
    s = DuckDBDefinitionStore(":memory:")
    s.put_unit(UnitIdentity("dbo", "usp_Legacy"), LEGACY)
    s.put_unit(UnitIdentity("dbo", "usp_Clean"), CLEAN)
    s.put_unit(UnitIdentity("audit", "fn_Stamp"), "CREATE FUNCTION audit.fn_Stamp() RETURNS DATETIME AS BEGIN RETURN GETDATE() END")
    yield s  # type: ignore[misc]
    s.close()


@pytest.fixture()
def sql_dir(tmp_path: Path) -> Path:
    root = tmp_path / "sql"
    root.mkdir()
    (root / "dbo.usp_Legacy.sql").write_text(LEGACY)
    (root / "usp_Clean.sql").write_text(CLEAN)
    (root / "audit.usp_Log.sql").write_text("CREATE PROC audit.usp_Log AS SELECT GETDATE()")
    (root / "notes.txt").write_text("not a unit")
    return root


def test_detect_unit_kind() -> None:
    assert detect_unit_kind("create proc x as select 1") == "PROCEDURE"
    assert detect_unit_kind("CREATE OR ALTER VIEW v AS SELECT 1") == "VIEW"
    assert detect_unit_kind("ALTER TRIGGER t ON x") == "TRIGGER"
    assert detect_unit_kind("SELECT 1") == "PROCEDURE"


# ───────────────────── DuckDB store ──────────────────────────────────


class TestDuckDBStore:
    def test_missing_db_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            DuckDBDefinitionStore(tmp_path / "missing.duckdb")

    def test_create_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "defs.duckdb"
        with DuckDBDefinitionStore(db_path, create_if_missing=True) as s:
            s.put_unit(UnitIdentity("dbo", "p"), CLEAN)
        assert db_path.exists()
        with DuckDBDefinitionStore(db_path) as s:
            assert s.get_text(UnitIdentity("dbo", "p")) == CLEAN

    def test_schema_version_tracked(self, store: DuckDBDefinitionStore) -> None:
        row = store._conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = 'definitions'"
        ).fetchone()
        assert row is not None
        assert row[0] == SCHEMA_VERSION

    def test_get_text(self, store: DuckDBDefinitionStore) -> None:
        assert store.get_text(UnitIdentity("dbo", "usp_Legacy")) == LEGACY

    def test_get_missing(self, store: DuckDBDefinitionStore) -> None:
        with pytest.raises(KeyError):
            store.get_text(UnitIdentity("dbo", "nope"))

    def test_set_text(self, store: DuckDBDefinitionStore) -> None:
        identity = UnitIdentity("dbo", "usp_Legacy")
        store.set_text(identity, "ALTER PROCEDURE dbo.usp_Legacy AS SELECT 2")
        assert store.get_text(identity) == "ALTER PROCEDURE dbo.usp_Legacy AS SELECT 2"

    def test_set_missing_is_commit_failure(self, store: DuckDBDefinitionStore) -> None:
        with pytest.raises(CommitFailure) as exc_info:
            store.set_text(UnitIdentity("dbo", "nope"), "x")
        assert exc_info.value.identity == UnitIdentity("dbo", "nope")

    def test_iter_units_ordered(self, store: DuckDBDefinitionStore) -> None:
        names = [u.identity.qualified for u in store.iter_units()]
        assert names == ["audit.fn_Stamp", "dbo.usp_Clean", "dbo.usp_Legacy"]

    def test_iter_units_kind(self, store: DuckDBDefinitionStore) -> None:
        kinds = {u.identity.name: u.kind for u in store.iter_units()}
        assert kinds["fn_Stamp"] == "FUNCTION"
        assert kinds["usp_Legacy"] == "PROCEDURE"

    def test_iter_units_legacy_only(self, store: DuckDBDefinitionStore) -> None:
        names = [u.identity.name for u in store.iter_units(legacy_only=True)]
        assert names == ["fn_Stamp", "usp_Legacy"]

    def test_iter_units_scope(self, store: DuckDBDefinitionStore) -> None:
        assert [u.identity.name for u in store.iter_units("dbo")] == ["usp_Clean", "usp_Legacy"]
        assert [u.identity.name for u in store.iter_units("dbo", "usp_Clean")] == ["usp_Clean"]

    def test_count_units(self, store: DuckDBDefinitionStore) -> None:
        assert store.count_units() == 3


# ───────────────────── Directory store ───────────────────────────────


class TestSqlDirectoryStore:
    def test_missing_dir_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            SqlDirectoryStore(tmp_path / "nope")

    def test_identity_for(self) -> None:
        assert SqlDirectoryStore.identity_for(Path("audit.usp_Log.sql")) == UnitIdentity("audit", "usp_Log")
        assert SqlDirectoryStore.identity_for(Path("usp_Clean.sql")) == UnitIdentity("dbo", "usp_Clean")

    def test_iter_units(self, sql_dir: Path) -> None:
        store = SqlDirectoryStore(sql_dir)
        names = [u.identity.qualified for u in store.iter_units()]
        assert names == ["audit.usp_Log", "dbo.usp_Clean", "dbo.usp_Legacy"]

    def test_iter_units_legacy_only(self, sql_dir: Path) -> None:
        store = SqlDirectoryStore(sql_dir)
        names = [u.identity.qualified for u in store.iter_units(legacy_only=True)]
        assert names == ["audit.usp_Log", "dbo.usp_Legacy"]

    def test_bare_file_resolves_to_dbo(self, sql_dir: Path) -> None:
        store = SqlDirectoryStore(sql_dir)
        assert store.get_text(UnitIdentity("dbo", "usp_Clean")) == CLEAN

    def test_set_text_writes_file(self, sql_dir: Path) -> None:
        store = SqlDirectoryStore(sql_dir)
        store.set_text(UnitIdentity("dbo", "usp_Legacy"), "new text")
        assert (sql_dir / "dbo.usp_Legacy.sql").read_text() == "new text"

    def test_set_missing_is_commit_failure(self, sql_dir: Path) -> None:
        store = SqlDirectoryStore(sql_dir)
        with pytest.raises(CommitFailure):
            store.set_text(UnitIdentity("dbo", "usp_Missing"), "x")
        assert not (sql_dir / "dbo.usp_Missing.sql").exists()

    def test_get_missing(self, sql_dir: Path) -> None:
        with pytest.raises(KeyError):
            SqlDirectoryStore(sql_dir).get_text(UnitIdentity("hr", "usp_None"))
