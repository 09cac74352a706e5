"""Tests for the modernize command-line script."""
from __future__ import annotations

import importlib.util
import json
from pathlib import Path
from typing import Any

import pytest

LEGACY = (
    "CREATE PROCEDURE dbo.usp_GetUser @Id INT AS\n"
    "IF @Id IS NULL RAISERROR 50001 @ErrorMsg\n"
)


def _load_module() -> Any:
    root = Path(__file__).resolve().parents[1]
    script_path = root / "scripts" / "modernize.py"
    spec = importlib.util.spec_from_file_location("modernize", script_path)
    assert spec is not None
    mod = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Path]:
    for key in (
        "PROCMOD_JOURNAL_DB", "PROCMOD_DEFINITIONS_DB", "PROCMOD_DEFINITIONS_DIR",
        "PROCMOD_BATCH_SIZE", "PROCMOD_BACKUP_ENABLED", "PROCMOD_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    sql_dir = tmp_path / "sql"
    sql_dir.mkdir()
    (sql_dir / "dbo.usp_GetUser.sql").write_text(LEGACY)
    (sql_dir / "dbo.usp_Clean.sql").write_text("CREATE PROCEDURE dbo.usp_Clean AS SELECT 1\n")
    return {"sql": sql_dir, "journal": tmp_path / "journal.duckdb", "root": tmp_path}


def _args(ws: dict[str, Path], *rest: str) -> list[str]:
    return ["--journal-db", str(ws["journal"]), "--definitions-dir", str(ws["sql"]), *rest]


def _run(mod: Any, argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, Any]:
    code = mod.main(argv)
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def test_parser_requires_command() -> None:
    mod = _load_module()
    with pytest.raises(SystemExit):
        mod.build_parser().parse_args([])


def test_preview_lists_legacy_units(
    workspace: dict[str, Path], capsys: pytest.CaptureFixture[str],
) -> None:
    mod = _load_module()
    code, payload = _run(mod, _args(workspace, "preview"), capsys)
    assert code == 0
    assert [u["unit"] for u in payload["units"]] == ["dbo.usp_GetUser"]
    assert payload["units"][0]["issues"] == ["RAISERROR syntax found"]
    assert (workspace["sql"] / "dbo.usp_GetUser.sql").read_text() == LEGACY


def test_apply_without_commit_is_preview(
    workspace: dict[str, Path], capsys: pytest.CaptureFixture[str],
) -> None:
    mod = _load_module()
    code, payload = _run(mod, _args(workspace, "apply"), capsys)
    assert code == 0
    assert payload["preview_only"] is True
    assert payload["units"][0]["status"] == "previewed"
    assert (workspace["sql"] / "dbo.usp_GetUser.sql").read_text() == LEGACY


def test_apply_commit_then_rollback(
    workspace: dict[str, Path], capsys: pytest.CaptureFixture[str],
) -> None:
    mod = _load_module()
    unit_file = workspace["sql"] / "dbo.usp_GetUser.sql"

    code, payload = _run(mod, _args(workspace, "apply", "--commit"), capsys)
    assert code == 0
    assert payload["units"][0]["status"] == "updated"
    assert ";THROW 50001, @ErrorMsg, 1" in unit_file.read_text()

    code, payload = _run(mod, _args(workspace, "status"), capsys)
    assert payload == {"BACKED_UP": 0, "UPDATED": 1, "ROLLED_BACK": 0}

    code, payload = _run(mod, _args(workspace, "rollback", "--name", "usp_GetUser"), capsys)
    assert code == 0
    assert unit_file.read_text() == LEGACY

    code, payload = _run(mod, _args(workspace, "history", "--name", "usp_GetUser"), capsys)
    assert [r["status"] for r in payload["records"]] == ["ROLLED_BACK"]

    code, _ = _run(mod, _args(workspace, "rollback", "--name", "usp_GetUser"), capsys)
    assert code == 1


def test_batch_with_no_backup(
    workspace: dict[str, Path], capsys: pytest.CaptureFixture[str],
) -> None:
    mod = _load_module()
    code, payload = _run(
        mod, _args(workspace, "batch", "--batch-size", "1", "--commit", "--no-backup"), capsys,
    )
    assert code == 0
    assert payload["batches"][0]["percent"] == 100
    assert payload["units"][0]["backup_id"] is None


def test_cleanup_requires_confirm(
    workspace: dict[str, Path], capsys: pytest.CaptureFixture[str],
) -> None:
    mod = _load_module()
    _run(mod, _args(workspace, "apply", "--commit"), capsys)
    code, payload = _run(mod, _args(workspace, "cleanup"), capsys)
    assert code == 0
    assert payload["purged"] is False
    assert payload["total_records"] == 1

    export = workspace["root"] / "backups.jsonl"
    code, payload = _run(
        mod, _args(workspace, "cleanup", "--confirm", "--export", str(export)), capsys,
    )
    assert payload["purged"] is True
    assert export.exists()


def test_rewrite_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    mod = _load_module()
    sql = tmp_path / "proc.sql"
    sql.write_text("RAISERROR (50002, 16, 1, @CustomError)\n")
    assert mod.main(["rewrite", "--file", str(sql)]) == 0
    assert capsys.readouterr().out == ";THROW 50002, @CustomError, 1\n"


def test_rewrite_file_report(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    mod = _load_module()
    sql = tmp_path / "proc.sql"
    sql.write_text("SELECT GETDATE()\n")
    code, payload = _run(mod, ["rewrite", "--file", str(sql), "--report"], capsys)
    assert code == 0
    assert payload["changed"] is True
    assert payload["rule_hits"] == {"getdate_function": 1}
    assert payload["text"] == "SELECT SYSDATETIME()\n"


def test_missing_store_is_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.delenv("PROCMOD_DEFINITIONS_DB", raising=False)
    monkeypatch.delenv("PROCMOD_DEFINITIONS_DIR", raising=False)
    mod = _load_module()
    code = mod.main(["--journal-db", str(tmp_path / "j.duckdb"), "preview"])
    assert code == 1
