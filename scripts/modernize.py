#!/usr/bin/env python3
"""Modernize stored routines: RAISERROR -> THROW plus deprecated syntax.

Every command runs in preview mode unless ``--commit`` is given, and
``cleanup`` only reports unless ``--confirm`` is given.

Usage:
    # What needs updating?
    python3 scripts/modernize.py --definitions-dir sql/ preview

    # Rewrite one procedure for real, with a journal backup
    python3 scripts/modernize.py --definitions-db defs.duckdb \\
      apply --schema dbo --name usp_GetUser --commit

    # Whole schema in batches of 25, progress logged per batch
    python3 scripts/modernize.py --definitions-db defs.duckdb \\
      batch --schema dbo --batch-size 25 --commit

    # Undo the latest committed rewrite of a procedure
    python3 scripts/modernize.py --definitions-db defs.duckdb \\
      rollback --name usp_GetUser

    # Rewrite a single file to stdout (no store, no journal)
    python3 scripts/modernize.py rewrite --file proc.sql

Settings may also come from ``PROCMOD_*`` environment variables or an
``--env-file``; flags win.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

# Add package source to path when run from a checkout
_SRC = Path(__file__).resolve().parents[1] / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from procmod.config import ModernizeSettings, load_settings  # noqa: E402
from procmod.controller import RollbackNotFound  # noqa: E402
from procmod.definition_store import (  # noqa: E402
    CommitFailure,
    DuckDBDefinitionStore,
    SqlDirectoryStore,
)
from procmod.io_utils import dump_json  # noqa: E402
from procmod.journal import BackupJournal  # noqa: E402
from procmod.rewrite.engine import RewriteEngine  # noqa: E402
from procmod.service import ModernizationService  # noqa: E402
from procmod.unit_types import DEFAULT_SCHEMA, UnitIdentity, UnitScope  # noqa: E402

log = logging.getLogger("modernize")


def _add_scope_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--schema", default=None, help="Only units in this schema.")
    parser.add_argument("--name", default=None, help="Only the unit with this name.")


def _add_commit_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--commit",
        action="store_true",
        help="Write rewritten text to the definition store (default: preview only).",
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not journal original text before rewriting (rollback becomes impossible).",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Rewrite legacy T-SQL in stored routines with backup and rollback.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--journal-db", default=None, help="Path to the backup journal DuckDB.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--definitions-db", default=None, help="DuckDB definitions store.")
    source.add_argument("--definitions-dir", default=None, help="Directory of <schema>.<name>.sql files.")
    parser.add_argument("--env-file", default=None, help="Optional .env file with PROCMOD_* settings.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    preview = sub.add_parser("preview", help="List units with legacy syntax and what would change.")
    _add_scope_args(preview)

    apply = sub.add_parser("apply", help="Rewrite matching units.")
    _add_scope_args(apply)
    _add_commit_args(apply)

    batch = sub.add_parser("batch", help="Rewrite matching units with per-batch progress.")
    _add_scope_args(batch)
    _add_commit_args(batch)
    batch.add_argument("--batch-size", type=int, default=None, help="Progress interval (default: 10).")

    rollback = sub.add_parser("rollback", help="Restore a unit from its latest committed backup.")
    rollback.add_argument("--name", required=True, help="Unit name.")
    rollback.add_argument("--schema", default=DEFAULT_SCHEMA, help=f"Unit schema (default: {DEFAULT_SCHEMA}).")
    rollback.add_argument("--backup-id", type=int, default=None, help="Roll back this specific record.")

    history = sub.add_parser("history", help="Show journal records for a unit.")
    history.add_argument("--name", required=True)
    history.add_argument("--schema", default=DEFAULT_SCHEMA)

    sub.add_parser("status", help="Journal record counts by status.")

    export = sub.add_parser("export", help="Write all journal records to a JSONL file.")
    export.add_argument("--out", required=True)

    cleanup = sub.add_parser("cleanup", help="Delete all journal history (requires --confirm).")
    cleanup.add_argument("--confirm", action="store_true", help="Actually delete journal history.")
    cleanup.add_argument("--export", default=None, help="Export records to this JSONL file first.")

    rewrite = sub.add_parser("rewrite", help="Rewrite one SQL file and print the result.")
    rewrite.add_argument("--file", required=True)
    rewrite.add_argument("--report", action="store_true", help="Print the rewrite report as JSON instead.")
    return parser


def resolve_settings(args: argparse.Namespace) -> ModernizeSettings:
    base = load_settings(dotenv_path=Path(args.env_file) if args.env_file else None)
    definitions_db = base.definitions_db
    definitions_dir = base.definitions_dir
    if args.definitions_db:
        definitions_db, definitions_dir = Path(args.definitions_db), None
    elif args.definitions_dir:
        definitions_db, definitions_dir = None, Path(args.definitions_dir)
    batch_size = getattr(args, "batch_size", None) or base.batch_size
    backup_enabled = base.backup_enabled and not getattr(args, "no_backup", False)
    return ModernizeSettings(
        journal_db=Path(args.journal_db) if args.journal_db else base.journal_db,
        definitions_db=definitions_db,
        definitions_dir=definitions_dir,
        batch_size=batch_size,
        backup_enabled=backup_enabled,
        log_level="DEBUG" if args.verbose else base.log_level,
    )


def _open_store(settings: ModernizeSettings) -> Any:
    if settings.definitions_dir is not None:
        return SqlDirectoryStore(settings.definitions_dir)
    if settings.definitions_db is not None:
        return DuckDBDefinitionStore(settings.definitions_db)
    raise ValueError("No definition store: pass --definitions-db or --definitions-dir")


def _run_rewrite(args: argparse.Namespace) -> int:
    path = Path(args.file)
    report = RewriteEngine().rewrite_with_report(path.read_text(encoding="utf-8"))
    if args.report:
        dump_json({"file": str(path), **report.to_dict(), "text": report.text})
    else:
        sys.stdout.write(report.text)
    return 0


def _run_journal_only(args: argparse.Namespace, journal: BackupJournal) -> int:
    if args.command == "history":
        identity = UnitIdentity(args.schema, args.name)
        dump_json({
            "unit": identity.qualified,
            "records": [r.to_dict() for r in journal.history(identity)],
        })
    elif args.command == "status":
        dump_json(journal.count_by_status())
    elif args.command == "export":
        count = journal.export_jsonl(Path(args.out))
        dump_json({"exported": count, "path": args.out})
    return 0


def run(args: argparse.Namespace, settings: ModernizeSettings) -> int:
    if args.command == "rewrite":
        return _run_rewrite(args)

    journal = BackupJournal(settings.journal_db, create_if_missing=True)
    try:
        if args.command in ("history", "status", "export"):
            return _run_journal_only(args, journal)

        store = _open_store(settings) if args.command != "cleanup" else None
        service = ModernizationService(store, store, journal) if store is not None else None
        try:
            if args.command == "cleanup":
                result = ModernizationService(_NoCatalog(), _NoCatalog(), journal).cleanup(
                    confirm=args.confirm,
                    export_path=Path(args.export) if args.export else None,
                )
                dump_json(result.to_dict())
                return 0

            assert service is not None
            if args.command == "rollback":
                identity = UnitIdentity(args.schema, args.name)
                try:
                    summary = service.rollback(identity, args.backup_id)
                except RollbackNotFound as exc:
                    log.error("%s", exc)
                    return 1
                except CommitFailure as exc:
                    log.error("Error rolling back procedure: %s", exc)
                    return 1
                dump_json(summary.to_dict())
                return 0

            scope = UnitScope(args.schema, args.name)
            preview_only = not args.commit if args.command != "preview" else True
            if args.command == "preview":
                summary = service.preview(scope)
            elif args.command == "apply":
                summary = service.apply(
                    scope, backup_enabled=settings.backup_enabled, preview_only=preview_only,
                )
            else:
                summary = service.batch_apply(
                    scope,
                    batch_size=settings.batch_size,
                    backup_enabled=settings.backup_enabled,
                    preview_only=preview_only,
                )
            dump_json(summary.to_dict())
            if preview_only and args.command != "preview":
                log.info("This was a PREVIEW run. To apply changes, run with --commit")
            return 1 if summary.failed else 0
        finally:
            close = getattr(store, "close", None)
            if close is not None:
                close()
    finally:
        journal.close()


class _NoCatalog:
    """Placeholder collaborator for commands that only touch the journal."""

    def iter_units(self, *args: Any, **kwargs: Any) -> Any:
        return iter(())

    def get_text(self, identity: UnitIdentity) -> str:
        raise KeyError(identity.qualified)

    def set_text(self, identity: UnitIdentity, text: str) -> None:
        raise CommitFailure(identity, "no definition store configured")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        parser.error(str(exc))
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return run(args, settings)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
