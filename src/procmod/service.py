"""Command surface: preview, apply, batch apply, rollback and cleanup.

Thin callers over the controllers. Every entry point defaults to preview
(no commits), and cleanup only reports unless ``confirm=True``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, TypeAlias

from procmod.analysis import detect_raiserror_forms, issue_categories
from procmod.controller import (
    ApplyController,
    ApplyOutcome,
    BatchCoordinator,
    BatchProgress,
    BatchSummary,
    RollbackController,
)
from procmod.definition_store import CatalogProvider, DefinitionStore
from procmod.journal import UPDATED, BackupJournal
from procmod.rewrite.engine import RewriteEngine
from procmod.unit_types import UnitIdentity, UnitScope

log = logging.getLogger(__name__)

RunMode: TypeAlias = Literal["preview", "apply", "batch", "rollback"]


@dataclass(slots=True)
class RunSummary:
    mode: RunMode
    preview_only: bool
    examined: int = 0
    changed: int = 0
    failed: int = 0
    units: list[ApplyOutcome] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return self.examined - self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "preview_only": self.preview_only,
            "examined": self.examined,
            "changed": self.changed,
            "failed": self.failed,
            "succeeded": self.succeeded,
            "units": [u.to_dict() for u in self.units],
            **self.details,
        }


@dataclass(frozen=True, slots=True)
class CleanupResult:
    total_records: int
    updated_records: int
    purged: bool
    exported_to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "updated_records": self.updated_records,
            "purged": self.purged,
            "exported_to": self.exported_to,
        }


def _from_batch(mode: RunMode, preview_only: bool, batch: BatchSummary) -> RunSummary:
    return RunSummary(
        mode=mode,
        preview_only=preview_only,
        examined=batch.processed,
        changed=batch.changed,
        failed=batch.failed,
        units=list(batch.outcomes),
    )


class ModernizationService:
    def __init__(
        self,
        catalog: CatalogProvider,
        store: DefinitionStore,
        journal: BackupJournal,
        engine: RewriteEngine | None = None,
    ) -> None:
        self._catalog = catalog
        self._journal = journal
        self._engine = engine or RewriteEngine()
        self._apply = ApplyController(store, journal, self._engine)
        self._rollback = RollbackController(store, journal)
        self._batch = BatchCoordinator(self._apply)

    def _candidates(self, scope: UnitScope) -> list[UnitIdentity]:
        return [
            unit.identity
            for unit in self._catalog.iter_units(
                scope.schema_name, scope.unit_name, legacy_only=True,
            )
        ]

    def preview(self, scope: UnitScope | None = None) -> RunSummary:
        """Report issue categories per unit without writing anything."""
        scope = scope or UnitScope()
        summary = RunSummary(mode="preview", preview_only=True)
        forms: dict[str, list[str]] = {}
        for unit in self._catalog.iter_units(
            scope.schema_name, scope.unit_name, legacy_only=True,
        ):
            report = self._engine.rewrite_with_report(unit.text)
            summary.units.append(ApplyOutcome(
                unit.identity,
                "previewed" if report.changed else "unchanged",
                issues=tuple(issue_categories(unit.text)),
                review_flags=tuple(report.review_flags),
            ))
            unit_forms = detect_raiserror_forms(unit.text)
            if unit_forms:
                forms[unit.identity.qualified] = unit_forms
            summary.examined += 1
            if report.changed:
                summary.changed += 1
        summary.details["raiserror_forms"] = forms
        return summary

    def apply(
        self,
        scope: UnitScope | None = None,
        *,
        backup_enabled: bool = True,
        preview_only: bool = True,
    ) -> RunSummary:
        identities = self._candidates(scope or UnitScope())
        batch = self._batch.run(
            identities,
            batch_size=0,
            backup_enabled=backup_enabled,
            preview_only=preview_only,
        )
        return _from_batch("apply", preview_only, batch)

    def batch_apply(
        self,
        scope: UnitScope | None = None,
        *,
        batch_size: int = 10,
        backup_enabled: bool = True,
        preview_only: bool = True,
    ) -> RunSummary:
        identities = self._candidates(scope or UnitScope())
        log.info(
            "Starting batch modernization: %d unit(s), batch size %d, preview=%s",
            len(identities), batch_size, preview_only,
        )
        progress: list[BatchProgress] = []
        batch = self._batch.run(
            identities,
            batch_size=batch_size,
            backup_enabled=backup_enabled,
            preview_only=preview_only,
            on_progress=progress.append,
        )
        summary = _from_batch("batch", preview_only, batch)
        summary.details["batches"] = [
            {"batch": p.batch_number, "processed": p.processed, "total": p.total, "percent": p.percent}
            for p in progress
        ]
        return summary

    def rollback(self, identity: UnitIdentity, backup_id: int | None = None) -> RunSummary:
        """Restore one unit. RollbackNotFound propagates to the caller."""
        record = self._rollback.rollback(identity, backup_id)
        summary = RunSummary(mode="rollback", preview_only=False, examined=1, changed=1)
        summary.units.append(ApplyOutcome(identity, "updated", backup_id=record.backup_id))
        return summary

    def cleanup(self, *, confirm: bool = False, export_path: Path | None = None) -> CleanupResult:
        """Purge the journal. Without *confirm* only reports what would go."""
        counts = self._journal.count_by_status()
        total = sum(counts.values())
        exported: str | None = None
        if not confirm:
            log.warning(
                "Cleanup disabled for safety: %d backup record(s) would be removed", total,
            )
            return CleanupResult(total, counts[UPDATED], purged=False)
        if export_path is not None:
            self._journal.export_jsonl(export_path)
            exported = str(export_path)
        self._journal.purge(confirm=True)
        return CleanupResult(total, counts[UPDATED], purged=True, exported_to=exported)
