"""Apply, rollback and batch orchestration over a journal and a store.

Per unit and per application cycle the journal moves through::

    NO_RECORD -> BACKED_UP -> UPDATED -> ROLLED_BACK

A unit is always backed up before it is committed. A failed commit leaves
its record at BACKED_UP. Batches are not transactional: each unit's state
is consistent on its own, and one unit's failure never stops the batch.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from procmod.analysis import issue_categories
from procmod.definition_store import DefinitionStore
from procmod.journal import BackupJournal, BackupRecord, JournalWriteFailure
from procmod.rewrite.engine import RewriteEngine
from procmod.unit_types import UnitIdentity

log = logging.getLogger(__name__)

OutcomeStatus: TypeAlias = Literal[
    "unchanged", "previewed", "updated", "updated_untracked", "failed",
]


class RollbackNotFound(LookupError):
    """Raised when a unit has no UPDATED record to roll back."""

    def __init__(self, identity: UnitIdentity, backup_id: int | None = None) -> None:
        target = f" (backup {backup_id})" if backup_id is not None else ""
        super().__init__(f"No backup found for procedure: {identity.qualified}{target}")
        self.identity = identity
        self.backup_id = backup_id


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Result of processing one unit."""

    identity: UnitIdentity
    status: OutcomeStatus
    backup_id: int | None = None
    issues: tuple[str, ...] = ()
    review_flags: tuple[str, ...] = ()
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.status in ("previewed", "updated", "updated_untracked")

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.identity.qualified,
            "status": self.status,
            "backup_id": self.backup_id,
            "issues": list(self.issues),
            "review_flags": list(self.review_flags),
            "error": self.error,
        }


class ApplyController:
    """Rewrite one unit, journal it, and (outside preview) commit it."""

    def __init__(
        self,
        store: DefinitionStore,
        journal: BackupJournal,
        engine: RewriteEngine | None = None,
    ) -> None:
        self._store = store
        self._journal = journal
        self._engine = engine or RewriteEngine()

    def apply_unit(
        self,
        identity: UnitIdentity,
        *,
        backup_enabled: bool = True,
        preview_only: bool = True,
    ) -> ApplyOutcome:
        """Process *identity*.

        Raises:
            JournalWriteFailure: backup enabled and the record was not
                written; nothing was committed.
            CommitFailure: the store rejected the rewritten text; the
                record (if any) stays BACKED_UP.

        A commit whose journal transition fails returns status
        ``updated_untracked``: the store holds the rewrite but the record
        stays BACKED_UP, so rollback cannot find it.
        """
        current = self._store.get_text(identity)
        report = self._engine.rewrite_with_report(current)
        issues = tuple(issue_categories(current))
        if not report.changed:
            log.debug("No changes needed for: %s", identity.qualified)
            return ApplyOutcome(identity, "unchanged", issues=issues)

        record: BackupRecord | None = None
        if backup_enabled:
            record = self._journal.append(identity, current, report.text)
        backup_id = record.backup_id if record is not None else None
        flags = tuple(report.review_flags)

        if preview_only:
            log.info("PREVIEW: would update %s", identity.qualified)
            return ApplyOutcome(
                identity, "previewed", backup_id=backup_id, issues=issues, review_flags=flags,
            )

        self._store.set_text(identity, report.text)
        if record is not None:
            try:
                self._journal.mark_updated(record.backup_id)
            except JournalWriteFailure as exc:
                # The store already holds the rewrite; the record stays BACKED_UP.
                log.error(
                    "Updated %s but could not mark backup %d UPDATED: %s",
                    identity.qualified, record.backup_id, exc,
                )
                return ApplyOutcome(
                    identity,
                    "updated_untracked",
                    backup_id=backup_id,
                    issues=issues,
                    review_flags=flags,
                    error=str(exc),
                )
        log.info("Updated: %s", identity.qualified)
        return ApplyOutcome(
            identity, "updated", backup_id=backup_id, issues=issues, review_flags=flags,
        )


class RollbackController:
    """Restore a unit's original text from its latest UPDATED record."""

    def __init__(self, store: DefinitionStore, journal: BackupJournal) -> None:
        self._store = store
        self._journal = journal

    def rollback(self, identity: UnitIdentity, backup_id: int | None = None) -> BackupRecord:
        """Restore and mark ROLLED_BACK.

        Raises:
            RollbackNotFound: no UPDATED record (or not the given id).
            CommitFailure: restore failed; the record stays UPDATED.
        """
        record = self._journal.latest_updated(identity, backup_id)
        if record is None:
            raise RollbackNotFound(identity, backup_id)
        self._store.set_text(identity, record.original_text)
        rolled_back = self._journal.mark_rolled_back(record.backup_id)
        log.info(
            "Successfully rolled back: %s (backup %d)", identity.qualified, record.backup_id,
        )
        return rolled_back


@dataclass(frozen=True, slots=True)
class BatchProgress:
    batch_number: int
    processed: int
    total: int
    failed: int

    @property
    def percent(self) -> int:
        return self.processed * 100 // self.total if self.total else 100


@dataclass(slots=True)
class BatchSummary:
    total: int = 0
    processed: int = 0
    changed: int = 0
    failed: int = 0
    outcomes: list[ApplyOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed

    @property
    def failures(self) -> list[ApplyOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]


class BatchCoordinator:
    """Iterate units through an ApplyController, tolerating per-unit failures."""

    def __init__(self, controller: ApplyController) -> None:
        self._controller = controller

    def run(
        self,
        identities: Sequence[UnitIdentity],
        *,
        batch_size: int = 10,
        backup_enabled: bool = True,
        preview_only: bool = True,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> BatchSummary:
        """Process every unit in order.

        Progress is reported every *batch_size* units and after the last
        one; a *batch_size* of 0 only reports at the end.
        """
        if batch_size < 0:
            raise ValueError(f"batch_size must be >= 0, got {batch_size}")
        summary = BatchSummary(total=len(identities))
        batch_number = 1
        for identity in identities:
            try:
                outcome = self._controller.apply_unit(
                    identity,
                    backup_enabled=backup_enabled,
                    preview_only=preview_only,
                )
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                log.warning("ERROR processing %s: %s", identity.qualified, error)
                outcome = ApplyOutcome(identity, "failed", error=error)
                summary.failed += 1
            if outcome.changed:
                summary.changed += 1
            summary.outcomes.append(outcome)
            summary.processed += 1

            at_boundary = batch_size > 0 and summary.processed % batch_size == 0
            if at_boundary or summary.processed == summary.total:
                progress = BatchProgress(
                    batch_number=batch_number,
                    processed=summary.processed,
                    total=summary.total,
                    failed=summary.failed,
                )
                log.info(
                    "Batch %d completed: %d/%d units processed (%d%%)",
                    progress.batch_number, progress.processed, progress.total, progress.percent,
                )
                if on_progress is not None:
                    on_progress(progress)
                batch_number += 1

        log.info(
            "Batch modernization complete: processed=%d succeeded=%d changed=%d failed=%d",
            summary.processed, summary.succeeded, summary.changed, summary.failed,
        )
        return summary
