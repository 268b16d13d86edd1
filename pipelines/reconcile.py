"""
Move FCs to History

Applies a reconciliation plan to the record store: archived rows are
copied to History and removed from Data, fresh FCs are just removed.
Also home of archive_row, shared with the manual single-row move.
"""

from dataclasses import dataclass, field

from core.logging import get_logger
from db.store import RecordStore
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.transformers.reconciliation import (
    PlannedAction,
    ReconcileAction,
    ReconciliationPlan,
    plan_reconciliation,
)
from pipelines.transformers.records import to_history_entry
from schemas.records import HistoryEntry

log = get_logger("reconcile")


@dataclass
class ReconcileOutcome:
    moved: list[PlannedAction] = field(default_factory=list)
    deleted: list[PlannedAction] = field(default_factory=list)
    held: list[PlannedAction] = field(default_factory=list)
    skipped_rows: int = 0
    archive_after_days: int = 30

    @property
    def changed(self) -> int:
        return len(self.moved) + len(self.deleted)

    def messages(self) -> list[str]:
        """Summary blocks; empty when nothing was FC'd."""
        messages = []
        if self.moved or self.deleted:
            messages.append(
                _with_urls(
                    f"Moved {len(self.moved)} beatmap(s) with FCs to History "
                    f"({self.archive_after_days}+ days old).",
                    "Beatmaps moved to History:",
                    self.moved,
                )
            )
            messages.append(
                _with_urls(
                    f"Deleted {len(self.deleted)} beatmap(s) with FCs "
                    f"(less than {self.archive_after_days} days old).",
                    "Deleted beatmaps:",
                    self.deleted,
                )
            )
        if self.held:
            messages.append(
                _with_urls(
                    f"Kept {len(self.held)} FC'd beatmap(s) without a score date for manual review.",
                    "Beatmaps to review:",
                    self.held,
                )
            )
        return messages


def _with_urls(headline: str, heading: str, actions: list[PlannedAction]) -> str:
    if not actions:
        return headline
    lines = [headline, "", heading]
    lines.extend(action.url for action in actions)
    return "\n".join(lines)


def archive_row(store: RecordStore, row: int) -> HistoryEntry:
    """
    Move Data row `row` to the end of History.

    Does not sort History; callers moving several rows sort once at the end.

    Raises:
        IndexError: If the row does not exist
    """
    record = store.get_data_row(row)
    if record is None:
        raise IndexError(f"Data row {row} does not exist")

    entry = to_history_entry(record)
    history_row = store.append_history_row(entry)
    store.delete_data_row(row)
    log.info("row_archived", row=row, history_row=history_row, beatmap_id=record.beatmap_id)
    return entry


def apply_reconciliation(
    store: RecordStore,
    plan: ReconciliationPlan,
    archive_after_days: int = 30,
) -> ReconcileOutcome:
    """Carry out a plan, highest row first, and re-sort History if anything moved."""
    outcome = ReconcileOutcome(
        held=list(plan.held),
        skipped_rows=plan.skipped_rows,
        archive_after_days=archive_after_days,
    )

    for action in plan.ordered_actions():
        if action.action is ReconcileAction.ARCHIVE:
            archive_row(store, action.row)
            outcome.moved.append(action)
        else:
            store.delete_data_row(action.row)
            log.info("row_deleted", row=action.row, beatmap_id=action.beatmap_id)
            outcome.deleted.append(action)

    if outcome.moved:
        store.sort_history()

    # Report in table order
    outcome.moved.reverse()
    outcome.deleted.reverse()

    if plan.held:
        log.warning("fc_rows_held", rows=[a.row for a in plan.held])
    if plan.skipped_rows:
        log.warning("malformed_rows_skipped", count=plan.skipped_rows)
    return outcome


def reconcile_store(store: RecordStore, archive_after_days: int = 30) -> ReconcileOutcome:
    """Plan against the current Data table and apply."""
    plan = plan_reconciliation(store.data_rows(), archive_after_days=archive_after_days)
    return apply_reconciliation(store, plan, archive_after_days=archive_after_days)


class MoveFCsToHistoryPipeline(BasePipeline):
    """
    Audits every Data row for FCs.

    FC'd maps ranked long enough ago go to History, newer ones are
    deleted.
    """

    config = PipelineConfig(
        name="move_fcs_to_history",
        display_name="Move FCs to History",
        description="Archives or deletes Data rows whose stored best score is now an FC",
        target_table="data_rows",
        needs_api=False,
    )

    def execute(self, ctx: PipelineContext) -> None:
        outcome = reconcile_store(self.store, self.settings.archive_after_days)
        ctx.increment_records(outcome.changed)
        ctx.details.update(
            moved=[a.url for a in outcome.moved],
            deleted=[a.url for a in outcome.deleted],
            held=[a.url for a in outcome.held],
        )

        messages = outcome.messages()
        if not messages:
            ctx.add_message("No beatmaps with FCs found.")
        for message in messages:
            ctx.add_message(message)
