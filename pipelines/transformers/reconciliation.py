"""
Reconciliation Pass

Audits stored Data rows and decides which ones have been FC'd and must
leave the table: old maps are archived to History, fresh maps deleted.
Planning is pure; pipelines.reconcile applies the plan.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from pipelines.transformers.fc import is_full_combo
from pipelines.transformers.mods import parse_mod_string
from pipelines.transformers.records import beatmap_url
from schemas.osu import Score
from schemas.records import BeatmapRecord

DEFAULT_ARCHIVE_AFTER_DAYS = 30


class ReconcileAction(str, Enum):
    ARCHIVE = "archive"
    DELETE = "delete"


@dataclass(frozen=True)
class PlannedAction:
    row: int
    action: ReconcileAction
    beatmap_id: Optional[int]
    beatmapset_id: Optional[int]

    @property
    def url(self) -> str:
        return beatmap_url(self.beatmapset_id, self.beatmap_id)


@dataclass
class ReconciliationPlan:
    to_archive: list[PlannedAction] = field(default_factory=list)
    to_delete: list[PlannedAction] = field(default_factory=list)
    # FC'd and old enough to archive, but the FC has no date
    held: list[PlannedAction] = field(default_factory=list)
    skipped_rows: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.to_archive and not self.to_delete

    def ordered_actions(self) -> list[PlannedAction]:
        """
        Archivals and deletions together, highest row first.

        Removing a row shifts every later row up, so working bottom-up
        keeps the positions of still-pending rows valid.
        """
        return sorted(self.to_archive + self.to_delete, key=lambda a: a.row, reverse=True)


def stored_score(record: BeatmapRecord) -> Score:
    """
    Rebuild a score from a row's best-score columns.

    The mods column holds the display string, so SD and PF scores keep
    their max-combo guarantee here too.

    Raises:
        ValueError: If the mods column is not a valid mod string
    """
    return Score(
        rank=record.rank or "",
        combo=record.current_combo or 0,
        mods=parse_mod_string(record.mods or ""),
    )


def plan_reconciliation(
    rows: Iterable[tuple[int, BeatmapRecord]],
    archive_after_days: int = DEFAULT_ARCHIVE_AFTER_DAYS,
) -> ReconciliationPlan:
    """
    Classify every stored row.

    Blank rows, error placeholders, rows missing days ranked, current
    combo or max combo, and rows with an unreadable mods column are
    skipped without error.
    """
    plan = ReconciliationPlan()

    for row, record in rows:
        if record.is_blank:
            continue
        if (
            record.is_error
            or record.days_ranked is None
            or record.current_combo is None
            or record.max_combo is None
        ):
            plan.skipped_rows += 1
            continue

        try:
            score = stored_score(record)
        except ValueError:
            plan.skipped_rows += 1
            continue

        if not is_full_combo(score, record.max_combo):
            continue

        if record.days_ranked >= archive_after_days:
            target = plan.to_archive if record.score_date is not None else plan.held
            action = ReconcileAction.ARCHIVE
        else:
            target = plan.to_delete
            action = ReconcileAction.DELETE

        target.append(
            PlannedAction(
                row=row,
                action=action,
                beatmap_id=record.beatmap_id,
                beatmapset_id=record.beatmapset_id,
            )
        )

    return plan
