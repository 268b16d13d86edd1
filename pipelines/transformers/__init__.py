"""
Data Transformers

Pure functions for transforming extracted data.
"""

from pipelines.transformers.mods import (
    FORBIDDEN_MODS,
    is_mod_allowed,
    mod_string,
    parse_mod_string,
)
from pipelines.transformers.fc import (
    is_full_combo,
    rank_value,
    select_best_score,
)
from pipelines.transformers.records import (
    beatmap_url,
    build_record,
    days_ranked,
    days_to_fc,
    to_history_entry,
)
from pipelines.transformers.reconciliation import (
    ReconciliationPlan,
    plan_reconciliation,
)

__all__ = [
    "FORBIDDEN_MODS",
    "is_mod_allowed",
    "mod_string",
    "parse_mod_string",
    "is_full_combo",
    "rank_value",
    "select_best_score",
    "beatmap_url",
    "build_record",
    "days_ranked",
    "days_to_fc",
    "to_history_entry",
    "ReconciliationPlan",
    "plan_reconciliation",
]
