"""
Pipeline Configuration

Immutable description of a tracker run.
"""

from dataclasses import dataclass

from db.models.run_lock import RECORD_TABLES_LOCK


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable configuration for a pipeline.

    Attributes:
        name: Internal name used for tracking (e.g., "refresh_all")
        display_name: Human-readable name (e.g., "Refresh All Beatmaps")
        description: What this pipeline does
        target_table: Table this pipeline mutates
        lock_name: Run lock taken for the whole run
        needs_api: Whether the run talks to the upstream API
    """

    name: str
    display_name: str
    description: str
    target_table: str
    lock_name: str = RECORD_TABLES_LOCK
    needs_api: bool = True

    def __post_init__(self):
        if not self.name:
            raise ValueError("Pipeline name is required")
        if not self.target_table:
            raise ValueError("Pipeline target_table is required")
