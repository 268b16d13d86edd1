# Import all models to ensure they are registered with the database
from .records import DataRow, HistoryRow
from .tracker_meta import TrackerMeta
from .pipeline_run import PipelineRun
from .run_lock import RunLock

__all__ = [
    'DataRow', 'HistoryRow', 'TrackerMeta', 'PipelineRun', 'RunLock'
]
