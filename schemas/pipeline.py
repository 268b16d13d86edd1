from pydantic import BaseModel
from typing import Any, Optional

from .common import ApiStatus


class PipelineResult(BaseModel):
    """Result of a single tracker run"""

    status: ApiStatus
    message: str
    started_at: str
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    records_processed: Optional[int] = None
    details: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    class Config:
        use_enum_values = True


class PipelineResponse(BaseModel):
    """Response for a single pipeline trigger"""

    status: ApiStatus
    message: str
    data: Optional[PipelineResult] = None

    class Config:
        use_enum_values = True


class CommandResponse(BaseModel):
    """Response for commands that are not pipeline runs (manual move, sort, schedule)"""

    status: ApiStatus
    message: str
    data: Optional[dict[str, Any]] = None

    class Config:
        use_enum_values = True
