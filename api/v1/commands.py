"""
Command API Routes

Manual triggers for every tracker operation. Uses token-based
authentication so cron jobs and scripts can call them too.

Each response carries the one-line (or few-line) summary a user would
see, in `message`.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, Security

from core.logging import get_logger
from core.pipeline_auth import verify_pipeline_token
from pipelines import list_pipelines, run_pipeline
from schemas.common import ApiStatus
from schemas.pipeline import CommandResponse, PipelineResponse, PipelineResult
from services.history_service import move_row_to_history, sort_history
from services.runtime import TrackerRuntime
from services.tracking_service import track_beatmap, untrack_beatmap, untrack_row

router = APIRouter(prefix="/commands", tags=["commands"])
log = get_logger("command_api")


def get_runtime(request: Request) -> TrackerRuntime:
    return request.app.state.runtime


def _pipeline_response(result: PipelineResult) -> PipelineResponse:
    return PipelineResponse(status=result.status, message=result.message, data=result)


async def _run(request: Request, name: str) -> PipelineResponse:
    runtime = get_runtime(request)
    result = await run_pipeline(name, runtime.store, runtime.extractor, runtime.settings)
    return _pipeline_response(result)


@router.get("/")
async def get_available_commands(
    _: str = Security(verify_pipeline_token),
) -> dict:
    """List the pipelines and the one-off commands."""
    return {
        "pipelines": list_pipelines(),
        "commands": [
            "move-row",
            "sort-history",
            "track",
            "untrack",
            "schedule/install",
            "schedule/remove",
        ],
    }


@router.post("/refresh", response_model=PipelineResponse)
async def trigger_refresh(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> PipelineResponse:
    """
    Refresh every tracked beatmap.

    Rebuilds all Data rows from the osu! API, moves FCs out of Data and
    writes the Last Updated marker.
    """
    return await _run(request, "refresh_all")


@router.post("/discover", response_model=PipelineResponse)
async def trigger_discover(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> PipelineResponse:
    """Add beatmaps ranked since yesterday that nobody has FC'd yet."""
    return await _run(request, "discover_new")


@router.post("/move-fcs", response_model=PipelineResponse)
async def trigger_move_fcs(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> PipelineResponse:
    """Archive or delete Data rows whose best score is now an FC."""
    return await _run(request, "move_fcs_to_history")


@router.post("/move-row", response_model=CommandResponse)
async def trigger_move_row(
    request: Request,
    _: str = Security(verify_pipeline_token),
    row: str = Query(..., description="Data row number to move to History"),
) -> CommandResponse:
    """
    Move one Data row to History.

    The row is taken as typed; non-numeric or out-of-range values are
    rejected with a 400 and nothing is changed.
    """
    runtime = get_runtime(request)
    message = await asyncio.to_thread(move_row_to_history, runtime.store, row, runtime.settings)
    return CommandResponse(status=ApiStatus.SUCCESS, message=message)


@router.post("/sort-history", response_model=CommandResponse)
async def trigger_sort_history(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> CommandResponse:
    runtime = get_runtime(request)
    message = await asyncio.to_thread(sort_history, runtime.store, runtime.settings)
    return CommandResponse(status=ApiStatus.SUCCESS, message=message)


@router.post("/track", response_model=CommandResponse)
async def trigger_track(
    request: Request,
    _: str = Security(verify_pipeline_token),
    link: str = Query(..., description="Beatmap link ending in the beatmap id"),
) -> CommandResponse:
    """Start tracking a beatmap by link."""
    runtime = get_runtime(request)
    message = await asyncio.to_thread(
        track_beatmap, runtime.store, runtime.extractor, link, runtime.settings
    )
    return CommandResponse(status=ApiStatus.SUCCESS, message=message)


@router.post("/untrack", response_model=CommandResponse)
async def trigger_untrack(
    request: Request,
    _: str = Security(verify_pipeline_token),
    link: Optional[str] = Query(None, description="Beatmap link or id to stop tracking"),
    row: Optional[str] = Query(None, description="Data row number to stop tracking"),
) -> CommandResponse:
    """
    Stop tracking a beatmap, by link/id or by Data row.

    Exactly one of `link` and `row` must be given. The Data row is
    deleted; History is not touched.
    """
    if (link is None) == (row is None):
        raise HTTPException(status_code=400, detail="Give exactly one of link or row")

    runtime = get_runtime(request)
    if link is not None:
        message = await asyncio.to_thread(untrack_beatmap, runtime.store, link, runtime.settings)
    else:
        message = await asyncio.to_thread(untrack_row, runtime.store, row, runtime.settings)
    return CommandResponse(status=ApiStatus.SUCCESS, message=message)


@router.post("/schedule/install", response_model=CommandResponse)
async def install_schedule(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> CommandResponse:
    """Install the daily refresh and discovery jobs."""
    schedule = get_runtime(request).schedule
    if schedule is None:
        raise HTTPException(status_code=503, detail="Scheduler is disabled")

    message = await asyncio.to_thread(schedule.install)
    return CommandResponse(
        status=ApiStatus.SUCCESS,
        message=message,
        data={"next_runs": schedule.next_runs()},
    )


@router.post("/schedule/remove", response_model=CommandResponse)
async def remove_schedule(
    request: Request,
    _: str = Security(verify_pipeline_token),
) -> CommandResponse:
    """Remove the daily jobs."""
    schedule = get_runtime(request).schedule
    if schedule is None:
        raise HTTPException(status_code=503, detail="Scheduler is disabled")

    message = await asyncio.to_thread(schedule.remove)
    return CommandResponse(status=ApiStatus.SUCCESS, message=message)
