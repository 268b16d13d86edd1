"""
no-fc-tracker command line

    tracker refresh
    tracker discover
    tracker move-fcs
    tracker move-row 12
    tracker sort-history
    tracker track https://osu.ppy.sh/beatmapsets/1#osu/2
    tracker untrack 2
    tracker untrack --row 12

Every command prints the same summary the HTTP surface returns.
"""

import click

from core.errors import TrackerError
from core.logging import setup_logging
from core.settings import get_settings
from db.base import close_db, init_db
from schemas.common import ApiStatus
from services.history_service import move_row_to_history, sort_history
from services.runtime import TrackerRuntime, build_runtime
from services.tracking_service import track_beatmap, untrack_beatmap, untrack_row


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL.")
@click.pass_context
def tracker(ctx: click.Context, log_level):
    """Track osu! beatmaps nobody has full-comboed."""
    config = get_settings()
    setup_logging(
        log_level=log_level or config.log_level,
        json_format=config.log_format == "json",
        service_name=config.service_name,
    )
    try:
        runtime = build_runtime(config)
    except TrackerError as e:
        raise click.ClickException(str(e))

    init_db(config.database_url)
    ctx.call_on_close(close_db)
    ctx.obj = runtime


def _run_pipeline(runtime: TrackerRuntime, name: str) -> None:
    result = runtime.run(name)
    click.echo(result.message)
    if result.status != ApiStatus.SUCCESS.value:
        raise click.exceptions.Exit(1)


def _run_command(func, *args) -> None:
    try:
        click.echo(func(*args))
    except TrackerError as e:
        raise click.ClickException(str(e))


@tracker.command()
@click.pass_obj
def refresh(runtime: TrackerRuntime):
    """Rebuild every tracked row and move FCs out of Data."""
    _run_pipeline(runtime, "refresh_all")


@tracker.command()
@click.pass_obj
def discover(runtime: TrackerRuntime):
    """Add beatmaps ranked since yesterday."""
    _run_pipeline(runtime, "discover_new")


@tracker.command("move-fcs")
@click.pass_obj
def move_fcs(runtime: TrackerRuntime):
    """Archive or delete rows that have been FC'd."""
    _run_pipeline(runtime, "move_fcs_to_history")


@tracker.command("move-row")
@click.argument("row")
@click.pass_obj
def move_row(runtime: TrackerRuntime, row: str):
    """Move Data row ROW to History."""
    _run_command(move_row_to_history, runtime.store, row, runtime.settings)


@tracker.command("sort-history")
@click.pass_obj
def sort_history_command(runtime: TrackerRuntime):
    """Sort History by score date, then star rating."""
    _run_command(sort_history, runtime.store, runtime.settings)


@tracker.command()
@click.argument("link")
@click.pass_obj
def track(runtime: TrackerRuntime, link: str):
    """Start tracking the beatmap LINK points to."""
    _run_command(track_beatmap, runtime.store, runtime.extractor, link, runtime.settings)


@tracker.command()
@click.argument("target")
@click.option("--row", "by_row", is_flag=True, help="Treat TARGET as a Data row number.")
@click.pass_obj
def untrack(runtime: TrackerRuntime, target: str, by_row: bool):
    """Stop tracking TARGET, a beatmap link or id (or a row with --row)."""
    if by_row:
        _run_command(untrack_row, runtime.store, target, runtime.settings)
    else:
        _run_command(untrack_beatmap, runtime.store, target, runtime.settings)


if __name__ == "__main__":
    tracker()
