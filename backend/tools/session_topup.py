"""Top up sessions for open-ended courses.

Why:
    Open-ended courses only get a small batch of sessions at a time. This
    operator tool (meant for a daily cron) finds published open-ended group
    courses whose number of future sessions dropped below a threshold and
    runs "generate more" for them on behalf of the owning instructor.

Usage:
    tutorhub-session-topup --min-upcoming 3 --count 5 [--dry-run]

    Reads SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY from the environment.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, List, Optional

import click

from marketplace.context import ActorContext
from marketplace.errors import MarketplaceError
from marketplace.services.base import utcnow
from marketplace.services.sessions import SessionsService, is_scheduled_group_course, schedule_from_course
from records.ports import RecordStore, eq, gte

logger = logging.getLogger("tutorhub.tools")


def _is_open_ended(course: dict) -> bool:
    if not is_scheduled_group_course(course):
        return False
    try:
        return not schedule_from_course(course).is_bounded
    except MarketplaceError:
        return False


def run_topup(
    store: RecordStore,
    *,
    min_upcoming: int,
    count: int,
    dry_run: bool,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Return one report entry per course that needed a top-up."""
    moment = (now or utcnow()).replace(tzinfo=None)
    sessions = SessionsService(store, clock=lambda: moment)
    reports: List[dict] = []
    for course in store.select("courses", filters=[eq("is_published", True)], order_by="created_at"):
        if not _is_open_ended(course):
            continue
        upcoming = store.select(
            "sessions", filters=[eq("course_id", course["id"]), gte("session_date", moment.isoformat())]
        )
        if len(upcoming) >= min_upcoming:
            continue
        entry: dict[str, Any] = {"course_id": course["id"], "title": course.get("title"), "upcoming": len(upcoming)}
        if dry_run:
            entry["status"] = "would_generate"
            reports.append(entry)
            continue
        owner = ActorContext.of(course["instructor_id"], ("instructor",))
        try:
            result = sessions.generate_more_sessions(course["id"], owner, count=count)
        except MarketplaceError as exc:
            logger.error("top-up failed course=%s: %s", course["id"], exc.code)
            entry.update({"status": "error", "error": exc.code})
        else:
            entry.update({"status": "generated", "created": len(result.created), "failed": len(result.failed)})
        reports.append(entry)
    return reports


def _build_store() -> RecordStore:
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        raise click.ClickException("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set.")
    from supabase import create_client

    from records.supabase_store import SupabaseRecordStore

    return SupabaseRecordStore(create_client(url, key))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--min-upcoming", type=click.IntRange(min=1), default=3, show_default=True, help="Top up below this many future sessions.")
@click.option("--count", type=click.IntRange(1, 50), default=5, show_default=True, help="Sessions to generate per course.")
@click.option("--dry-run", is_flag=True, help="Report courses without generating sessions.")
def cli(min_upcoming: int, count: int, dry_run: bool) -> None:
    """Generate more sessions for open-ended courses running low."""
    store = _build_store()
    reports = run_topup(store, min_upcoming=min_upcoming, count=count, dry_run=dry_run)
    if not reports:
        click.echo("All open-ended courses have enough upcoming sessions.")
        return
    for entry in reports:
        line = f"{entry['course_id']} ({entry.get('title') or '?'}): upcoming={entry['upcoming']} {entry['status']}"
        if entry["status"] == "generated":
            line += f" created={entry['created']} failed={entry['failed']}"
        elif entry["status"] == "error":
            line += f" error={entry['error']}"
        click.echo(line)
    errors = sum(1 for e in reports if e["status"] == "error" or e.get("failed"))
    if errors:
        raise click.ClickException(f"{errors} course(s) could not be topped up completely.")


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
