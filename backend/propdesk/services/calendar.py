"""Admin calendar placement: drag/drop ids, org time zone math and grid helpers.

Dragged items are identified as ``reminder:<id>`` or ``case:<id>``. Drop
targets are ``unscheduled``, ``day:<epoch-ms>`` or ``hour:<epoch-ms>:<hour>``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from .payments import parse_moment

logger = logging.getLogger(__name__)

UNSCHEDULED = "unscheduled"
DRAG_KINDS = {"reminder", "case"}
ACTIVE_CASE_STATUSES = ("New", "In Review", "Scheduled", "In Progress", "Resolved")
CASE_STATUSES = ("New", "In Review", "Scheduled", "In Progress", "On Hold", "Resolved", "Closed")


@dataclass(frozen=True)
class DragItem:
    kind: str
    item_id: str


@dataclass(frozen=True)
class DropTarget:
    unscheduled: bool = False
    moment: datetime | None = None


def parse_drag_id(active_id: str) -> DragItem | None:
    kind, _, item_id = str(active_id).partition(":")
    if kind not in DRAG_KINDS or not item_id:
        return None
    return DragItem(kind=kind, item_id=item_id)


def resolve_drop_target(over_id: str | None, tz_name: str) -> DropTarget | None:
    """Map a drop target id to the UTC instant it stands for.

    The epoch only selects the calendar day as seen in the org time zone;
    the wall-clock hour comes from the id (``day`` targets mean midnight).
    """
    if not over_id:
        return None
    if over_id == UNSCHEDULED:
        return DropTarget(unscheduled=True)
    parts = str(over_id).split(":")
    if parts[0] not in {"day", "hour"} or len(parts) < 2:
        logger.info("ignoring drop on unknown target %s", over_id)
        return None
    zone = ZoneInfo(tz_name)
    try:
        epoch_ms = int(parts[1])
        hour = int(parts[2]) if parts[0] == "hour" and len(parts) > 2 and parts[2] else 0
        local_day = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).astimezone(zone).date()
        # time() rejects hours outside 0..23
        moment = datetime.combine(local_day, time(hour=hour), tzinfo=zone).astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.info("ignoring drop on malformed target %s", over_id)
        return None
    return DropTarget(moment=moment)


def reminder_placement(target: DropTarget) -> dict[str, datetime | None]:
    return {"dueAt": None if target.unscheduled else target.moment}


def case_placement(case: dict[str, Any], target: DropTarget) -> dict[str, datetime | None]:
    if target.unscheduled:
        return {"scheduledStartAt": None, "scheduledEndAt": None}
    changes: dict[str, datetime | None] = {"scheduledStartAt": target.moment}
    start = parse_moment(case.get("scheduledStartAt"))
    end = parse_moment(case.get("scheduledEndAt"))
    if start is not None and end is not None and target.moment is not None:
        changes["scheduledEndAt"] = target.moment + (end - start)
    return changes


def filter_cases_by_status(cases: Iterable[dict[str, Any]], status_key: str) -> list[dict[str, Any]]:
    rows = list(cases)
    if status_key == "all":
        return rows
    if status_key == "active":
        return [c for c in rows if c.get("status") in ACTIVE_CASE_STATUSES]
    return [c for c in rows if c.get("status") == status_key]


def generate_hour_slots(start_hour: int = 6, end_hour: int = 20) -> list[int]:
    return list(range(start_hour, end_hour + 1))


def calculate_time_position(moment: datetime, start_hour: int = 6, hour_height: int = 60) -> float:
    return (moment.hour - start_hour) * hour_height + moment.minute * hour_height / 60


def snap_to_quarter_hour(moment: datetime) -> datetime:
    rounded = round(moment.minute / 15) * 15
    base = moment.replace(minute=0, second=0, microsecond=0)
    return base + timedelta(minutes=rounded)


def format_hour_label(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour == 12:
        return "12 PM"
    if hour < 12:
        return f"{hour} AM"
    return f"{hour - 12} PM"


def is_time_in_range(moment: datetime, start_hour: int = 6, end_hour: int = 20) -> bool:
    return start_hour <= moment.hour < end_hour


def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def is_all_day(moment: datetime, tz_name: str) -> bool:
    local = moment.astimezone(ZoneInfo(tz_name))
    return local.hour == 0 and local.minute == 0


def week_days(start: date, hide_weekends: bool = False) -> list[date]:
    days = [start + timedelta(days=offset) for offset in range(7)]
    if hide_weekends:
        days = [d for d in days if d.weekday() < 5]
    return days


def build_week(
    reminders: Iterable[dict[str, Any]],
    cases: Iterable[dict[str, Any]],
    start: date,
    tz_name: str,
    start_hour: int = 6,
    end_hour: int = 20,
    hide_weekends: bool = False,
) -> dict[str, Any]:
    """Bucket reminders and cases into the days of a week in the org zone.

    Midnight items are all-day; other items appear in ``timed`` only when
    they fall inside the visible hour range. Items without a date are
    returned under ``unscheduled``.
    """
    zone = ZoneInfo(tz_name)
    entries: list[tuple[str, dict[str, Any], datetime | None]] = []
    for reminder in reminders:
        entries.append(("reminder", reminder, parse_moment(reminder.get("dueAt"))))
    for case in cases:
        entries.append(("case", case, parse_moment(case.get("scheduledStartAt"))))

    by_day: dict[date, dict[str, Any]] = {
        day: {"date": day.isoformat(), "allDay": [], "timed": []} for day in week_days(start, hide_weekends)
    }
    unscheduled: list[dict[str, Any]] = []
    for kind, item, moment in entries:
        tagged = {"type": kind, "dragId": f"{kind}:{item['id']}", "item": item}
        if moment is None:
            unscheduled.append(tagged)
            continue
        local = moment.astimezone(zone)
        bucket = by_day.get(local.date())
        if bucket is None:
            continue
        if local.hour == 0 and local.minute == 0:
            bucket["allDay"].append(tagged)
        elif is_time_in_range(local, start_hour, end_hour):
            bucket["timed"].append(
                {
                    **tagged,
                    "time": local.isoformat(),
                    "top": calculate_time_position(local, start_hour),
                }
            )
    for bucket in by_day.values():
        bucket["timed"].sort(key=lambda t: t["time"])
    return {
        "timezone": tz_name,
        "hours": generate_hour_slots(start_hour, end_hour),
        "days": list(by_day.values()),
        "unscheduled": unscheduled,
    }
