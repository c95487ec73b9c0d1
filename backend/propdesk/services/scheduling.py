from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from .recurrence import as_utc

INACTIVE_APPOINTMENT_STATUSES = {"Cancelled", "No Show"}


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return as_utc(start) < as_utc(other_end) and as_utc(other_start) < as_utc(end)


def find_conflicts(
    start: datetime,
    end: datetime,
    appointments: Iterable[dict[str, Any]],
    blackouts: Iterable[dict[str, Any]],
) -> list[dict[str, Any]]:
    conflicts: list[dict[str, Any]] = []
    for appt in appointments:
        if appt.get("status") in INACTIVE_APPOINTMENT_STATUSES:
            continue
        if overlaps(start, end, appt["scheduled_start_at"], appt["scheduled_end_at"]):
            conflicts.append({"kind": "appointment", "id": str(appt["id"]), "title": appt.get("title")})
    for blackout in blackouts:
        if overlaps(start, end, blackout["start_date"], blackout["end_date"]):
            conflicts.append({"kind": "blackout", "id": str(blackout["id"]), "title": blackout.get("reason")})
    return conflicts
