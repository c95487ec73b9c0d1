"""Recurring series generation and series-wide mutation planning.

Transactions and reminders share the same series model: a parent row carries
``is_recurring`` plus the frequency settings, and every generated occurrence
points back at it through ``parent_recurring_id``. The helpers here work on
plain row dicts so both persistence backends can use them.
"""
from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Older records store a named cadence instead of unit + interval.
LEGACY_FREQUENCIES: dict[str, tuple[str, int]] = {
    "monthly": ("months", 1),
    "quarterly": ("months", 3),
    "biannually": ("months", 6),
    "annually": ("years", 1),
}
FREQUENCY_UNITS = {"days", "weeks", "months", "years"}


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(base: datetime, months: int, day_anchor: int | None = None) -> datetime:
    total_month = (base.month - 1) + months
    year = base.year + total_month // 12
    month = (total_month % 12) + 1
    target_day = day_anchor or base.day
    target_day = min(target_day, monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=target_day)


def normalize_frequency(frequency: str, interval: int | None = 1) -> tuple[str, int]:
    key = frequency.strip().lower()
    if key in LEGACY_FREQUENCIES:
        return LEGACY_FREQUENCIES[key]
    if key not in FREQUENCY_UNITS:
        raise ValueError(f"unsupported recurring frequency: {frequency}")
    return key, max(1, interval or 1)


def shift_occurrence(base: datetime, unit: str, steps: int) -> datetime:
    if unit == "days":
        return base + timedelta(days=steps)
    if unit == "weeks":
        return base + timedelta(days=steps * 7)
    if unit == "months":
        return add_months(base, steps, base.day)
    if unit == "years":
        return add_months(base, steps * 12, base.day)
    raise ValueError(f"unsupported recurring unit: {unit}")


def occurrence_dates(
    start: datetime,
    frequency: str,
    interval: int | None = 1,
    end_date: datetime | None = None,
    now: datetime | None = None,
    max_instances: int = 24,
    horizon_days: int = 730,
) -> list[datetime]:
    """Dates of the occurrences that follow ``start``, excluding ``start`` itself.

    Each occurrence is computed from ``start`` rather than from the previous
    one, so a series anchored on the 31st returns to the 31st after a short
    month.
    """
    unit, step = normalize_frequency(frequency, interval)
    start = as_utc(start)
    horizon = as_utc(now or datetime.now(timezone.utc)) + timedelta(days=horizon_days)
    limit = as_utc(end_date) if end_date is not None else None
    dates: list[datetime] = []
    for idx in range(1, max_instances + 1):
        current = shift_occurrence(start, unit, step * idx)
        if limit is not None and current > limit:
            break
        if current > horizon:
            break
        dates.append(current)
    return dates


def rent_description(description: str, category: str | None, when: datetime) -> str:
    if category == "Rental Income" and " Rent" in (description or ""):
        return f"{MONTH_NAMES[when.month - 1]} {when.year} Rent"
    return description


def build_occurrences(
    parent: dict[str, Any],
    date_key: str,
    dates: list[datetime],
    make_id: Callable[[], UUID],
    overrides: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for when in dates:
        row = dict(parent)
        row.update(
            {
                "id": make_id(),
                date_key: when,
                "is_recurring": False,
                "recurring_frequency": None,
                "recurring_interval": 1,
                "recurring_end_date": None,
                "parent_recurring_id": parent["id"],
            }
        )
        if "description" in parent:
            row["description"] = rent_description(parent["description"], parent.get("category"), when)
        if overrides:
            row.update(overrides)
        rows.append(row)
    logger.info("generated %d occurrences for series %s", len(rows), parent["id"])
    return rows


def is_series_member(row: dict[str, Any]) -> bool:
    return bool(row.get("is_recurring")) or row.get("parent_recurring_id") is not None


def series_root_id(row: dict[str, Any]) -> UUID:
    return row.get("parent_recurring_id") or row["id"]


@dataclass
class SeriesPlan:
    row_ids: list[UUID] = field(default_factory=list)
    parent_end_dates: dict[UUID, datetime] = field(default_factory=dict)


def _split_series(
    target: dict[str, Any], series: list[dict[str, Any]], date_key: str
) -> tuple[UUID, list[dict[str, Any]], list[dict[str, Any]], datetime | None]:
    root_id = series_root_id(target)
    children = [r for r in series if r.get("parent_recurring_id") == root_id]
    anchor = as_utc(target[date_key]) if target.get(date_key) is not None else None
    if anchor is None:
        future = [r for r in children if r["id"] == target["id"]]
    else:
        future = [r for r in children if r.get(date_key) is not None and as_utc(r[date_key]) >= anchor]
    return root_id, children, future, anchor


def plan_series_delete(
    target: dict[str, Any],
    series: list[dict[str, Any]],
    mode: str,
    date_key: str,
    keep_parent_on_future: bool = False,
) -> SeriesPlan:
    """Rows to remove for a series delete.

    ``series`` must hold the parent and every child of the target's series.
    Truncating from a child ends the parent the day before the target's
    occurrence so regeneration never resurrects the removed tail.
    """
    if not is_series_member(target):
        return SeriesPlan(row_ids=[target["id"]])
    root_id, children, future, anchor = _split_series(target, series, date_key)
    if mode == "all":
        return SeriesPlan(row_ids=[root_id] + [r["id"] for r in children])
    future_ids = [r["id"] for r in future]
    end_dates = {root_id: anchor - timedelta(days=1)} if anchor is not None else {}
    if target.get("parent_recurring_id") is None:
        if keep_parent_on_future:
            return SeriesPlan(row_ids=future_ids, parent_end_dates=end_dates)
        return SeriesPlan(row_ids=[root_id] + future_ids)
    return SeriesPlan(row_ids=future_ids, parent_end_dates=end_dates)


def plan_series_update(target: dict[str, Any], series: list[dict[str, Any]], mode: str, date_key: str) -> list[UUID]:
    if not is_series_member(target):
        return [target["id"]]
    root_id, children, future, _ = _split_series(target, series, date_key)
    if mode == "all":
        return [root_id] + [r["id"] for r in children]
    if target.get("parent_recurring_id") is None:
        return [root_id] + [r["id"] for r in future]
    return [r["id"] for r in future]
