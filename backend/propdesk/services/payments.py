"""Payment status derivation and dashboard aggregates for transactions.

Entries are API-shaped dicts (camelCase keys); dates may be ``datetime``
objects or ISO strings, amounts may be ``Decimal``, numbers or strings.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from .recurrence import add_months, as_utc

NOT_DUE_YET = "Not due yet"
DISPLAY_STATUSES = ["Paid", "Partial", NOT_DUE_YET, "Unpaid", "Skipped"]
UNCATEGORIZED = "Uncategorized"


def parse_moment(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def parse_amount(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def round_percent(part: Decimal | int, whole: Decimal | int) -> int:
    if not whole:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_future(entry: dict[str, Any], now: datetime) -> bool:
    moment = parse_moment(entry.get("date"))
    return moment is not None and moment > as_utc(now)


def display_status(entry: dict[str, Any], now: datetime) -> str:
    status = entry.get("paymentStatus") or "Unpaid"
    if status != "Unpaid":
        return status
    return NOT_DUE_YET if is_future(entry, now) else "Unpaid"


def counted_amount(entry: dict[str, Any]) -> Decimal:
    status = entry.get("paymentStatus") or "Paid"
    if status == "Paid":
        return parse_amount(entry.get("amount"))
    if status == "Partial" and entry.get("paidAmount"):
        return parse_amount(entry.get("paidAmount"))
    return Decimal("0")


def split_future(entries: Iterable[dict[str, Any]], now: datetime, show_future: bool) -> tuple[list[dict[str, Any]], int]:
    rows = list(entries)
    future_count = sum(1 for e in rows if is_future(e, now))
    if show_future:
        return rows, future_count
    return [e for e in rows if not is_future(e, now)], future_count


def status_breakdown(entries: Iterable[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
    rows = list(entries)
    groups: OrderedDict[str, dict[str, Any]] = OrderedDict(
        (status, {"total": Decimal("0"), "count": 0}) for status in DISPLAY_STATUSES
    )
    for entry in rows:
        status = display_status(entry, now)
        if status in groups:
            groups[status]["total"] += parse_amount(entry.get("amount"))
            groups[status]["count"] += 1
    return [
        {
            "status": status,
            "total": data["total"],
            "count": data["count"],
            "percentage": round_percent(data["count"], len(rows)),
        }
        for status, data in groups.items()
        if data["count"] > 0
    ]


def monthly_trends(entries: Iterable[dict[str, Any]], now: datetime, months: int = 12) -> list[dict[str, Any]]:
    rows = list(entries)
    anchor = as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    buckets: OrderedDict[str, dict[str, Any]] = OrderedDict()
    for offset in range(months - 1, -1, -1):
        month_start = add_months(anchor, -offset)
        key = f"{month_start.year}-{month_start.month:02d}"
        buckets[key] = {
            "month": key,
            "label": month_start.strftime("%b %y"),
            "total": Decimal("0"),
            "paid": Decimal("0"),
        }
    for entry in rows:
        moment = parse_moment(entry.get("date"))
        if moment is None:
            continue
        bucket = buckets.get(f"{moment.year}-{moment.month:02d}")
        if bucket is None:
            continue
        amount = parse_amount(entry.get("amount"))
        bucket["total"] += amount
        if entry.get("paymentStatus") == "Paid":
            bucket["paid"] += amount
    for bucket in buckets.values():
        bucket["unpaid"] = bucket["total"] - bucket["paid"]
    return list(buckets.values())


def category_breakdown(entries: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    totals: dict[str, dict[str, Any]] = {}
    for entry in entries:
        category = entry.get("category") or UNCATEGORIZED
        bucket = totals.setdefault(category, {"category": category, "total": Decimal("0"), "count": 0})
        bucket["total"] += parse_amount(entry.get("amount"))
        bucket["count"] += 1
    return sorted(totals.values(), key=lambda b: (-b["total"], b["category"]))


def property_performance(entries: Iterable[dict[str, Any]], properties: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    rows = list(entries)
    result = []
    for prop in properties:
        own = [e for e in rows if str(e.get("propertyId")) == str(prop["id"])]
        total = sum((parse_amount(e.get("amount")) for e in own), Decimal("0"))
        if total <= 0:
            continue
        paid = sum((parse_amount(e.get("amount")) for e in own if e.get("paymentStatus") == "Paid"), Decimal("0"))
        result.append(
            {
                "propertyId": prop["id"],
                "name": prop.get("name") or f"{prop.get('street', '')}, {prop.get('city', '')}",
                "total": total,
                "count": len(own),
                "paidAmount": paid,
                "unpaidAmount": total - paid,
                "collectionRate": round_percent(paid, total),
            }
        )
    return sorted(result, key=lambda p: p["total"], reverse=True)


def summarize(
    entries: Iterable[dict[str, Any]],
    now: datetime,
    show_future: bool = False,
    properties: Iterable[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    rows = list(entries)
    visible, future_count = split_future(rows, now, show_future)
    current = as_utc(now)

    def _in_current_month(entry: dict[str, Any]) -> bool:
        moment = parse_moment(entry.get("date"))
        return moment is not None and (moment.year, moment.month) == (current.year, current.month)

    this_month = [e for e in visible if _in_current_month(e)]
    return {
        "total": sum((counted_amount(e) for e in visible), Decimal("0")),
        "thisMonth": sum((counted_amount(e) for e in this_month), Decimal("0")),
        "visibleCount": len(visible),
        "futureCount": future_count,
        "statusBreakdown": status_breakdown(rows, now),
        "monthlyTrends": monthly_trends(rows, now),
        "categories": category_breakdown(visible),
        "properties": property_performance(rows, properties or []),
    }
