"""Dashboard-side mutations: series-aware edit/delete, calendar drops and payment status.

Every mutation invalidates the cache keys its dashboard reads. Failures become
toasts; a 401 additionally sends the user to the login page.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..config import settings
from ..services.calendar import case_placement, parse_drag_id, reminder_placement, resolve_drop_target
from ..services.payments import split_future
from .api import ApiClient, ApiError, UnauthorizedError, encode
from .notifications import Notifier
from .query_cache import QueryCache

logger = logging.getLogger(__name__)

SINGLE = "single"
SCOPES = (SINGLE, "future", "all")
KIND_LABELS = {"expenses": "Expense", "revenues": "Revenue", "reminders": "Reminder"}


def is_recurring_entry(entry: dict[str, Any]) -> bool:
    return bool(entry.get("isRecurring")) or entry.get("parentRecurringId") is not None


class DashboardActions:
    def __init__(
        self,
        api: ApiClient,
        cache: QueryCache | None = None,
        notifier: Notifier | None = None,
        login_url: str | None = None,
        tz_name: str | None = None,
    ) -> None:
        self.api = api
        self.cache = cache or QueryCache()
        self.notifier = notifier or Notifier()
        self.login_url = login_url or settings.login_url
        self.tz_name = tz_name or settings.org_timezone

    def _fail(self, exc: ApiError, title: str, description: str) -> None:
        if isinstance(exc, UnauthorizedError):
            self.notifier.toast("Unauthorized", "You are logged out. Logging in again...", variant="destructive")
            self.notifier.redirect(self.login_url)
            return
        logger.warning("%s (%s)", title, exc)
        self.notifier.toast(title, description, variant="destructive")

    def _invalidate_kind(self, kind: str) -> None:
        if kind in ("expenses", "revenues"):
            self.cache.invalidate("/api/transactions")
        self.cache.invalidate(f"/api/{kind}")

    @staticmethod
    def _target(kind: str, entry: dict[str, Any], scope: str) -> tuple[str, dict[str, str] | None]:
        if kind not in KIND_LABELS:
            raise ValueError(f"unknown entry kind: {kind}")
        if scope not in SCOPES:
            raise ValueError(f"unknown scope: {scope}")
        path = f"/api/{kind}/{entry['id']}"
        # Only series members go through the series endpoint.
        if scope != SINGLE and is_recurring_entry(entry):
            return f"{path}/recurring", {"mode": scope}
        return path, None

    def delete_entry(self, kind: str, entry: dict[str, Any], scope: str = SINGLE) -> bool:
        path, params = self._target(kind, entry, scope)
        label = KIND_LABELS[kind]
        try:
            self.api.delete(path, params=params)
        except ApiError as exc:
            self._fail(exc, "Error", f"Failed to delete {label.lower()}")
            return False
        self._invalidate_kind(kind)
        self.notifier.toast("Success", f"{label} deleted successfully")
        return True

    def update_entry(self, kind: str, entry: dict[str, Any], changes: dict[str, Any], scope: str = SINGLE) -> dict[str, Any] | None:
        path, params = self._target(kind, entry, scope)
        label = KIND_LABELS[kind]
        try:
            if kind == "reminders":
                result = self.api.patch(path, changes, params=params)
            else:
                result = self.api.put(path, changes, params=params)
        except ApiError as exc:
            self._fail(exc, "Error", f"Failed to update {label.lower()}")
            return None
        self._invalidate_kind(kind)
        self.notifier.toast("Success", f"{label} updated successfully")
        return result

    def drop_calendar_item(self, active_id: str, over_id: str | None) -> bool:
        """Move a reminder or case to the dropped slot with an optimistic cache update."""
        item = parse_drag_id(active_id)
        target = resolve_drop_target(over_id, self.tz_name)
        if item is None or target is None:
            return False
        list_key = "/api/reminders" if item.kind == "reminder" else "/api/cases"
        rows = self.cache.get(list_key) or []
        current = next((r for r in rows if str(r["id"]) == item.item_id), None)
        if current is None:
            return False
        if item.kind == "reminder":
            changes = encode(reminder_placement(target))
        else:
            changes = encode(case_placement(current, target))

        def _apply(cached: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
            return [{**r, **changes} if str(r["id"]) == item.item_id else r for r in cached or []]

        try:
            with self.cache.optimistic(list_key, _apply):
                self.api.patch(f"{list_key}/{item.item_id}", changes)
        except ApiError as exc:
            self._fail(exc, "Failed to update", f"Could not move the {item.kind}. Please try again.")
            return False
        self.cache.invalidate(list_key)
        self.notifier.toast("Updated", f"{item.kind.capitalize()} moved")
        return True

    def update_payment_status(
        self,
        entry: dict[str, Any],
        payment_status: str,
        paid_amount: Any = None,
    ) -> dict[str, Any] | None:
        body: dict[str, Any] = {"paymentStatus": payment_status}
        if paid_amount is not None:
            body["paidAmount"] = paid_amount
        try:
            result = self.api.patch(f"/api/transactions/{entry['id']}/payment-status", body)
        except ApiError as exc:
            self._fail(exc, "Error", "Failed to update payment status")
            return None
        self.cache.invalidate("/api/transactions")
        self.cache.invalidate("/api/revenues")
        self.notifier.toast("Success", f"Payment marked as {payment_status}")
        return result

    def load_payments(
        self,
        tx_type: str,
        show_future: bool = False,
        now: datetime | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        try:
            rows = self.cache.fetch(
                ("/api/transactions", tx_type),
                lambda: self.api.get("/api/transactions", {"type": tx_type}),
            )
        except ApiError as exc:
            self._fail(exc, "Error", "Failed to load payments")
            return [], 0
        return split_future(rows, now or datetime.now(timezone.utc), show_future)
