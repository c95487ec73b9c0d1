from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .auth_utils import hash_password, verify_password
from .config import settings
from .schemas import (
    AppointmentCreate,
    AvailabilityCreate,
    BlackoutCreate,
    CaseAcceptRequest,
    CaseCreate,
    CustomerCreate,
    PropertyCreate,
    ReminderCreate,
    SeriesMode,
    TransactionCreate,
    TransactionType,
    UnitCreate,
    UserCategoryCreate,
)
from .services.calendar import filter_cases_by_status
from .services.recurrence import (
    as_utc,
    build_occurrences,
    is_series_member,
    occurrence_dates,
    plan_series_delete,
    plan_series_update,
    series_root_id,
)
from .services.scheduling import find_conflicts
from .store import store

logger = logging.getLogger(__name__)

# Columns per table; also the whitelist for SQL built from row keys.
TABLE_COLUMNS: dict[str, list[str]] = {
    "organizations": ["id", "name", "created_at"],
    "users": ["id", "org_id", "email", "full_name", "password_hash", "created_at"],
    "properties": ["id", "org_id", "name", "type", "street", "city", "state", "zip_code", "country", "year_built", "notes", "created_at"],
    "units": ["id", "org_id", "property_id", "label", "bedrooms", "bathrooms", "rent_amount", "created_at"],
    "transactions": [
        "id", "org_id", "type", "scope", "property_id", "unit_id", "entity_id", "amount", "description", "category",
        "date", "notes", "is_recurring", "recurring_frequency", "recurring_interval", "recurring_end_date",
        "parent_recurring_id", "tax_deductible", "payment_status", "paid_amount", "created_at",
    ],
    "reminders": [
        "id", "org_id", "scope", "scope_id", "entity_id", "title", "type", "due_at", "lead_days", "channels",
        "payload_json", "status", "completed_at", "is_recurring", "recurring_frequency", "recurring_interval",
        "recurring_end_date", "parent_recurring_id", "created_at",
    ],
    "cases": [
        "id", "org_id", "property_id", "unit_id", "title", "description", "status", "priority", "category",
        "ai_triage_json", "assigned_contractor_id", "scheduled_start_at", "scheduled_end_at", "created_at",
    ],
    "appointments": [
        "id", "org_id", "case_id", "contractor_id", "title", "scheduled_start_at", "scheduled_end_at", "status",
        "notes", "created_at",
    ],
    "contractor_availability": ["id", "org_id", "contractor_id", "day_of_week", "start_time", "end_time", "is_active", "created_at"],
    "contractor_blackouts": ["id", "org_id", "contractor_id", "start_date", "end_date", "reason", "created_at"],
    "customers": ["id", "org_id", "name", "email", "phone", "company", "notes", "created_at"],
    "user_categories": ["id", "org_id", "name", "description", "color", "is_active", "created_at"],
}
JSON_COLUMNS = {"payload_json", "ai_triage_json"}
SERIES_DATE_KEYS = {"transactions": "date", "reminders": "due_at"}
ENTITY_LABELS = {
    "properties": "property",
    "units": "unit",
    "transactions": "transaction",
    "reminders": "reminder",
    "cases": "case",
    "appointments": "appointment",
    "contractor_availability": "availability slot",
    "contractor_blackouts": "blackout",
    "customers": "customer",
    "user_categories": "category",
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def snake_changes(changes: dict[str, Any]) -> dict[str, Any]:
    return {to_snake(k): _plain(v) for k, v in changes.items()}


class Persistence:
    """Storage-agnostic business operations over a handful of row primitives.

    Backends implement ``_insert``, ``_get``, ``_select``, ``_update`` and
    ``_delete``; rows are plain dicts keyed by snake_case column names.
    """

    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def _get(self, table: str, entity_id: UUID) -> dict[str, Any] | None:
        raise NotImplementedError

    def _select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _update(self, table: str, ids: list[UUID], changes: dict[str, Any]) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _delete(self, table: str, ids: list[UUID]) -> int:
        raise NotImplementedError

    @staticmethod
    def now() -> datetime:
        return store.now()

    def _owned(self, table: str, org_id: UUID, entity_id: UUID) -> dict[str, Any]:
        row = self._get(table, entity_id)
        label = ENTITY_LABELS.get(table, table)
        if row is None:
            raise HTTPException(status_code=404, detail=f"{label} not found: {entity_id}")
        if str(row.get("org_id")) != str(org_id):
            raise HTTPException(status_code=403, detail="access denied")
        return row

    def _new_row(self, org_id: UUID, **values: Any) -> dict[str, Any]:
        row = {"id": uuid4(), "org_id": org_id, "created_at": self.now()}
        row.update({k: _plain(v) for k, v in values.items()})
        return row

    # users

    def register_user(self, email: str, password: str, full_name: str | None, organization_name: str | None) -> dict[str, Any]:
        if self._select("users", email=email):
            raise HTTPException(status_code=409, detail="email already registered")
        org = self._insert("organizations", {"id": uuid4(), "name": organization_name or f"{email} organization", "created_at": self.now()})
        return self._insert(
            "users",
            self._new_row(org["id"], email=email, full_name=full_name, password_hash=hash_password(password)),
        )

    def authenticate_user(self, email: str, password: str) -> dict[str, Any] | None:
        rows = self._select("users", email=email)
        if not rows or not verify_password(password, rows[0]["password_hash"]):
            return None
        return rows[0]

    def get_user_by_id(self, user_id: UUID) -> dict[str, Any] | None:
        return self._get("users", user_id)

    # properties & units

    def create_property(self, org_id: UUID, payload: PropertyCreate) -> dict[str, Any]:
        return self._insert("properties", self._new_row(org_id, **snake_changes(payload.model_dump())))

    def list_properties(self, org_id: UUID) -> list[dict[str, Any]]:
        return sorted(self._select("properties", org_id=org_id), key=lambda r: r["name"].lower())

    def get_property(self, org_id: UUID, property_id: UUID) -> dict[str, Any]:
        return self._owned("properties", org_id, property_id)

    def update_property(self, org_id: UUID, property_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        self._owned("properties", org_id, property_id)
        return self._update("properties", [property_id], snake_changes(changes))[0]

    def delete_property(self, org_id: UUID, property_id: UUID) -> None:
        self._owned("properties", org_id, property_id)
        if self._select("transactions", property_id=property_id):
            raise HTTPException(status_code=409, detail="property has transactions")
        self._delete("units", [u["id"] for u in self._select("units", property_id=property_id)])
        self._delete("properties", [property_id])

    def create_unit(self, org_id: UUID, payload: UnitCreate) -> dict[str, Any]:
        self._owned("properties", org_id, payload.propertyId)
        return self._insert("units", self._new_row(org_id, **snake_changes(payload.model_dump())))

    def list_units(self, org_id: UUID, property_id: UUID | None = None) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"org_id": org_id}
        if property_id is not None:
            filters["property_id"] = property_id
        return sorted(self._select("units", **filters), key=lambda r: r["label"])

    # recurring series shared by transactions and reminders

    def _create_series(self, table: str, row: dict[str, Any], overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        parent = self._insert(table, row)
        if parent.get("is_recurring") and parent.get("recurring_frequency"):
            date_key = SERIES_DATE_KEYS[table]
            dates = occurrence_dates(
                parent[date_key],
                parent["recurring_frequency"],
                parent.get("recurring_interval") or 1,
                parent.get("recurring_end_date"),
                now=self.now(),
                max_instances=settings.recurring_max_instances,
                horizon_days=settings.recurring_horizon_days,
            )
            for child in build_occurrences(parent, date_key, dates, uuid4, overrides):
                self._insert(table, child)
        return parent

    def _series_rows(self, table: str, target: dict[str, Any]) -> list[dict[str, Any]]:
        root_id = series_root_id(target)
        root = self._get(table, root_id)
        children = self._select(table, parent_recurring_id=root_id)
        return ([root] if root is not None else []) + children

    def _delete_series(self, table: str, org_id: UUID, entity_id: UUID, mode: SeriesMode) -> int:
        target = self._owned(table, org_id, entity_id)
        if not is_series_member(target):
            raise HTTPException(status_code=400, detail=f"this is not a recurring {ENTITY_LABELS[table]}")
        plan = plan_series_delete(
            target,
            self._series_rows(table, target),
            _plain(mode),
            SERIES_DATE_KEYS[table],
            keep_parent_on_future=table == "reminders",
        )
        removed = self._delete(table, plan.row_ids)
        for parent_id, end_date in plan.parent_end_dates.items():
            if parent_id not in plan.row_ids:
                self._update(table, [parent_id], {"recurring_end_date": end_date})
        logger.info("deleted %d %s rows from series %s (mode=%s)", removed, table, series_root_id(target), _plain(mode))
        return removed

    def _update_series(self, table: str, org_id: UUID, entity_id: UUID, changes: dict[str, Any], mode: SeriesMode) -> dict[str, Any]:
        target = self._owned(table, org_id, entity_id)
        if not is_series_member(target):
            raise HTTPException(status_code=400, detail=f"this is not a recurring {ENTITY_LABELS[table]}")
        date_key = SERIES_DATE_KEYS[table]
        values = snake_changes(changes)
        # Each occurrence keeps its own date; only the target may move.
        shared = {k: v for k, v in values.items() if k != date_key}
        ids = plan_series_update(target, self._series_rows(table, target), _plain(mode), date_key)
        if shared:
            self._update(table, ids, shared)
        if date_key in values:
            self._update(table, [entity_id], {date_key: values[date_key]})
        logger.info("updated %d %s rows in series %s (mode=%s)", len(ids), table, series_root_id(target), _plain(mode))
        return self._get(table, entity_id) or target

    # transactions

    def _check_unit(self, org_id: UUID, property_id: UUID | None, unit_id: UUID) -> None:
        if property_id is None:
            raise HTTPException(status_code=400, detail="an operational transaction cannot reference a unit")
        unit = self._owned("units", org_id, unit_id)
        if str(unit["property_id"]) != str(property_id):
            raise HTTPException(status_code=400, detail="unit does not belong to property")

    def create_transaction(self, org_id: UUID, tx_type: TransactionType, payload: TransactionCreate) -> dict[str, Any]:
        if payload.propertyId is not None:
            self._owned("properties", org_id, payload.propertyId)
        if payload.unitId is not None:
            self._check_unit(org_id, payload.propertyId, payload.unitId)
        row = self._new_row(
            org_id,
            type=tx_type,
            scope=payload.scope,
            property_id=payload.propertyId,
            unit_id=payload.unitId,
            entity_id=payload.entityId,
            amount=payload.amount,
            description=payload.description,
            category=payload.resolved_category(),
            date=as_utc(payload.date),
            notes=payload.notes,
            is_recurring=payload.isRecurring,
            recurring_frequency=payload.recurringFrequency if payload.isRecurring else None,
            recurring_interval=payload.recurringInterval,
            recurring_end_date=as_utc(payload.recurringEndDate) if payload.recurringEndDate else None,
            parent_recurring_id=None,
            tax_deductible=payload.taxDeductible,
            payment_status=payload.paymentStatus or "Paid",
            paid_amount=payload.paidAmount,
        )
        return self._create_series("transactions", row, {"payment_status": "Unpaid", "paid_amount": None})

    def list_transactions(self, org_id: UUID, tx_type: TransactionType | None = None, property_id: UUID | None = None) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"org_id": org_id}
        if tx_type is not None:
            filters["type"] = _plain(tx_type)
        if property_id is not None:
            filters["property_id"] = property_id
        return sorted(self._select("transactions", **filters), key=lambda r: as_utc(r["date"]), reverse=True)

    def get_transaction(self, org_id: UUID, transaction_id: UUID, tx_type: TransactionType | None = None) -> dict[str, Any]:
        row = self._owned("transactions", org_id, transaction_id)
        if tx_type is not None and row["type"] != _plain(tx_type):
            raise HTTPException(status_code=404, detail=f"transaction not found: {transaction_id}")
        return row

    def update_transaction(self, org_id: UUID, transaction_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        row = self._owned("transactions", org_id, transaction_id)
        if changes.get("unitId") is not None:
            self._check_unit(org_id, row.get("property_id"), changes["unitId"])
        return self._update("transactions", [transaction_id], snake_changes(changes))[0]

    def delete_transaction(self, org_id: UUID, transaction_id: UUID) -> None:
        self._owned("transactions", org_id, transaction_id)
        self._delete("transactions", [transaction_id])

    def delete_transaction_series(self, org_id: UUID, transaction_id: UUID, mode: SeriesMode) -> int:
        return self._delete_series("transactions", org_id, transaction_id, mode)

    def update_transaction_series(self, org_id: UUID, transaction_id: UUID, changes: dict[str, Any], mode: SeriesMode) -> dict[str, Any]:
        if changes.get("unitId") is not None:
            row = self._owned("transactions", org_id, transaction_id)
            self._check_unit(org_id, row.get("property_id"), changes["unitId"])
        return self._update_series("transactions", org_id, transaction_id, changes, mode)

    def update_payment_status(self, org_id: UUID, transaction_id: UUID, payment_status: str, paid_amount: Any = None) -> dict[str, Any]:
        changes: dict[str, Any] = {"payment_status": _plain(payment_status)}
        if paid_amount is not None:
            changes["paid_amount"] = paid_amount
        self._owned("transactions", org_id, transaction_id)
        return self._update("transactions", [transaction_id], changes)[0]

    # reminders

    def create_reminder(self, org_id: UUID, payload: ReminderCreate) -> dict[str, Any]:
        row = self._new_row(
            org_id,
            scope=payload.scope,
            scope_id=payload.scopeId,
            entity_id=payload.entityId,
            title=payload.title,
            type=payload.type,
            due_at=as_utc(payload.dueAt) if payload.dueAt else None,
            lead_days=payload.leadDays,
            channels=payload.channels,
            payload_json=payload.payloadJson,
            status="Pending",
            completed_at=None,
            is_recurring=payload.isRecurring,
            recurring_frequency=payload.recurringFrequency if payload.isRecurring else None,
            recurring_interval=payload.recurringInterval,
            recurring_end_date=as_utc(payload.recurringEndDate) if payload.recurringEndDate else None,
            parent_recurring_id=None,
        )
        return self._create_series("reminders", row, {"status": "Pending", "completed_at": None})

    def list_reminders(self, org_id: UUID, reminder_type: str | None = None) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"org_id": org_id}
        if reminder_type:
            filters["type"] = reminder_type
        rows = self._select("reminders", **filters)
        # Unscheduled reminders sort last.
        return sorted(rows, key=lambda r: (r["due_at"] is None, as_utc(r["due_at"]) if r["due_at"] else datetime.min))

    def get_reminder(self, org_id: UUID, reminder_id: UUID) -> dict[str, Any]:
        return self._owned("reminders", org_id, reminder_id)

    def update_reminder(self, org_id: UUID, reminder_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        self._owned("reminders", org_id, reminder_id)
        values = snake_changes(changes)
        if values.get("status") == "Completed":
            values["completed_at"] = self.now()
        return self._update("reminders", [reminder_id], values)[0]

    def delete_reminder(self, org_id: UUID, reminder_id: UUID) -> None:
        self._owned("reminders", org_id, reminder_id)
        self._delete("reminders", [reminder_id])

    def delete_reminder_series(self, org_id: UUID, reminder_id: UUID, mode: SeriesMode) -> int:
        return self._delete_series("reminders", org_id, reminder_id, mode)

    def update_reminder_series(self, org_id: UUID, reminder_id: UUID, changes: dict[str, Any], mode: SeriesMode) -> dict[str, Any]:
        return self._update_series("reminders", org_id, reminder_id, changes, mode)

    # maintenance cases

    def create_case(self, org_id: UUID, payload: CaseCreate) -> dict[str, Any]:
        if payload.propertyId is not None:
            self._owned("properties", org_id, payload.propertyId)
        values = snake_changes(payload.model_dump())
        values["status"] = "Scheduled" if payload.scheduledStartAt else "New"
        values["assigned_contractor_id"] = None
        return self._insert("cases", self._new_row(org_id, **values))

    def list_cases(self, org_id: UUID, status_key: str = "all") -> list[dict[str, Any]]:
        rows = filter_cases_by_status(self._select("cases", org_id=org_id), status_key)
        return sorted(rows, key=lambda r: as_utc(r["created_at"]), reverse=True)

    def get_case(self, org_id: UUID, case_id: UUID) -> dict[str, Any]:
        return self._owned("cases", org_id, case_id)

    def update_case(self, org_id: UUID, case_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        self._owned("cases", org_id, case_id)
        return self._update("cases", [case_id], snake_changes(changes))[0]

    # contractor scheduling

    def list_availability(self, org_id: UUID, contractor_id: UUID) -> list[dict[str, Any]]:
        rows = self._select("contractor_availability", org_id=org_id, contractor_id=contractor_id)
        return sorted(rows, key=lambda r: (r["day_of_week"], r["start_time"]))

    def create_availability(self, org_id: UUID, contractor_id: UUID, payload: AvailabilityCreate) -> dict[str, Any]:
        values = snake_changes(payload.model_dump())
        return self._insert("contractor_availability", self._new_row(org_id, contractor_id=contractor_id, **values))

    def update_availability(self, org_id: UUID, contractor_id: UUID, slot_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        slot = self._owned("contractor_availability", org_id, slot_id)
        if str(slot["contractor_id"]) != str(contractor_id):
            raise HTTPException(status_code=404, detail=f"availability slot not found: {slot_id}")
        merged = {**slot, **snake_changes(changes)}
        if merged["end_time"] <= merged["start_time"]:
            raise ValueError("endTime must be after startTime")
        return self._update("contractor_availability", [slot_id], snake_changes(changes))[0]

    def delete_availability(self, org_id: UUID, contractor_id: UUID, slot_id: UUID) -> None:
        slot = self._owned("contractor_availability", org_id, slot_id)
        if str(slot["contractor_id"]) != str(contractor_id):
            raise HTTPException(status_code=404, detail=f"availability slot not found: {slot_id}")
        self._delete("contractor_availability", [slot_id])

    def list_blackouts(self, org_id: UUID, contractor_id: UUID) -> list[dict[str, Any]]:
        rows = self._select("contractor_blackouts", org_id=org_id, contractor_id=contractor_id)
        return sorted(rows, key=lambda r: as_utc(r["start_date"]))

    def create_blackout(self, org_id: UUID, contractor_id: UUID, payload: BlackoutCreate) -> dict[str, Any]:
        return self._insert(
            "contractor_blackouts",
            self._new_row(
                org_id,
                contractor_id=contractor_id,
                start_date=as_utc(payload.startDate),
                end_date=as_utc(payload.endDate),
                reason=payload.reason,
            ),
        )

    def delete_blackout(self, org_id: UUID, contractor_id: UUID, blackout_id: UUID) -> None:
        row = self._owned("contractor_blackouts", org_id, blackout_id)
        if str(row["contractor_id"]) != str(contractor_id):
            raise HTTPException(status_code=404, detail=f"blackout not found: {blackout_id}")
        self._delete("contractor_blackouts", [blackout_id])

    def list_appointments(self, org_id: UUID, contractor_id: UUID | None = None) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"org_id": org_id}
        if contractor_id is not None:
            filters["contractor_id"] = contractor_id
        return sorted(self._select("appointments", **filters), key=lambda r: as_utc(r["scheduled_start_at"]))

    def _book(self, org_id: UUID, contractor_id: UUID, start: datetime, end: datetime) -> None:
        conflicts = find_conflicts(
            start,
            end,
            self._select("appointments", org_id=org_id, contractor_id=contractor_id),
            self._select("contractor_blackouts", org_id=org_id, contractor_id=contractor_id),
        )
        if conflicts:
            logger.warning("scheduling conflict for contractor %s: %d overlapping items", contractor_id, len(conflicts))
            raise HTTPException(
                status_code=409,
                detail={"message": "contractor is not available in the requested window", "conflicts": conflicts},
            )

    def create_appointment(self, org_id: UUID, payload: AppointmentCreate) -> dict[str, Any]:
        case = self._owned("cases", org_id, payload.caseId)
        start, end = as_utc(payload.scheduledStartAt), as_utc(payload.scheduledEndAt)
        self._book(org_id, payload.contractorId, start, end)
        return self._insert(
            "appointments",
            self._new_row(
                org_id,
                case_id=payload.caseId,
                contractor_id=payload.contractorId,
                title=payload.title or case["title"],
                scheduled_start_at=start,
                scheduled_end_at=end,
                status="Scheduled",
                notes=payload.notes,
            ),
        )

    def accept_case(self, org_id: UUID, case_id: UUID, payload: CaseAcceptRequest) -> dict[str, Any]:
        start = as_utc(payload.startAt)
        end = start + timedelta(minutes=payload.durationMinutes)
        appointment = self.create_appointment(
            org_id,
            AppointmentCreate(
                caseId=case_id,
                contractorId=payload.contractorId,
                scheduledStartAt=start,
                scheduledEndAt=end,
                notes=payload.notes,
            ),
        )
        self._update(
            "cases",
            [case_id],
            {
                "assigned_contractor_id": payload.contractorId,
                "scheduled_start_at": start,
                "scheduled_end_at": end,
                "status": "Scheduled",
            },
        )
        logger.info("contractor %s accepted case %s for %s", payload.contractorId, case_id, start.isoformat())
        return appointment

    # customers & categories

    def create_customer(self, org_id: UUID, payload: CustomerCreate) -> dict[str, Any]:
        return self._insert("customers", self._new_row(org_id, **snake_changes(payload.model_dump())))

    def list_customers(self, org_id: UUID) -> list[dict[str, Any]]:
        return sorted(self._select("customers", org_id=org_id), key=lambda r: r["name"].lower())

    def delete_customer(self, org_id: UUID, customer_id: UUID) -> None:
        self._owned("customers", org_id, customer_id)
        self._delete("customers", [customer_id])

    def create_category(self, org_id: UUID, payload: UserCategoryCreate) -> dict[str, Any]:
        return self._insert("user_categories", self._new_row(org_id, is_active=True, **snake_changes(payload.model_dump())))

    def list_categories(self, org_id: UUID) -> list[dict[str, Any]]:
        return sorted(self._select("user_categories", org_id=org_id), key=lambda r: r["name"].lower())

    def update_category(self, org_id: UUID, category_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        self._owned("user_categories", org_id, category_id)
        return self._update("user_categories", [category_id], snake_changes(changes))[0]

    def delete_category(self, org_id: UUID, category_id: UUID) -> None:
        self._owned("user_categories", org_id, category_id)
        self._delete("user_categories", [category_id])


class InMemoryPersistence(Persistence):
    def _table(self, table: str) -> dict[UUID, dict[str, Any]]:
        return getattr(store, table)

    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        self._table(table)[row["id"]] = row
        return row

    def _get(self, table: str, entity_id: UUID) -> dict[str, Any] | None:
        return self._table(table).get(entity_id)

    def _select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        return [
            row
            for row in self._table(table).values()
            if all(row.get(key) == value for key, value in filters.items())
        ]

    def _update(self, table: str, ids: list[UUID], changes: dict[str, Any]) -> list[dict[str, Any]]:
        rows = self._table(table)
        updated = []
        for entity_id in ids:
            row = rows.get(entity_id)
            if row is None:
                continue
            row.update(changes)
            updated.append(row)
        return updated

    def _delete(self, table: str, ids: list[UUID]) -> int:
        rows = self._table(table)
        removed = 0
        for entity_id in ids:
            if rows.pop(entity_id, None) is not None:
                removed += 1
        return removed


class PostgresPersistence(Persistence):
    def __init__(self, database_url: str) -> None:
        self.engine: Engine = create_engine(database_url, future=True, pool_pre_ping=True)

    def _run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                if result.returns_rows:
                    return [dict(row._mapping) for row in result.fetchall()]
                return []
        except SQLAlchemyError as exc:
            raise HTTPException(status_code=500, detail=f"postgres error: {exc.__class__.__name__}") from exc

    @staticmethod
    def _columns(table: str, keys: list[str]) -> list[str]:
        allowed = TABLE_COLUMNS[table]
        unknown = [k for k in keys if k not in allowed]
        if unknown:
            raise ValueError(f"unknown columns for {table}: {', '.join(unknown)}")
        return keys

    @staticmethod
    def _placeholder(column: str) -> str:
        if column in JSON_COLUMNS:
            return f"cast(:{column} as jsonb)"
        return f":{column}"

    @staticmethod
    def _bind(values: dict[str, Any]) -> dict[str, Any]:
        return {k: json.dumps(v) if k in JSON_COLUMNS and v is not None else v for k, v in values.items()}

    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        columns = self._columns(table, [c for c in TABLE_COLUMNS[table] if c in row])
        names = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join(self._placeholder(c) for c in columns)
        return self._run(
            f"insert into {table} ({names}) values ({placeholders}) returning *",
            self._bind({c: row[c] for c in columns}),
        )[0]

    def _get(self, table: str, entity_id: UUID) -> dict[str, Any] | None:
        rows = self._run(f"select * from {table} where id = :id limit 1", {"id": entity_id})
        return rows[0] if rows else None

    def _select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        columns = self._columns(table, list(filters))
        where = " and ".join(f'"{c}" = :{c}' for c in columns) or "true"
        return self._run(f"select * from {table} where {where}", filters)

    def _update(self, table: str, ids: list[UUID], changes: dict[str, Any]) -> list[dict[str, Any]]:
        if not ids or not changes:
            return [row for row in (self._get(table, i) for i in ids) if row is not None]
        columns = self._columns(table, list(changes))
        assignments = ", ".join(f'"{c}" = {self._placeholder(c)}' for c in columns)
        params = self._bind(dict(changes))
        params["ids"] = list(ids)
        return self._run(f"update {table} set {assignments} where id = any(:ids) returning *", params)

    def _delete(self, table: str, ids: list[UUID]) -> int:
        if not ids:
            return 0
        rows = self._run(f"delete from {table} where id = any(:ids) returning id", {"ids": list(ids)})
        return len(rows)


def get_persistence() -> Persistence:
    if settings.storage_backend == "postgres":
        return PostgresPersistence(settings.database_url)
    return InMemoryPersistence()
