import logging
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import Cookie, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .auth_utils import new_session_token
from .config import settings
from .persistence import get_persistence
from .schemas import (
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    AppointmentCreate,
    AppointmentResponse,
    AuthResponse,
    AvailabilityCreate,
    AvailabilityResponse,
    AvailabilityUpdate,
    BlackoutCreate,
    BlackoutResponse,
    CalendarDropRequest,
    CalendarDropResponse,
    CalendarWeekResponse,
    CaseAcceptRequest,
    CaseCreate,
    CaseResponse,
    CaseUpdate,
    CustomerCreate,
    CustomerResponse,
    HealthResponse,
    LoginRequest,
    PaymentStatusUpdate,
    PropertyCreate,
    PropertyResponse,
    PropertyUpdate,
    RegisterRequest,
    ReminderCreate,
    ReminderResponse,
    ReminderUpdate,
    SeriesMode,
    TransactionCreate,
    TransactionResponse,
    TransactionSummaryResponse,
    TransactionType,
    TransactionUpdate,
    UnitCreate,
    UnitResponse,
    UserCategoryCreate,
    UserCategoryResponse,
    UserCategoryUpdate,
)
from .services.calendar import build_week, case_placement, parse_drag_id, reminder_placement, resolve_drop_target
from .services.payments import summarize

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="propdesk API",
    version="0.1.0",
    description="Property management API: expenses, revenue, reminders, maintenance cases and scheduling.",
)

persistence = get_persistence()
active_sessions: dict[str, dict[str, Any]] = {}
SESSION_COOKIE_NAME = "pd_session"
PUBLIC_API = {"/api/health", "/api/auth/register", "/api/auth/login"}


def _extract_token_from_request(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth:
        parts = auth.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
    return request.cookies.get(SESSION_COOKIE_NAME)


def _get_session_user_id(token: str | None) -> UUID | None:
    if not token:
        return None
    session = active_sessions.get(token)
    if session is None:
        return None
    session["last_seen"] = datetime.now(timezone.utc)
    return session.get("user_id")


def _create_session(user_id: UUID) -> str:
    token = new_session_token()
    active_sessions[token] = {"user_id": user_id, "last_seen": datetime.now(timezone.utc)}
    return token


def build_error_response(details: list[ApiErrorDetail], message: str = "Invalid request payload") -> JSONResponse:
    payload = ApiErrorResponse(
        error=ApiErrorPayload(code="VALIDATION_ERROR", message=message, details=details)
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response(details)


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError) -> JSONResponse:
    return build_error_response([ApiErrorDetail(field="body", message=str(exc))])


@app.middleware("http")
async def api_auth_middleware(request: Request, call_next):
    path = request.url.path
    if path.startswith("/api") and path not in PUBLIC_API:
        token = _extract_token_from_request(request)
        if not _get_session_user_id(token):
            return JSONResponse(status_code=401, content={"detail": "authentication required"})
    return await call_next(request)


def _token_from_header(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="invalid Authorization header")
    return parts[1].strip()


def _require_user(authorization: str | None = None, session_token: str | None = None) -> dict[str, Any]:
    token = session_token
    if authorization:
        token = _token_from_header(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="missing session token")
    user_id = _get_session_user_id(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="invalid or expired token")
    user = persistence.get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="user not found")
    return user


def _require_org(authorization: str | None = None, session_token: str | None = None) -> UUID:
    return _require_user(authorization, session_token)["org_id"]


def _series_mode(mode: str | None) -> SeriesMode | None:
    if not mode:
        return None
    try:
        return SeriesMode(mode)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid mode '{mode}': use 'future' or 'all'") from None


def _property_response(row: dict[str, Any]) -> PropertyResponse:
    return PropertyResponse(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        street=row["street"],
        city=row["city"],
        state=row["state"],
        zipCode=row["zip_code"],
        country=row["country"],
        createdAt=row["created_at"],
    )


def _unit_response(row: dict[str, Any]) -> UnitResponse:
    return UnitResponse(
        id=row["id"],
        propertyId=row["property_id"],
        label=row["label"],
        bedrooms=row.get("bedrooms"),
        bathrooms=row.get("bathrooms"),
        rentAmount=row.get("rent_amount"),
    )


def _transaction_response(row: dict[str, Any]) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        type=row["type"],
        scope=row["scope"],
        propertyId=row.get("property_id"),
        unitId=row.get("unit_id"),
        entityId=row.get("entity_id"),
        amount=row["amount"],
        description=row.get("description") or "",
        category=row.get("category"),
        date=row["date"],
        notes=row.get("notes"),
        isRecurring=bool(row.get("is_recurring")),
        recurringFrequency=row.get("recurring_frequency"),
        recurringInterval=row.get("recurring_interval") or 1,
        recurringEndDate=row.get("recurring_end_date"),
        parentRecurringId=row.get("parent_recurring_id"),
        taxDeductible=bool(row.get("tax_deductible")),
        paymentStatus=row.get("payment_status") or "Paid",
        paidAmount=row.get("paid_amount"),
        createdAt=row["created_at"],
    )


def _reminder_response(row: dict[str, Any]) -> ReminderResponse:
    return ReminderResponse(
        id=row["id"],
        title=row["title"],
        type=row.get("type"),
        scope=row.get("scope"),
        scopeId=row.get("scope_id"),
        entityId=row.get("entity_id"),
        dueAt=row.get("due_at"),
        leadDays=row.get("lead_days") or 0,
        channels=row.get("channels") or [],
        payloadJson=row.get("payload_json"),
        status=row.get("status") or "Pending",
        completedAt=row.get("completed_at"),
        isRecurring=bool(row.get("is_recurring")),
        recurringFrequency=row.get("recurring_frequency"),
        recurringInterval=row.get("recurring_interval") or 1,
        recurringEndDate=row.get("recurring_end_date"),
        parentRecurringId=row.get("parent_recurring_id"),
        createdAt=row["created_at"],
    )


def _case_response(row: dict[str, Any]) -> CaseResponse:
    return CaseResponse(
        id=row["id"],
        title=row["title"],
        description=row.get("description"),
        propertyId=row.get("property_id"),
        unitId=row.get("unit_id"),
        status=row["status"],
        priority=row["priority"],
        category=row.get("category"),
        aiTriageJson=row.get("ai_triage_json"),
        assignedContractorId=row.get("assigned_contractor_id"),
        scheduledStartAt=row.get("scheduled_start_at"),
        scheduledEndAt=row.get("scheduled_end_at"),
        createdAt=row["created_at"],
    )


def _appointment_response(row: dict[str, Any]) -> AppointmentResponse:
    return AppointmentResponse(
        id=row["id"],
        caseId=row["case_id"],
        contractorId=row["contractor_id"],
        title=row.get("title"),
        scheduledStartAt=row["scheduled_start_at"],
        scheduledEndAt=row["scheduled_end_at"],
        status=row["status"],
        notes=row.get("notes"),
    )


def _availability_response(row: dict[str, Any]) -> AvailabilityResponse:
    return AvailabilityResponse(
        id=row["id"],
        contractorId=row["contractor_id"],
        dayOfWeek=row["day_of_week"],
        startTime=row["start_time"],
        endTime=row["end_time"],
        isActive=bool(row["is_active"]),
    )


def _blackout_response(row: dict[str, Any]) -> BlackoutResponse:
    return BlackoutResponse(
        id=row["id"],
        contractorId=row["contractor_id"],
        startDate=row["start_date"],
        endDate=row["end_date"],
        reason=row.get("reason"),
    )


def _customer_response(row: dict[str, Any]) -> CustomerResponse:
    return CustomerResponse(
        id=row["id"],
        name=row["name"],
        email=row.get("email"),
        phone=row.get("phone"),
        company=row.get("company"),
        notes=row.get("notes"),
        createdAt=row["created_at"],
    )


def _category_response(row: dict[str, Any]) -> UserCategoryResponse:
    return UserCategoryResponse(
        id=row["id"],
        name=row["name"],
        description=row.get("description"),
        color=row["color"],
        isActive=bool(row.get("is_active")),
    )


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
async def auth_register(payload: RegisterRequest, response: Response) -> AuthResponse:
    user = persistence.register_user(payload.email, payload.password, payload.fullName, payload.organizationName)
    token = _create_session(user["id"])
    response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="lax", secure=False)
    return AuthResponse(token=token, userId=user["id"], orgId=user["org_id"], email=user["email"], fullName=user.get("full_name"))


@app.post("/api/auth/login", response_model=AuthResponse)
async def auth_login(payload: LoginRequest, response: Response) -> AuthResponse:
    user = persistence.authenticate_user(payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="invalid email or password")
    token = _create_session(user["id"])
    response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="lax", secure=False)
    return AuthResponse(token=token, userId=user["id"], orgId=user["org_id"], email=user["email"], fullName=user.get("full_name"))


@app.get("/api/auth/me", response_model=AuthResponse)
async def auth_me(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AuthResponse:
    user = _require_user(authorization, session_token)
    token = _token_from_header(authorization) if authorization else session_token
    return AuthResponse(token=token, userId=user["id"], orgId=user["org_id"], email=user["email"], fullName=user.get("full_name"))


@app.post("/api/auth/logout")
async def auth_logout(
    response: Response,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    token = _token_from_header(authorization) if authorization else session_token
    if token and token in active_sessions:
        del active_sessions[token]
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"ok": True}


# properties & units


@app.get("/api/properties", response_model=list[PropertyResponse])
async def list_properties(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[PropertyResponse]:
    org_id = _require_org(authorization, session_token)
    return [_property_response(row) for row in persistence.list_properties(org_id)]


@app.post("/api/properties", response_model=PropertyResponse, status_code=201)
async def create_property(
    payload: PropertyCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> PropertyResponse:
    org_id = _require_org(authorization, session_token)
    return _property_response(persistence.create_property(org_id, payload))


@app.patch("/api/properties/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: UUID,
    payload: PropertyUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> PropertyResponse:
    org_id = _require_org(authorization, session_token)
    row = persistence.update_property(org_id, property_id, payload.model_dump(exclude_none=True))
    return _property_response(row)


@app.delete("/api/properties/{property_id}")
async def delete_property(
    property_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_property(org_id, property_id)
    return {"deleted": True}


@app.get("/api/units", response_model=list[UnitResponse])
async def list_units(
    propertyId: UUID | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[UnitResponse]:
    org_id = _require_org(authorization, session_token)
    return [_unit_response(row) for row in persistence.list_units(org_id, propertyId)]


@app.post("/api/units", response_model=UnitResponse, status_code=201)
async def create_unit(
    payload: UnitCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> UnitResponse:
    org_id = _require_org(authorization, session_token)
    return _unit_response(persistence.create_unit(org_id, payload))


# transactions


@app.get("/api/transactions/summary", response_model=TransactionSummaryResponse)
async def transaction_summary(
    type: TransactionType | None = Query(default=None),
    showFuture: bool = Query(default=False),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionSummaryResponse:
    org_id = _require_org(authorization, session_token)
    entries = [_transaction_response(row).model_dump(mode="json") for row in persistence.list_transactions(org_id, type)]
    data = summarize(entries, persistence.now(), show_future=showFuture, properties=persistence.list_properties(org_id))
    return TransactionSummaryResponse(**data)


@app.get("/api/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    type: TransactionType | None = Query(default=None),
    propertyId: UUID | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[TransactionResponse]:
    org_id = _require_org(authorization, session_token)
    return [_transaction_response(row) for row in persistence.list_transactions(org_id, type, propertyId)]


@app.patch("/api/transactions/{transaction_id}/payment-status", response_model=TransactionResponse)
async def update_payment_status(
    transaction_id: UUID,
    payload: PaymentStatusUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    row = persistence.update_payment_status(org_id, transaction_id, payload.paymentStatus, payload.paidAmount)
    return _transaction_response(row)


def _create_typed(org_id: UUID, tx_type: TransactionType, payload: TransactionCreate) -> TransactionResponse:
    row = persistence.create_transaction(org_id, tx_type, payload)
    logger.info("created %s transaction %s (recurring=%s)", tx_type.value, row["id"], row["is_recurring"])
    return _transaction_response(row)


def _update_typed(org_id: UUID, tx_type: TransactionType, transaction_id: UUID, payload: TransactionUpdate) -> TransactionResponse:
    persistence.get_transaction(org_id, transaction_id, tx_type)
    return _transaction_response(persistence.update_transaction(org_id, transaction_id, payload.changes()))


def _delete_typed(org_id: UUID, tx_type: TransactionType, transaction_id: UUID) -> dict[str, int]:
    persistence.get_transaction(org_id, transaction_id, tx_type)
    persistence.delete_transaction(org_id, transaction_id)
    return {"deleted": 1}


def _update_typed_series(
    org_id: UUID,
    tx_type: TransactionType,
    transaction_id: UUID,
    payload: TransactionUpdate,
    mode: str | None,
) -> TransactionResponse:
    series_mode = _series_mode(mode or payload.mode)
    if series_mode is None:
        return _update_typed(org_id, tx_type, transaction_id, payload)
    persistence.get_transaction(org_id, transaction_id, tx_type)
    row = persistence.update_transaction_series(org_id, transaction_id, payload.changes(), series_mode)
    return _transaction_response(row)


def _delete_typed_series(org_id: UUID, tx_type: TransactionType, transaction_id: UUID, mode: str | None) -> dict[str, int]:
    series_mode = _series_mode(mode)
    if series_mode is None:
        return _delete_typed(org_id, tx_type, transaction_id)
    persistence.get_transaction(org_id, transaction_id, tx_type)
    return {"deleted": persistence.delete_transaction_series(org_id, transaction_id, series_mode)}


@app.post("/api/expenses", response_model=TransactionResponse, status_code=201)
async def create_expense(
    payload: TransactionCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _create_typed(org_id, TransactionType.expense, payload)


@app.put("/api/expenses/{transaction_id}", response_model=TransactionResponse)
async def update_expense(
    transaction_id: UUID,
    payload: TransactionUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _update_typed(org_id, TransactionType.expense, transaction_id, payload)


@app.delete("/api/expenses/{transaction_id}")
async def delete_expense(
    transaction_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    return _delete_typed(org_id, TransactionType.expense, transaction_id)


@app.put("/api/expenses/{transaction_id}/recurring", response_model=TransactionResponse)
async def update_expense_series(
    transaction_id: UUID,
    payload: TransactionUpdate,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _update_typed_series(org_id, TransactionType.expense, transaction_id, payload, mode)


@app.delete("/api/expenses/{transaction_id}/recurring")
async def delete_expense_series(
    transaction_id: UUID,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    return _delete_typed_series(org_id, TransactionType.expense, transaction_id, mode)


@app.post("/api/revenues", response_model=TransactionResponse, status_code=201)
async def create_revenue(
    payload: TransactionCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _create_typed(org_id, TransactionType.income, payload)


@app.put("/api/revenues/{transaction_id}", response_model=TransactionResponse)
async def update_revenue(
    transaction_id: UUID,
    payload: TransactionUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _update_typed(org_id, TransactionType.income, transaction_id, payload)


@app.delete("/api/revenues/{transaction_id}")
async def delete_revenue(
    transaction_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    return _delete_typed(org_id, TransactionType.income, transaction_id)


@app.put("/api/revenues/{transaction_id}/recurring", response_model=TransactionResponse)
async def update_revenue_series(
    transaction_id: UUID,
    payload: TransactionUpdate,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TransactionResponse:
    org_id = _require_org(authorization, session_token)
    return _update_typed_series(org_id, TransactionType.income, transaction_id, payload, mode)


@app.delete("/api/revenues/{transaction_id}/recurring")
async def delete_revenue_series(
    transaction_id: UUID,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    return _delete_typed_series(org_id, TransactionType.income, transaction_id, mode)


# reminders


@app.get("/api/reminders", response_model=list[ReminderResponse])
async def list_reminders(
    type: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[ReminderResponse]:
    org_id = _require_org(authorization, session_token)
    return [_reminder_response(row) for row in persistence.list_reminders(org_id, type)]


@app.post("/api/reminders", response_model=ReminderResponse, status_code=201)
async def create_reminder(
    payload: ReminderCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> ReminderResponse:
    org_id = _require_org(authorization, session_token)
    return _reminder_response(persistence.create_reminder(org_id, payload))


@app.patch("/api/reminders/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: UUID,
    payload: ReminderUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> ReminderResponse:
    org_id = _require_org(authorization, session_token)
    return _reminder_response(persistence.update_reminder(org_id, reminder_id, payload.changes()))


@app.delete("/api/reminders/{reminder_id}")
async def delete_reminder(
    reminder_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_reminder(org_id, reminder_id)
    return {"deleted": 1}


@app.patch("/api/reminders/{reminder_id}/recurring", response_model=ReminderResponse)
async def update_reminder_series(
    reminder_id: UUID,
    payload: ReminderUpdate,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> ReminderResponse:
    org_id = _require_org(authorization, session_token)
    series_mode = _series_mode(mode or payload.mode)
    if series_mode is None:
        return _reminder_response(persistence.update_reminder(org_id, reminder_id, payload.changes()))
    return _reminder_response(persistence.update_reminder_series(org_id, reminder_id, payload.changes(), series_mode))


@app.delete("/api/reminders/{reminder_id}/recurring")
async def delete_reminder_series(
    reminder_id: UUID,
    mode: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    org_id = _require_org(authorization, session_token)
    series_mode = _series_mode(mode)
    if series_mode is None:
        persistence.delete_reminder(org_id, reminder_id)
        return {"deleted": 1}
    return {"deleted": persistence.delete_reminder_series(org_id, reminder_id, series_mode)}


# maintenance cases


@app.get("/api/cases", response_model=list[CaseResponse])
async def list_cases(
    status: str = Query(default="all"),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[CaseResponse]:
    org_id = _require_org(authorization, session_token)
    return [_case_response(row) for row in persistence.list_cases(org_id, status)]


@app.post("/api/cases", response_model=CaseResponse, status_code=201)
async def create_case(
    payload: CaseCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CaseResponse:
    org_id = _require_org(authorization, session_token)
    return _case_response(persistence.create_case(org_id, payload))


@app.get("/api/cases/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CaseResponse:
    org_id = _require_org(authorization, session_token)
    return _case_response(persistence.get_case(org_id, case_id))


@app.patch("/api/cases/{case_id}", response_model=CaseResponse)
async def update_case(
    case_id: UUID,
    payload: CaseUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CaseResponse:
    org_id = _require_org(authorization, session_token)
    return _case_response(persistence.update_case(org_id, case_id, payload.changes()))


# calendar


@app.get("/api/calendar/week", response_model=CalendarWeekResponse)
async def calendar_week(
    start: date = Query(...),
    filterMode: str = Query(default="all", pattern="^(all|reminders|cases)$"),
    reminderType: str | None = Query(default=None),
    status: str = Query(default="all"),
    hideWeekends: bool = Query(default=False),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CalendarWeekResponse:
    org_id = _require_org(authorization, session_token)
    reminders: list[dict[str, Any]] = []
    cases: list[dict[str, Any]] = []
    if filterMode in ("all", "reminders"):
        reminders = [_reminder_response(r).model_dump(mode="json") for r in persistence.list_reminders(org_id, reminderType)]
    if filterMode in ("all", "cases"):
        cases = [_case_response(c).model_dump(mode="json") for c in persistence.list_cases(org_id, status)]
    week = build_week(
        reminders,
        cases,
        start,
        settings.org_timezone,
        settings.calendar_start_hour,
        settings.calendar_end_hour,
        hideWeekends,
    )
    return CalendarWeekResponse(start=start, **week)


@app.post("/api/calendar/drop", response_model=CalendarDropResponse)
async def calendar_drop(
    payload: CalendarDropRequest,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CalendarDropResponse:
    org_id = _require_org(authorization, session_token)
    item = parse_drag_id(payload.activeId)
    target = resolve_drop_target(payload.overId, settings.org_timezone)
    if item is None or target is None:
        return CalendarDropResponse(moved=False)
    try:
        item_id = UUID(item.item_id)
    except ValueError:
        return CalendarDropResponse(moved=False)
    try:
        if item.kind == "reminder":
            persistence.get_reminder(org_id, item_id)
            changes = reminder_placement(target)
            persistence.update_reminder(org_id, item_id, changes)
        else:
            case = persistence.get_case(org_id, item_id)
            changes = case_placement(
                {"scheduledStartAt": case.get("scheduled_start_at"), "scheduledEndAt": case.get("scheduled_end_at")},
                target,
            )
            persistence.update_case(org_id, item_id, changes)
    except HTTPException as exc:
        if exc.status_code != 404:
            raise
        return CalendarDropResponse(moved=False)
    logger.info("calendar drop %s -> %s", payload.activeId, payload.overId)
    return CalendarDropResponse(moved=True, itemType=item.kind, itemId=item.item_id, changes=changes)


# contractor scheduling


@app.get("/api/contractors/{contractor_id}/availability", response_model=list[AvailabilityResponse])
async def list_availability(
    contractor_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[AvailabilityResponse]:
    org_id = _require_org(authorization, session_token)
    return [_availability_response(row) for row in persistence.list_availability(org_id, contractor_id)]


@app.post("/api/contractors/{contractor_id}/availability", response_model=AvailabilityResponse, status_code=201)
async def create_availability(
    contractor_id: UUID,
    payload: AvailabilityCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AvailabilityResponse:
    org_id = _require_org(authorization, session_token)
    return _availability_response(persistence.create_availability(org_id, contractor_id, payload))


@app.patch("/api/contractors/{contractor_id}/availability/{slot_id}", response_model=AvailabilityResponse)
async def update_availability(
    contractor_id: UUID,
    slot_id: UUID,
    payload: AvailabilityUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AvailabilityResponse:
    org_id = _require_org(authorization, session_token)
    row = persistence.update_availability(org_id, contractor_id, slot_id, payload.model_dump(exclude_none=True))
    return _availability_response(row)


@app.delete("/api/contractors/{contractor_id}/availability/{slot_id}")
async def delete_availability(
    contractor_id: UUID,
    slot_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_availability(org_id, contractor_id, slot_id)
    return {"deleted": True}


@app.get("/api/contractors/{contractor_id}/blackouts", response_model=list[BlackoutResponse])
async def list_blackouts(
    contractor_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[BlackoutResponse]:
    org_id = _require_org(authorization, session_token)
    return [_blackout_response(row) for row in persistence.list_blackouts(org_id, contractor_id)]


@app.post("/api/contractors/{contractor_id}/blackouts", response_model=BlackoutResponse, status_code=201)
async def create_blackout(
    contractor_id: UUID,
    payload: BlackoutCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> BlackoutResponse:
    org_id = _require_org(authorization, session_token)
    return _blackout_response(persistence.create_blackout(org_id, contractor_id, payload))


@app.delete("/api/contractors/{contractor_id}/blackouts/{blackout_id}")
async def delete_blackout(
    contractor_id: UUID,
    blackout_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_blackout(org_id, contractor_id, blackout_id)
    return {"deleted": True}


@app.get("/api/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    contractorId: UUID | None = Query(default=None),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[AppointmentResponse]:
    org_id = _require_org(authorization, session_token)
    return [_appointment_response(row) for row in persistence.list_appointments(org_id, contractorId)]


@app.post("/api/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    payload: AppointmentCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AppointmentResponse:
    org_id = _require_org(authorization, session_token)
    return _appointment_response(persistence.create_appointment(org_id, payload))


@app.post("/api/contractor/cases/{case_id}/accept", response_model=AppointmentResponse, status_code=201)
async def accept_case(
    case_id: UUID,
    payload: CaseAcceptRequest,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AppointmentResponse:
    org_id = _require_org(authorization, session_token)
    return _appointment_response(persistence.accept_case(org_id, case_id, payload))


# customers & categories


@app.get("/api/customers", response_model=list[CustomerResponse])
async def list_customers(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[CustomerResponse]:
    org_id = _require_org(authorization, session_token)
    return [_customer_response(row) for row in persistence.list_customers(org_id)]


@app.post("/api/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(
    payload: CustomerCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> CustomerResponse:
    org_id = _require_org(authorization, session_token)
    return _customer_response(persistence.create_customer(org_id, payload))


@app.delete("/api/customers/{customer_id}")
async def delete_customer(
    customer_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_customer(org_id, customer_id)
    return {"deleted": True}


@app.get("/api/categories", response_model=list[UserCategoryResponse])
async def list_categories(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[UserCategoryResponse]:
    org_id = _require_org(authorization, session_token)
    return [_category_response(row) for row in persistence.list_categories(org_id)]


@app.post("/api/categories", response_model=UserCategoryResponse, status_code=201)
async def create_category(
    payload: UserCategoryCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> UserCategoryResponse:
    org_id = _require_org(authorization, session_token)
    return _category_response(persistence.create_category(org_id, payload))


@app.patch("/api/categories/{category_id}", response_model=UserCategoryResponse)
async def update_category(
    category_id: UUID,
    payload: UserCategoryUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> UserCategoryResponse:
    org_id = _require_org(authorization, session_token)
    return _category_response(persistence.update_category(org_id, category_id, payload.model_dump(exclude_none=True)))


@app.delete("/api/categories/{category_id}")
async def delete_category(
    category_id: UUID,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    org_id = _require_org(authorization, session_token)
    persistence.delete_category(org_id, category_id)
    return {"deleted": True}
