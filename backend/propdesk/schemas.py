from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PropertyType(str, Enum):
    single_family = "Single Family"
    condo = "Condo"
    townhome = "Townhome"
    residential_building = "Residential Building"
    commercial_unit = "Commercial Unit"
    commercial_building = "Commercial Building"


class TransactionType(str, Enum):
    income = "Income"
    expense = "Expense"


class TransactionScope(str, Enum):
    property = "property"
    operational = "operational"


class PaymentStatus(str, Enum):
    paid = "Paid"
    unpaid = "Unpaid"
    skipped = "Skipped"
    partial = "Partial"


class RecurringFrequency(str, Enum):
    days = "days"
    weeks = "weeks"
    months = "months"
    years = "years"
    monthly = "monthly"
    quarterly = "quarterly"
    biannually = "biannually"
    annually = "annually"


class SeriesMode(str, Enum):
    future = "future"
    all = "all"


class ReminderScope(str, Enum):
    entity = "entity"
    property = "property"
    lease = "lease"
    asset = "asset"


class ReminderType(str, Enum):
    rent = "rent"
    lease = "lease"
    regulatory = "regulatory"
    maintenance = "maintenance"
    custom = "custom"


class ReminderChannel(str, Enum):
    inapp = "inapp"
    email = "email"
    sms = "sms"
    push = "push"


class ReminderStatus(str, Enum):
    pending = "Pending"
    overdue = "Overdue"
    completed = "Completed"
    cancelled = "Cancelled"


class CaseStatus(str, Enum):
    new = "New"
    in_review = "In Review"
    scheduled = "Scheduled"
    in_progress = "In Progress"
    on_hold = "On Hold"
    resolved = "Resolved"
    closed = "Closed"


class CasePriority(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"
    urgent = "Urgent"


class AppointmentStatus(str, Enum):
    scheduled = "Scheduled"
    in_progress = "In Progress"
    completed = "Completed"
    cancelled = "Cancelled"
    no_show = "No Show"


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=128)
    fullName: Optional[str] = None
    organizationName: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        v = value.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("invalid email format")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return value.strip().lower()


class AuthResponse(BaseModel):
    token: str
    userId: UUID
    orgId: UUID
    email: str
    fullName: Optional[str] = None


class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: PropertyType
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zipCode: str = Field(min_length=1)
    country: str = "US"
    yearBuilt: Optional[int] = Field(default=None, ge=1600, le=2100)
    notes: Optional[str] = None

    @field_validator("country")
    @classmethod
    def validate_country(cls, value: str) -> str:
        up = value.upper()
        if len(up) != 2:
            raise ValueError("must be 2-letter country code")
        return up


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[PropertyType] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    yearBuilt: Optional[int] = Field(default=None, ge=1600, le=2100)
    notes: Optional[str] = None


class PropertyResponse(BaseModel):
    id: UUID
    name: str
    type: PropertyType
    street: str
    city: str
    state: str
    zipCode: str
    country: str
    createdAt: datetime


class UnitCreate(BaseModel):
    propertyId: UUID
    label: str = Field(min_length=1, max_length=100)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[Decimal] = Field(default=None, ge=0)
    rentAmount: Optional[Decimal] = Field(default=None, ge=0)


class UnitResponse(BaseModel):
    id: UUID
    propertyId: UUID
    label: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[Decimal] = None
    rentAmount: Optional[Decimal] = None


class TransactionCreate(BaseModel):
    scope: TransactionScope = TransactionScope.property
    propertyId: Optional[UUID] = None
    unitId: Optional[UUID] = None
    entityId: Optional[UUID] = None
    amount: Decimal = Field(ge=Decimal("0"))
    description: str = ""
    category: Optional[str] = None
    customCategory: Optional[str] = None
    date: datetime
    notes: Optional[str] = None
    isRecurring: bool = False
    recurringFrequency: Optional[RecurringFrequency] = None
    recurringInterval: int = Field(default=1, ge=1)
    recurringEndDate: Optional[datetime] = None
    taxDeductible: bool = True
    paymentStatus: Optional[PaymentStatus] = None
    paidAmount: Optional[Decimal] = Field(default=None, ge=Decimal("0"))

    @model_validator(mode="after")
    def validate_owner(self) -> "TransactionCreate":
        if self.scope == TransactionScope.property:
            if self.propertyId is None:
                raise ValueError("scope=property requires propertyId")
            if self.entityId is not None:
                raise ValueError("a property transaction cannot also reference an entity")
        else:
            if self.entityId is None:
                raise ValueError("scope=operational requires entityId")
            if self.propertyId is not None or self.unitId is not None:
                raise ValueError("an operational transaction cannot reference a property or unit")
        if self.isRecurring and self.recurringFrequency is None:
            raise ValueError("isRecurring requires recurringFrequency")
        if self.recurringEndDate and self.recurringEndDate < self.date:
            raise ValueError("recurringEndDate must be >= date")
        return self

    def resolved_category(self) -> Optional[str]:
        if self.category == "custom" and self.customCategory:
            return self.customCategory
        if self.category == "none":
            return None
        return self.category


class TransactionUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, ge=Decimal("0"))
    description: Optional[str] = None
    category: Optional[str] = None
    customCategory: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    unitId: Optional[UUID] = None
    taxDeductible: Optional[bool] = None
    paymentStatus: Optional[PaymentStatus] = None
    paidAmount: Optional[Decimal] = Field(default=None, ge=Decimal("0"))
    recurringEndDate: Optional[datetime] = None
    mode: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True, exclude={"customCategory", "mode"})
        if self.category == "custom" and self.customCategory:
            data["category"] = self.customCategory
        elif self.category == "none":
            data["category"] = None
        return data


class TransactionResponse(BaseModel):
    id: UUID
    type: TransactionType
    scope: TransactionScope
    propertyId: Optional[UUID] = None
    unitId: Optional[UUID] = None
    entityId: Optional[UUID] = None
    amount: Decimal
    description: str
    category: Optional[str] = None
    date: datetime
    notes: Optional[str] = None
    isRecurring: bool
    recurringFrequency: Optional[str] = None
    recurringInterval: int
    recurringEndDate: Optional[datetime] = None
    parentRecurringId: Optional[UUID] = None
    taxDeductible: bool
    paymentStatus: PaymentStatus
    paidAmount: Optional[Decimal] = None
    createdAt: datetime


class PaymentStatusUpdate(BaseModel):
    paymentStatus: PaymentStatus
    paidAmount: Optional[Decimal] = Field(default=None, ge=Decimal("0"))

    @model_validator(mode="after")
    def validate_partial(self) -> "PaymentStatusUpdate":
        if self.paymentStatus == PaymentStatus.partial and self.paidAmount is None:
            raise ValueError("paymentStatus=Partial requires paidAmount")
        return self


class StatusGroup(BaseModel):
    status: str
    total: Decimal
    count: int
    percentage: int


class MonthlyTrend(BaseModel):
    month: str
    label: str
    total: Decimal
    paid: Decimal
    unpaid: Decimal


class CategoryTotal(BaseModel):
    category: str
    total: Decimal
    count: int


class PropertyPerformance(BaseModel):
    propertyId: UUID
    name: str
    total: Decimal
    count: int
    paidAmount: Decimal
    unpaidAmount: Decimal
    collectionRate: int


class TransactionSummaryResponse(BaseModel):
    total: Decimal
    thisMonth: Decimal
    visibleCount: int
    futureCount: int
    statusBreakdown: list[StatusGroup]
    monthlyTrends: list[MonthlyTrend]
    categories: list[CategoryTotal]
    properties: list[PropertyPerformance]


class ReminderCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    type: ReminderType = ReminderType.custom
    scope: Optional[ReminderScope] = None
    scopeId: Optional[str] = None
    entityId: Optional[UUID] = None
    dueAt: Optional[datetime] = None
    leadDays: int = Field(default=0, ge=0)
    channels: list[ReminderChannel] = Field(default_factory=lambda: [ReminderChannel.inapp])
    payloadJson: Optional[dict[str, Any]] = None
    isRecurring: bool = False
    recurringFrequency: Optional[RecurringFrequency] = None
    recurringInterval: int = Field(default=1, ge=1)
    recurringEndDate: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_recurring(self) -> "ReminderCreate":
        if self.isRecurring and self.recurringFrequency is None:
            raise ValueError("isRecurring requires recurringFrequency")
        if self.isRecurring and self.dueAt is None:
            raise ValueError("a recurring reminder requires dueAt")
        return self


class ReminderUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[ReminderType] = None
    dueAt: Optional[datetime] = None
    leadDays: Optional[int] = Field(default=None, ge=0)
    channels: Optional[list[ReminderChannel]] = None
    payloadJson: Optional[dict[str, Any]] = None
    status: Optional[ReminderStatus] = None
    recurringEndDate: Optional[datetime] = None
    mode: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        # dueAt is the only field a caller may explicitly null (unschedule).
        data = self.model_dump(exclude_unset=True, exclude={"mode"})
        return {k: v for k, v in data.items() if v is not None or k == "dueAt"}


class ReminderResponse(BaseModel):
    id: UUID
    title: str
    type: Optional[ReminderType] = None
    scope: Optional[ReminderScope] = None
    scopeId: Optional[str] = None
    entityId: Optional[UUID] = None
    dueAt: Optional[datetime] = None
    leadDays: int
    channels: list[ReminderChannel]
    payloadJson: Optional[dict[str, Any]] = None
    status: ReminderStatus
    completedAt: Optional[datetime] = None
    isRecurring: bool
    recurringFrequency: Optional[str] = None
    recurringInterval: int
    recurringEndDate: Optional[datetime] = None
    parentRecurringId: Optional[UUID] = None
    createdAt: datetime


class CaseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    propertyId: Optional[UUID] = None
    unitId: Optional[UUID] = None
    priority: CasePriority = CasePriority.medium
    category: Optional[str] = None
    aiTriageJson: Optional[dict[str, Any]] = None
    scheduledStartAt: Optional[datetime] = None
    scheduledEndAt: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_window(self) -> "CaseCreate":
        if self.scheduledStartAt and self.scheduledEndAt and self.scheduledEndAt < self.scheduledStartAt:
            raise ValueError("scheduledEndAt must be >= scheduledStartAt")
        return self


class CaseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[CaseStatus] = None
    priority: Optional[CasePriority] = None
    category: Optional[str] = None
    assignedContractorId: Optional[UUID] = None
    scheduledStartAt: Optional[datetime] = None
    scheduledEndAt: Optional[datetime] = None

    def changes(self) -> dict[str, Any]:
        # Schedule fields may be explicitly nulled to unschedule a case.
        data = self.model_dump(exclude_unset=True)
        nullable = {"scheduledStartAt", "scheduledEndAt", "assignedContractorId"}
        return {k: v for k, v in data.items() if v is not None or k in nullable}


class CaseResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    propertyId: Optional[UUID] = None
    unitId: Optional[UUID] = None
    status: CaseStatus
    priority: CasePriority
    category: Optional[str] = None
    aiTriageJson: Optional[dict[str, Any]] = None
    assignedContractorId: Optional[UUID] = None
    scheduledStartAt: Optional[datetime] = None
    scheduledEndAt: Optional[datetime] = None
    createdAt: datetime


class AvailabilityCreate(BaseModel):
    dayOfWeek: int = Field(ge=0, le=6)
    startTime: str = Field(pattern=r"^\d{2}:\d{2}$")
    endTime: str = Field(pattern=r"^\d{2}:\d{2}$")
    isActive: bool = True

    @model_validator(mode="after")
    def validate_times(self) -> "AvailabilityCreate":
        if self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


class AvailabilityUpdate(BaseModel):
    dayOfWeek: Optional[int] = Field(default=None, ge=0, le=6)
    startTime: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    endTime: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    isActive: Optional[bool] = None


class AvailabilityResponse(BaseModel):
    id: UUID
    contractorId: UUID
    dayOfWeek: int
    startTime: str
    endTime: str
    isActive: bool


class BlackoutCreate(BaseModel):
    startDate: datetime
    endDate: datetime
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_period(self) -> "BlackoutCreate":
        if self.endDate < self.startDate:
            raise ValueError("endDate must be >= startDate")
        return self


class BlackoutResponse(BaseModel):
    id: UUID
    contractorId: UUID
    startDate: datetime
    endDate: datetime
    reason: Optional[str] = None


class AppointmentCreate(BaseModel):
    caseId: UUID
    contractorId: UUID
    title: Optional[str] = None
    scheduledStartAt: datetime
    scheduledEndAt: datetime
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentCreate":
        if self.scheduledEndAt <= self.scheduledStartAt:
            raise ValueError("scheduledEndAt must be after scheduledStartAt")
        return self


class AppointmentResponse(BaseModel):
    id: UUID
    caseId: UUID
    contractorId: UUID
    title: Optional[str] = None
    scheduledStartAt: datetime
    scheduledEndAt: datetime
    status: AppointmentStatus
    notes: Optional[str] = None


class CaseAcceptRequest(BaseModel):
    contractorId: UUID
    startAt: datetime
    durationMinutes: int = Field(default=60, gt=0, le=24 * 60)
    notes: Optional[str] = None


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        v = value.strip().lower()
        if "@" not in v:
            raise ValueError("invalid email format")
        return v


class CustomerResponse(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    createdAt: datetime


class UserCategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field(default="#0080FF", pattern=r"^#[0-9A-Fa-f]{6}$")


class UserCategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    isActive: Optional[bool] = None


class UserCategoryResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    color: str
    isActive: bool


class CalendarDropRequest(BaseModel):
    activeId: str = Field(min_length=1)
    overId: Optional[str] = None


class CalendarDropResponse(BaseModel):
    moved: bool
    itemType: Optional[str] = None
    itemId: Optional[str] = None
    changes: dict[str, Optional[datetime]] = Field(default_factory=dict)


class CalendarWeekResponse(BaseModel):
    timezone: str
    start: date
    hours: list[int]
    days: list[dict[str, Any]]
    unscheduled: list[dict[str, Any]]
