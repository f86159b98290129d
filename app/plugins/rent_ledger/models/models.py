from __future__ import annotations
from datetime import datetime, date
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from core.MongoORJSONResponse import PyObjectId, MongoModel
from utils.date_helper import ensure_datetime, utcnow

# ============================================
# Enums
# ============================================

class TenantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class TenantPaymentStatus(str, Enum):
    CURRENT = "current"
    OVERDUE = "overdue"


class PaymentType(str, Enum):
    RENT = "Rent"
    UTILITY = "Utility"
    DEPOSIT = "Deposit"
    OTHER = "Other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReminderTrigger(str, Enum):
    PAYMENT_DATE = "PaymentDate"
    FIVE_DAYS_BEFORE = "FiveDaysBefore"


class DeliveryMethod(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    BOTH = "both"
    WHATSAPP = "whatsapp"
    APP = "app"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


# Buckets in waterfall order. Rent is always satisfied first.
BUCKET_PRIORITY = (PaymentType.RENT, PaymentType.UTILITY, PaymentType.DEPOSIT)

BUCKET_TOTAL_FIELDS = {
    PaymentType.RENT: "total_rent_paid",
    PaymentType.UTILITY: "total_utility_paid",
    PaymentType.DEPOSIT: "total_deposit_paid",
}


def _round_money(v) -> float:
    return round(float(v or 0.0), 2)


# ============================================
# Stored documents
# ============================================

class UnitType(BaseModel):
    type: str
    price: float = Field(0.0, ge=0)
    deposit: float = Field(0.0, ge=0)
    utility_charge: float = Field(0.0, ge=0, description="Flat monthly utility charge")
    quantity: int = Field(1, ge=0)
    management_type: Optional[str] = None


class UnitPricing(BaseModel):
    """Price, deposit and monthly utility that apply to one tenant."""
    price: float = 0.0
    deposit: float = 0.0
    utility_charge: float = 0.0


class Property(MongoModel):
    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    owner_id: PyObjectId
    name: str
    address: Optional[str] = None
    status: str = "active"
    unit_types: List[UnitType] = Field(default_factory=list)
    rent_payment_date: Optional[int] = Field(None, ge=1, le=28, description="Day of month rent is due")
    created_at: datetime = Field(default_factory=utcnow)

    def unit(self, unit_type: Optional[str]) -> Optional[UnitType]:
        for u in self.unit_types:
            if u.type == unit_type:
                return u
        return None

    @property
    def total_units(self) -> int:
        return sum(u.quantity for u in self.unit_types)


class Tenant(MongoModel):
    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    owner_id: Optional[PyObjectId] = None
    property_id: PyObjectId
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    unit_type: Optional[str] = None
    house_number: Optional[str] = None

    price: float = Field(0.0, ge=0)
    deposit: float = Field(0.0, ge=0)
    lease_start_date: datetime
    lease_end_date: Optional[datetime] = None
    status: TenantStatus = TenantStatus.ACTIVE
    payment_status: TenantPaymentStatus = TenantPaymentStatus.CURRENT
    delivery_method: DeliveryMethod = DeliveryMethod.SMS

    wallet_balance: float = Field(0.0, ge=0)
    total_rent_paid: float = 0.0
    total_utility_paid: float = 0.0
    total_deposit_paid: float = 0.0
    # utility paid inside the billing period named by utility_period (YYYY-MM)
    utility_period: Optional[str] = None
    utility_period_paid: float = 0.0

    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("lease_start_date", "lease_end_date", "created_at", "updated_at", mode="before")
    @classmethod
    def normalize_dates(cls, v):
        return ensure_datetime(v)

    @field_validator("lease_start_date", "lease_end_date", "created_at", "updated_at")
    @classmethod
    def force_utc(cls, v):
        return ensure_datetime(v)

    @field_validator(
        "wallet_balance", "total_rent_paid", "total_utility_paid",
        "total_deposit_paid", "utility_period_paid",
    )
    @classmethod
    def round_amounts(cls, v: float) -> float:
        return _round_money(v)

    def pricing(self, prop: Optional[Property] = None) -> UnitPricing:
        """Tenant price and deposit, with the utility charge of its unit type."""
        unit = prop.unit(self.unit_type) if prop is not None else None
        return UnitPricing(
            price=self.price,
            deposit=self.deposit,
            utility_charge=unit.utility_charge if unit else 0.0,
        )


class Payment(MongoModel):
    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    tenant_id: PyObjectId
    property_id: PyObjectId
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: PaymentType
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: datetime = Field(default_factory=utcnow)
    transaction_id: str
    reference: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    settled_at: Optional[datetime] = None

    @field_validator("payment_date", "created_at", "settled_at", mode="before")
    @classmethod
    def normalize_dates(cls, v):
        return ensure_datetime(v)

    @field_validator("payment_date", "created_at", "settled_at")
    @classmethod
    def force_utc(cls, v):
        return ensure_datetime(v)

    @field_validator("amount")
    @classmethod
    def round_amount(cls, v: float) -> float:
        return _round_money(v)

    @classmethod
    def create(
        cls,
        *,
        tenant_id,
        property_id,
        amount: float,
        type: PaymentType | str,
        transaction_id: str,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        payment_date: Optional[datetime | date] = None,
        reference: Optional[str] = None,
    ) -> "Payment":
        return cls(
            tenant_id=tenant_id,
            property_id=property_id,
            amount=amount,
            type=type,
            status=status,
            payment_date=payment_date or utcnow(),
            transaction_id=transaction_id,
            reference=reference,
        )


class ReminderRecord(MongoModel):
    """Dedupe key for reminders: one per tenant, trigger and calendar day."""
    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    tenant_id: PyObjectId
    property_id: Optional[PyObjectId] = None
    type: ReminderTrigger
    day: str
    channel: Optional[str] = None
    delivery_status: Optional[DeliveryStatus] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class LedgerAuditEntry(MongoModel):
    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    tenant_id: PyObjectId
    kind: str = "reconciliation_drift"
    previous: Dict[str, float]
    current: Dict[str, float]
    scope: List[str]
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


# ============================================
# Ledger results
# ============================================

class DueBreakdown(BaseModel):
    rent_due: float = 0.0
    utility_due: float = 0.0
    deposit_due: float = 0.0
    months_elapsed: int = 0

    @property
    def total_due(self) -> float:
        return round(self.rent_due + self.utility_due + self.deposit_due, 2)

    def for_bucket(self, bucket: PaymentType) -> float:
        return {
            PaymentType.RENT: self.rent_due,
            PaymentType.UTILITY: self.utility_due,
            PaymentType.DEPOSIT: self.deposit_due,
        }.get(bucket, 0.0)

    def as_dict(self) -> dict:
        data = self.model_dump()
        data["total_due"] = self.total_due
        return data


class UpdatedLedger(BaseModel):
    tenant_id: str
    payment_type: PaymentType
    amount: float
    applied: Dict[str, float]
    wallet_credited: float
    wallet_drained: Dict[str, float]
    total_rent_paid: float
    total_utility_paid: float
    total_deposit_paid: float
    wallet_balance: float
    dues: DueBreakdown
    version: int


class ReconcileResult(BaseModel):
    tenant_id: str
    corrected: bool
    previous: Dict[str, float]
    current: Dict[str, float]


class PortfolioStats(BaseModel):
    owner_id: str
    as_of: datetime
    active_properties: int = 0
    total_tenants: int = 0
    total_units: int = 0
    occupied_units: int = 0
    total_monthly_rent: float = 0.0
    overdue_count: int = 0
    overdue_amount: float = 0.0
    payments_this_month: float = 0.0
    total_payments: float = 0.0
    total_deposit_paid: float = 0.0
    total_utility_paid: float = 0.0


class ReminderCandidate(BaseModel):
    model_config = {"use_enum_values": True}

    tenant_id: str
    property_id: str
    tenant_name: str
    trigger: ReminderTrigger
    day: str
    channel: DeliveryMethod
    dues: DueBreakdown
    message: str


class DeliveryResult(BaseModel):
    model_config = {"use_enum_values": True}

    tenant_id: str
    channel: str
    status: DeliveryStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


class ReminderSweepReport(BaseModel):
    owner_id: str
    day: str
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[DeliveryResult] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"sent {self.sent}, failed {self.failed}"


# ============================================
# Request bodies
# ============================================

class PaymentConfirmation(BaseModel):
    tenant_id: str
    property_id: str
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: str
    transaction_id: str
    reference: Optional[str] = None
    payment_date: Optional[datetime] = None


class ManualPaymentRequest(BaseModel):
    tenant_id: str
    property_id: str
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: str
    reference: str
    payment_date: Optional[datetime] = None


class PendingPaymentRequest(BaseModel):
    tenant_id: str
    property_id: str
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: str
    transaction_id: str
    reference: Optional[str] = None
