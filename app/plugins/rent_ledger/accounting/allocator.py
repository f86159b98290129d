import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from plugins.rent_ledger.accounting.dues import DueAggregator
from plugins.rent_ledger.models.models import (
    BUCKET_PRIORITY,
    BUCKET_TOTAL_FIELDS,
    DueBreakdown,
    Payment,
    PaymentStatus,
    PaymentType,
    UpdatedLedger,
)
from plugins.rent_ledger.store import LedgerStore
from plugins.rent_ledger.utils.lease_calendar import period_key
from utils.date_helper import ensure_datetime
from utils.exceptions import ConcurrencyConflict, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def parse_payment_type(value) -> PaymentType:
    if isinstance(value, PaymentType):
        return value
    try:
        return PaymentType(value)
    except ValueError:
        raise ValidationError(f"Unrecognized payment type: {value!r}")


def validate_amount(amount) -> float:
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid payment amount: {amount!r}")
    if not math.isfinite(amount):
        raise ValidationError(f"Invalid payment amount: {amount!r}")
    if amount <= 0:
        raise ValidationError("Payment amount must be positive.")
    return round(amount, 2)


@dataclass
class Allocation:
    applied: Dict[PaymentType, float] = field(default_factory=dict)
    drained: Dict[PaymentType, float] = field(default_factory=dict)
    wallet_credited: float = 0.0
    wallet_balance: float = 0.0
    dues_after: DueBreakdown = field(default_factory=DueBreakdown)

    def paid_to(self, bucket: PaymentType) -> float:
        return round(self.applied.get(bucket, 0.0) + self.drained.get(bucket, 0.0), 2)


def allocate(dues: DueBreakdown, wallet_balance: float, amount: float, payment_type: PaymentType) -> Allocation:
    """
    Waterfall a payment across the due buckets.

    The payment first goes to the bucket named by its type, capped at that
    bucket's due. Whatever is left joins the wallet, and the wallet then drains
    into unmet buckets in Rent > Utility > Deposit order.
    """
    amount = validate_amount(amount)
    payment_type = parse_payment_type(payment_type)
    remaining = {b: dues.for_bucket(b) for b in BUCKET_PRIORITY}
    result = Allocation()

    remainder = amount
    if payment_type in remaining:
        applied = round(min(remaining[payment_type], amount), 2)
        result.applied[payment_type] = applied
        remaining[payment_type] = round(remaining[payment_type] - applied, 2)
        remainder = round(amount - applied, 2)

    result.wallet_credited = remainder
    wallet = round(wallet_balance + remainder, 2)

    for bucket in BUCKET_PRIORITY:
        if wallet <= 0:
            break
        take = round(min(wallet, remaining[bucket]), 2)
        if take <= 0:
            continue
        result.drained[bucket] = take
        remaining[bucket] = round(remaining[bucket] - take, 2)
        wallet = round(wallet - take, 2)

    result.wallet_balance = max(0.0, wallet)
    result.dues_after = DueBreakdown(
        rent_due=remaining[PaymentType.RENT],
        utility_due=remaining[PaymentType.UTILITY],
        deposit_due=remaining[PaymentType.DEPOSIT],
        months_elapsed=dues.months_elapsed,
    )
    return result


class PaymentAllocator:
    """Applies one confirmed payment to a tenant's ledger under a version check."""

    def __init__(self, store: LedgerStore, dues: Optional[DueAggregator] = None):
        self.store = store
        self.dues = dues or DueAggregator()

    async def apply_payment(self, tenant_id, payment: Payment, as_of: Optional[datetime] = None) -> UpdatedLedger:
        amount = validate_amount(payment.amount)
        payment_type = parse_payment_type(payment.type)
        if payment.status != PaymentStatus.COMPLETED:
            raise ValidationError(f"Only completed payments can be applied (got {payment.status})")

        tenant = await self.store.get_tenant(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        prop = await self.store.get_property(tenant.property_id)
        if not prop:
            raise NotFoundError(f"Property {tenant.property_id} not found")

        as_of = ensure_datetime(as_of or payment.payment_date)
        pricing = tenant.pricing(prop)
        history = [
            p for p in await self.store.find_payments([tenant.id], types=[PaymentType.UTILITY.value])
            if p.transaction_id != payment.transaction_id
        ]
        dues = self.dues.compute(tenant, pricing, history, as_of)

        period = period_key(as_of)
        if tenant.utility_period and period < tenant.utility_period:
            # backdated: settle utility against the period the counter already tracks
            period, period_paid = tenant.utility_period, tenant.utility_period_paid
            dues = dues.model_copy(update={
                "utility_due": round(max(0.0, pricing.utility_charge - period_paid), 2),
            })
        else:
            period_paid = self.dues.utility_paid_in_period(tenant, history, as_of)

        allocation = allocate(dues, tenant.wallet_balance, amount, payment_type)

        fields = {}
        for bucket in BUCKET_PRIORITY:
            total_field = BUCKET_TOTAL_FIELDS[bucket]
            fields[total_field] = round(getattr(tenant, total_field) + allocation.paid_to(bucket), 2)
        fields["wallet_balance"] = allocation.wallet_balance
        fields["utility_period"] = period
        fields["utility_period_paid"] = round(period_paid + allocation.paid_to(PaymentType.UTILITY), 2)

        if not await self.store.compare_and_set_tenant(tenant.id, tenant.version, fields):
            logger.warning(
                f"Version conflict applying {payment.transaction_id} to tenant {tenant.id} "
                f"(expected version {tenant.version})"
            )
            raise ConcurrencyConflict(tenant.id, tenant.version)

        logger.info(
            f"Applied {payment_type.value} payment {payment.transaction_id} of {amount:.2f} "
            f"to tenant {tenant.id}: wallet {tenant.wallet_balance:.2f} -> {allocation.wallet_balance:.2f}"
        )
        return UpdatedLedger(
            tenant_id=str(tenant.id),
            payment_type=payment_type,
            amount=amount,
            applied={b.value: v for b, v in allocation.applied.items()},
            wallet_credited=allocation.wallet_credited,
            wallet_drained={b.value: v for b, v in allocation.drained.items()},
            total_rent_paid=fields["total_rent_paid"],
            total_utility_paid=fields["total_utility_paid"],
            total_deposit_paid=fields["total_deposit_paid"],
            wallet_balance=allocation.wallet_balance,
            dues=allocation.dues_after,
            version=tenant.version + 1,
        )
