from datetime import datetime
from typing import Iterable, Optional

from plugins.rent_ledger.models.models import (
    DueBreakdown,
    Payment,
    PaymentStatus,
    PaymentType,
    Tenant,
    UnitPricing,
)
from plugins.rent_ledger.utils.lease_calendar import billing_period, months_elapsed, period_key
from utils.date_helper import ensure_datetime


class DueAggregator:
    """
    Outstanding rent, utility and deposit for a tenant as of a date.

    Rent and deposit are cumulative since lease start and measured against the
    tenant's running totals. Utility is a flat monthly charge that resets each
    calendar month.
    """

    def utility_paid_in_period(
        self, tenant: Tenant, payments: Iterable[Payment], as_of: datetime
    ) -> float:
        key = period_key(as_of)
        if tenant.utility_period == key:
            return tenant.utility_period_paid

        start, end = billing_period(as_of)
        return round(
            sum(
                p.amount
                for p in payments
                if p.type == PaymentType.UTILITY
                and p.status == PaymentStatus.COMPLETED
                and start <= ensure_datetime(p.payment_date) < end
            ),
            2,
        )

    def compute(
        self,
        tenant: Tenant,
        pricing: UnitPricing,
        payments: Iterable[Payment],
        as_of: datetime,
    ) -> DueBreakdown:
        as_of = ensure_datetime(as_of)
        if as_of < tenant.lease_start_date:
            return DueBreakdown()

        months = months_elapsed(tenant.lease_start_date, as_of)
        rent_owed = pricing.price * months
        utility_paid = self.utility_paid_in_period(tenant, payments, as_of)

        return DueBreakdown(
            rent_due=round(max(0.0, rent_owed - tenant.total_rent_paid), 2),
            utility_due=round(max(0.0, pricing.utility_charge - utility_paid), 2),
            deposit_due=round(max(0.0, pricing.deposit - tenant.total_deposit_paid), 2),
            months_elapsed=months,
        )

    def compute_overdue(
        self,
        tenant: Tenant,
        pricing: UnitPricing,
        as_of: datetime,
    ) -> DueBreakdown:
        """Reporting variant over the window [lease start, min(lease end, as_of)]."""
        as_of = ensure_datetime(as_of)
        if as_of < tenant.lease_start_date:
            return DueBreakdown()

        window_end: Optional[datetime] = as_of
        if tenant.lease_end_date is not None and tenant.lease_end_date < as_of:
            window_end = tenant.lease_end_date

        months = months_elapsed(tenant.lease_start_date, window_end)
        return DueBreakdown(
            rent_due=round(max(0.0, pricing.price * months - tenant.total_rent_paid), 2),
            utility_due=round(max(0.0, pricing.utility_charge * months - tenant.total_utility_paid), 2),
            deposit_due=round(max(0.0, pricing.deposit - tenant.total_deposit_paid), 2),
            months_elapsed=months,
        )
