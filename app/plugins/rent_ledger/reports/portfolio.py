import logging
from datetime import datetime
from typing import Dict, Optional

from bson import ObjectId

from plugins.rent_ledger.accounting.dues import DueAggregator
from plugins.rent_ledger.models.models import PortfolioStats, TenantPaymentStatus
from plugins.rent_ledger.store import LedgerStore, parse_object_id
from plugins.rent_ledger.utils.lease_calendar import (
    billing_period,
    lease_covers,
    lease_overlaps,
    lease_spans,
)
from utils.date_helper import ensure_datetime

logger = logging.getLogger(__name__)


class PortfolioAggregator:
    """Owner dashboard numbers, recomputed from scratch on every call."""

    def __init__(self, store: LedgerStore, dues: Optional[DueAggregator] = None):
        self.store = store
        self.dues = dues or DueAggregator()

    async def compute_owner_stats(self, owner_id, as_of: datetime, write_status: bool = True) -> PortfolioStats:
        owner_oid = parse_object_id(owner_id, "owner id")
        as_of = ensure_datetime(as_of)
        month_start, month_end = billing_period(as_of)
        stats = PortfolioStats(owner_id=str(owner_oid), as_of=as_of)

        properties = await self.store.find_properties(owner_oid)
        if not properties:
            return stats

        by_id = {p.id: p for p in properties}
        stats.active_properties = sum(1 for p in properties if p.status == "active")
        stats.total_units = sum(p.total_units for p in properties)

        tenants = await self.store.find_tenants(list(by_id), active_only=True)
        tenants = [
            t for t in tenants
            if lease_overlaps(t.lease_start_date, t.lease_end_date, month_start, month_end)
        ]
        stats.total_tenants = len(tenants)

        statuses: Dict[ObjectId, str] = {}
        for tenant in tenants:
            prop = by_id.get(tenant.property_id)
            pricing = tenant.pricing(prop)

            if lease_covers(tenant.lease_start_date, tenant.lease_end_date, as_of):
                stats.occupied_units += 1
            if lease_spans(tenant.lease_start_date, tenant.lease_end_date, month_start, month_end):
                stats.total_monthly_rent += pricing.price

            dues = self.dues.compute_overdue(tenant, pricing, as_of)
            if dues.total_due > 0:
                stats.overdue_count += 1
                stats.overdue_amount += dues.total_due
                statuses[tenant.id] = TenantPaymentStatus.OVERDUE.value
            else:
                statuses[tenant.id] = TenantPaymentStatus.CURRENT.value

            stats.total_deposit_paid += tenant.total_deposit_paid
            stats.total_utility_paid += tenant.total_utility_paid

        for p in await self.store.find_payments(property_ids=list(by_id)):
            stats.total_payments += p.amount
            if month_start <= ensure_datetime(p.payment_date) < month_end:
                stats.payments_this_month += p.amount

        for money_field in (
            "total_monthly_rent", "overdue_amount", "payments_this_month",
            "total_payments", "total_deposit_paid", "total_utility_paid",
        ):
            setattr(stats, money_field, round(getattr(stats, money_field), 2))

        if write_status and statuses:
            changed = await self.store.set_payment_statuses(statuses)
            logger.info(f"Owner {owner_oid}: {stats.overdue_count} overdue tenants, {changed} status flags updated")

        return stats
