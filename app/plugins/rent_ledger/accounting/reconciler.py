import logging
from typing import Iterable, Optional

from core.config import settings
from plugins.rent_ledger.accounting.allocator import parse_payment_type
from plugins.rent_ledger.models.models import (
    BUCKET_PRIORITY,
    BUCKET_TOTAL_FIELDS,
    LedgerAuditEntry,
    PaymentType,
    ReconcileResult,
)
from plugins.rent_ledger.store import LedgerStore
from utils.exceptions import ConcurrencyConflict, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class LedgerReconciler:
    """
    Re-derives running totals from completed payments created since lease
    start, and overwrites the stored values when they drifted.

    Only the buckets in ``scope`` are recomputed (Rent by default). When all
    three buckets are in scope the wallet is re-derived as well, so that the
    totals plus the wallet still add up to the completed payments.
    """

    def __init__(self, store: LedgerStore, scope: Optional[Iterable] = None):
        self.store = store
        scope = list(scope if scope is not None else settings.RECONCILE_SCOPE)
        self.scope = [parse_payment_type(s) for s in scope]
        if not self.scope or any(s not in BUCKET_PRIORITY for s in self.scope):
            raise ValidationError(f"Reconcile scope must name Rent, Utility or Deposit: {scope}")

    @property
    def full_scope(self) -> bool:
        return set(self.scope) == set(BUCKET_PRIORITY)

    async def reconcile(self, tenant_id) -> ReconcileResult:
        tenant = await self.store.get_tenant(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        types = None if self.full_scope else [s.value for s in self.scope]
        payments = await self.store.find_payments(
            [tenant.id], types=types, created_since=tenant.lease_start_date
        )

        previous, current = {}, {}
        for bucket in self.scope:
            total_field = BUCKET_TOTAL_FIELDS[bucket]
            previous[total_field] = round(getattr(tenant, total_field), 2)
            current[total_field] = round(sum(p.amount for p in payments if p.type == bucket), 2)

        if self.full_scope:
            previous["wallet_balance"] = round(tenant.wallet_balance, 2)
            current["wallet_balance"] = round(
                sum(p.amount for p in payments if p.type == PaymentType.OTHER), 2
            )

        if previous == current:
            return ReconcileResult(tenant_id=str(tenant.id), corrected=False, previous=previous, current=current)

        if not await self.store.compare_and_set_tenant(tenant.id, tenant.version, current):
            raise ConcurrencyConflict(tenant.id, tenant.version)

        logger.warning(f"Discrepancy in tenant {tenant.id} ledger: {previous} -> {current}")
        await self.store.record_audit(
            LedgerAuditEntry(
                tenant_id=tenant.id,
                previous=previous,
                current=current,
                scope=[s.value for s in self.scope],
            )
        )
        return ReconcileResult(tenant_id=str(tenant.id), corrected=True, previous=previous, current=current)
