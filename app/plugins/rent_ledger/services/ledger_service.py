from datetime import datetime
from typing import Iterable, List, Optional

from plugins.rent_ledger.accounting.allocator import PaymentAllocator
from plugins.rent_ledger.accounting.dues import DueAggregator
from plugins.rent_ledger.accounting.reconciler import LedgerReconciler
from plugins.rent_ledger.models.models import (
    DueBreakdown,
    Payment,
    PaymentType,
    PortfolioStats,
    ReconcileResult,
    ReminderCandidate,
    ReminderSweepReport,
    UpdatedLedger,
)
from plugins.rent_ledger.reports.portfolio import PortfolioAggregator
from plugins.rent_ledger.services.notifications import NotificationDispatcher
from plugins.rent_ledger.services.payments import PaymentService
from plugins.rent_ledger.services.reminders import ReminderScheduler
from plugins.rent_ledger.store import LedgerStore, parse_object_id
from utils.date_helper import utcnow
from utils.exceptions import NotFoundError


class LedgerService:
    """The ledger operations offered to the rest of the system."""

    def __init__(
        self,
        store: LedgerStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        reconcile_scope: Optional[Iterable] = None,
    ):
        self.store = store
        self.dues = DueAggregator()
        self.allocator = PaymentAllocator(store, self.dues)
        self.reconciler = LedgerReconciler(store, reconcile_scope)
        self.portfolio = PortfolioAggregator(store, self.dues)
        self.reminders = ReminderScheduler(store, dispatcher, self.dues)
        self.payments = PaymentService(store, self.allocator, dispatcher)

    async def get_dues(self, tenant_id, as_of: Optional[datetime] = None) -> DueBreakdown:
        tenant_oid = parse_object_id(tenant_id, "tenant id")
        tenant = await self.store.get_tenant(tenant_oid)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        prop = await self.store.get_property(tenant.property_id)
        if not prop:
            raise NotFoundError(f"Property {tenant.property_id} not found")
        history = await self.store.find_payments([tenant.id], types=[PaymentType.UTILITY.value])
        return self.dues.compute(tenant, tenant.pricing(prop), history, as_of or utcnow())

    async def apply_payment(self, tenant_id, payment: Payment) -> UpdatedLedger:
        return await self.allocator.apply_payment(parse_object_id(tenant_id, "tenant id"), payment)

    async def reconcile(self, tenant_id) -> ReconcileResult:
        return await self.reconciler.reconcile(parse_object_id(tenant_id, "tenant id"))

    async def compute_owner_stats(self, owner_id, as_of: Optional[datetime] = None) -> PortfolioStats:
        return await self.portfolio.compute_owner_stats(owner_id, as_of or utcnow())

    async def due_reminders(self, owner_id, as_of: Optional[datetime] = None) -> List[ReminderCandidate]:
        return await self.reminders.due_reminders(owner_id, as_of or utcnow())

    async def send_reminders(self, owner_id, as_of: Optional[datetime] = None) -> ReminderSweepReport:
        return await self.reminders.send_reminders(owner_id, as_of or utcnow())
