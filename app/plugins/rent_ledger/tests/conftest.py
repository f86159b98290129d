# conftest.py - shared fixtures and an in-memory LedgerStore double

import pytest
from datetime import datetime, timedelta, timezone
from bson import ObjectId

from plugins.rent_ledger.models.models import Payment, Property, Tenant, UnitType
from utils.date_helper import utcnow

AS_OF = datetime(2025, 8, 14, 12, 0, tzinfo=timezone.utc)


class FakeLedgerStore:
    """Same async surface as LedgerStore, backed by dicts."""

    def __init__(self):
        self.tenants = {}
        self.properties = {}
        self.payments = []
        self.reminders = {}
        self.audit = []
        self.notifications = []
        self.cas_misses = 0
        self.cas_calls = 0

    # seeding helpers
    def add_property(self, prop):
        self.properties[prop.id] = prop
        return prop

    def add_tenant(self, tenant):
        self.tenants[tenant.id] = tenant
        return tenant

    def add_payment(self, payment):
        self.payments.append(payment)
        return payment

    # tenants
    async def get_tenant(self, tenant_id):
        tenant = self.tenants.get(tenant_id)
        return tenant.model_copy(deep=True) if tenant else None

    async def find_tenants(self, property_ids, active_only=False):
        ids = set(property_ids)
        return [
            t.model_copy(deep=True) for t in self.tenants.values()
            if t.property_id in ids and (not active_only or t.status == "active")
        ]

    async def compare_and_set_tenant(self, tenant_id, expected_version, fields):
        self.cas_calls += 1
        if self.cas_misses:
            self.cas_misses -= 1
            return False
        tenant = self.tenants.get(tenant_id)
        if tenant is None or tenant.version != expected_version:
            return False
        self.tenants[tenant_id] = tenant.model_copy(
            update={**fields, "version": tenant.version + 1, "updated_at": utcnow()}
        )
        return True

    async def set_payment_statuses(self, statuses):
        changed = 0
        for tid, status in statuses.items():
            tenant = self.tenants[tid]
            if tenant.payment_status != status:
                self.tenants[tid] = tenant.model_copy(update={"payment_status": status})
                changed += 1
        return changed

    # properties
    async def get_property(self, property_id):
        return self.properties.get(property_id)

    async def find_properties(self, owner_id):
        return [p for p in self.properties.values() if p.owner_id == owner_id]

    # payments
    async def find_payments(self, tenant_ids=None, status="completed", types=None,
                            created_since=None, property_ids=None):
        found = []
        for p in self.payments:
            if tenant_ids is not None and p.tenant_id not in set(tenant_ids):
                continue
            if property_ids is not None and p.property_id not in set(property_ids):
                continue
            if status is not None and p.status != status:
                continue
            if types is not None and p.type not in set(types):
                continue
            if created_since is not None and p.created_at < created_since:
                continue
            found.append(p)
        return sorted(found, key=lambda p: p.payment_date)

    async def get_payment_by_transaction(self, transaction_id):
        for p in self.payments:
            if p.transaction_id == transaction_id:
                return p
        return None

    async def insert_payment(self, payment):
        if await self.get_payment_by_transaction(payment.transaction_id):
            return False
        self.payments.append(payment)
        return True

    async def transition_payment(self, transaction_id, status):
        for i, p in enumerate(self.payments):
            if p.transaction_id == transaction_id and p.status == "pending":
                self.payments[i] = p.model_copy(update={"status": status})
                return self.payments[i]
        return None

    async def mark_payment_settled(self, payment_id, settled_at):
        for i, p in enumerate(self.payments):
            if p.id == payment_id and p.settled_at is None:
                self.payments[i] = p.model_copy(update={"settled_at": settled_at})
                return True
        return False

    # reminders / audit
    async def reminder_exists(self, tenant_id, trigger, day):
        return (tenant_id, trigger, day) in self.reminders

    async def insert_reminder(self, record):
        key = (record.tenant_id, record.type, record.day)
        if key in self.reminders:
            return False
        self.reminders[key] = record.to_mongo()
        return True

    async def set_reminder_outcome(self, record_id, status, error=None):
        for doc in self.reminders.values():
            if doc["_id"] == record_id:
                doc.update({"delivery_status": status, "error": error})

    async def record_audit(self, entry):
        self.audit.append(entry)

    async def insert_notification(self, doc):
        self.notifications.append(doc)


def make_property(owner_id, utility_charge=800.0, rent_payment_date=10, quantity=4, **kwargs):
    return Property(
        owner_id=owner_id,
        name=kwargs.pop("name", "Sunrise Apartments"),
        unit_types=[UnitType(type="1BR", price=10000, deposit=10000,
                             utility_charge=utility_charge, quantity=quantity)],
        rent_payment_date=rent_payment_date,
        **kwargs,
    )


def make_tenant(prop, days_in=65, price=10000.0, deposit=0.0, as_of=AS_OF, **kwargs):
    return Tenant(
        owner_id=prop.owner_id,
        property_id=prop.id,
        name=kwargs.pop("name", "Jane Wanjiku"),
        phone=kwargs.pop("phone", "0712345678"),
        email=kwargs.pop("email", "jane@example.com"),
        unit_type="1BR",
        price=price,
        deposit=deposit,
        lease_start_date=as_of - timedelta(days=days_in),
        lease_end_date=kwargs.pop("lease_end_date", as_of + timedelta(days=300)),
        **kwargs,
    )


def make_payment(tenant, amount, type="Rent", days_ago=1, as_of=AS_OF, **kwargs):
    paid_at = as_of - timedelta(days=days_ago)
    return Payment(
        tenant_id=tenant.id,
        property_id=tenant.property_id,
        amount=amount,
        type=type,
        status=kwargs.pop("status", "completed"),
        payment_date=paid_at,
        created_at=kwargs.pop("created_at", paid_at),
        transaction_id=kwargs.pop("transaction_id", f"TXN-{ObjectId()}"),
        **kwargs,
    )


@pytest.fixture
def store():
    return FakeLedgerStore()


@pytest.fixture
def owner_id():
    return ObjectId()


@pytest.fixture
def prop(store, owner_id):
    return store.add_property(make_property(owner_id))


@pytest.fixture
def bare_prop(store, owner_id):
    """Unit type without a utility charge."""
    return store.add_property(make_property(owner_id, utility_charge=0.0, name="Bare Block"))
