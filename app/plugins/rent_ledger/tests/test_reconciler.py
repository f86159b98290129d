import pytest
from bson import ObjectId

from plugins.rent_ledger.accounting.reconciler import LedgerReconciler
from utils.exceptions import ConcurrencyConflict, NotFoundError, ValidationError
from conftest import AS_OF, make_payment, make_tenant


class TestLedgerReconciler:
    """Recomputing running totals from payment history"""

    @pytest.mark.asyncio
    async def test_drift_is_overwritten_and_audited(self, store, bare_prop):
        tenant = store.add_tenant(make_tenant(bare_prop, days_in=65, total_rent_paid=5000))
        store.add_payment(make_payment(tenant, 10000, days_ago=40))
        store.add_payment(make_payment(tenant, 2000, days_ago=5))

        result = await LedgerReconciler(store, scope=["Rent"]).reconcile(tenant.id)

        assert result.corrected is True
        assert result.previous == {"total_rent_paid": 5000}
        assert result.current == {"total_rent_paid": 12000}
        assert store.tenants[tenant.id].total_rent_paid == 12000
        assert store.tenants[tenant.id].version == 1
        assert len(store.audit) == 1
        assert store.audit[0].scope == ["Rent"]

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, store, bare_prop):
        tenant = store.add_tenant(make_tenant(bare_prop, days_in=65, total_rent_paid=0))
        store.add_payment(make_payment(tenant, 10000, days_ago=40))
        reconciler = LedgerReconciler(store, scope=["Rent"])

        first = await reconciler.reconcile(tenant.id)
        second = await reconciler.reconcile(tenant.id)

        assert first.corrected is True
        assert second.corrected is False
        assert second.previous == second.current
        assert store.tenants[tenant.id].version == 1
        assert len(store.audit) == 1

    @pytest.mark.asyncio
    async def test_only_completed_rent_since_lease_start_counts(self, store, bare_prop):
        tenant = store.add_tenant(make_tenant(bare_prop, days_in=65, total_rent_paid=10000))
        store.add_payment(make_payment(tenant, 10000, days_ago=30))
        store.add_payment(make_payment(tenant, 4000, days_ago=80))
        store.add_payment(make_payment(tenant, 3000, days_ago=3, status="failed"))
        store.add_payment(make_payment(tenant, 800, type="Utility", days_ago=3))

        result = await LedgerReconciler(store, scope=["Rent"]).reconcile(tenant.id)

        assert result.corrected is False
        assert store.audit == []

    @pytest.mark.asyncio
    async def test_full_scope_rederives_wallet(self, store, prop):
        tenant = store.add_tenant(make_tenant(
            prop, days_in=65, total_rent_paid=20000, total_utility_paid=800, wallet_balance=4200
        ))
        store.add_payment(make_payment(tenant, 25000, days_ago=1))

        result = await LedgerReconciler(store, scope=["Rent", "Utility", "Deposit"]).reconcile(tenant.id)

        assert result.corrected is True
        assert result.current == {
            "total_rent_paid": 25000,
            "total_utility_paid": 0,
            "total_deposit_paid": 0,
            "wallet_balance": 0,
        }
        stored = store.tenants[tenant.id]
        total = stored.total_rent_paid + stored.total_utility_paid + stored.total_deposit_paid + stored.wallet_balance
        assert total == 25000

    @pytest.mark.asyncio
    async def test_stale_write_raises_conflict(self, store, bare_prop):
        tenant = store.add_tenant(make_tenant(bare_prop, days_in=65))
        store.add_payment(make_payment(tenant, 10000, days_ago=10))
        store.cas_misses = 1

        with pytest.raises(ConcurrencyConflict):
            await LedgerReconciler(store, scope=["Rent"]).reconcile(tenant.id)
        assert store.tenants[tenant.id].total_rent_paid == 0
        assert store.audit == []

    @pytest.mark.asyncio
    async def test_missing_tenant(self, store):
        with pytest.raises(NotFoundError):
            await LedgerReconciler(store, scope=["Rent"]).reconcile(ObjectId())

    def test_scope_must_name_buckets(self, store):
        with pytest.raises(ValidationError):
            LedgerReconciler(store, scope=["Other"])
        with pytest.raises(ValidationError):
            LedgerReconciler(store, scope=[])
