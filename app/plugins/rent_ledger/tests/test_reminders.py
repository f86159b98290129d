import pytest
from unittest.mock import AsyncMock
from pymongo.errors import AutoReconnect

from plugins.rent_ledger.services.notifications import NotificationDispatcher
from plugins.rent_ledger.services.providers.in_app import InAppProvider
from plugins.rent_ledger.services.reminders import ReminderScheduler
from utils.exceptions import DeliveryError
from conftest import AS_OF, make_property, make_tenant


@pytest.fixture
def providers():
    return {"sms": AsyncMock(), "email": AsyncMock(), "in_app": AsyncMock()}


@pytest.fixture
def scheduler(store, providers):
    return ReminderScheduler(store, NotificationDispatcher(**providers))


@pytest.fixture
def due_today(store, owner_id):
    """Rent falls due on the 14th, which is AS_OF."""
    return store.add_property(make_property(owner_id, rent_payment_date=14))


class TestDueReminders:

    @pytest.mark.asyncio
    async def test_payment_date_reminder(self, store, scheduler, due_today):
        tenant = store.add_tenant(make_tenant(due_today, days_in=65))

        candidates = await scheduler.due_reminders(due_today.owner_id, AS_OF)

        assert len(candidates) == 1
        c = candidates[0]
        assert c.tenant_id == str(tenant.id)
        assert c.trigger == "PaymentDate"
        assert c.day == "2025-08-14"
        assert c.dues.total_due == 20800
        assert "20800.00" in c.message
        assert "rent 20000.00" in c.message
        assert "due today" in c.message

    @pytest.mark.asyncio
    async def test_five_days_before(self, store, scheduler, owner_id):
        prop = store.add_property(make_property(owner_id, rent_payment_date=19))
        store.add_tenant(make_tenant(prop, days_in=65))

        candidates = await scheduler.due_reminders(owner_id, AS_OF)

        assert [c.trigger for c in candidates] == ["FiveDaysBefore"]
        assert "August 19, 2025" in candidates[0].message

    @pytest.mark.asyncio
    async def test_no_trigger_day(self, store, scheduler, prop):
        store.add_tenant(make_tenant(prop, days_in=65))
        assert await scheduler.due_reminders(prop.owner_id, AS_OF) == []

    @pytest.mark.asyncio
    async def test_skips_settled_and_unstarted(self, store, scheduler, due_today):
        store.add_tenant(make_tenant(
            due_today, days_in=65, name="Settled", total_rent_paid=20000, utility_period="2025-08",
            utility_period_paid=800,
        ))
        store.add_tenant(make_tenant(due_today, days_in=-3, name="Not Yet"))
        store.add_tenant(make_tenant(due_today, days_in=65, name="Gone", status="inactive"))

        assert await scheduler.due_reminders(due_today.owner_id, AS_OF) == []


class TestSendReminders:

    @pytest.mark.asyncio
    async def test_sends_once_per_day(self, store, scheduler, providers, due_today):
        store.add_tenant(make_tenant(due_today, days_in=65))

        first = await scheduler.send_reminders(due_today.owner_id, AS_OF)
        second = await scheduler.send_reminders(due_today.owner_id, AS_OF)

        assert (first.sent, first.failed) == (1, 0)
        assert first.summary == "sent 1, failed 0"
        assert (second.sent, second.failed) == (0, 0)
        assert providers["sms"].send.await_count == 1
        assert len(store.reminders) == 1

    @pytest.mark.asyncio
    async def test_failed_delivery_still_recorded(self, store, scheduler, providers, due_today):
        providers["sms"].send.side_effect = DeliveryError("gateway down")
        store.add_tenant(make_tenant(due_today, days_in=65))

        report = await scheduler.send_reminders(due_today.owner_id, AS_OF)

        assert (report.sent, report.failed) == (0, 1)
        assert "gateway down" in report.results[0].error
        (record,) = store.reminders.values()
        assert record["delivery_status"] == "failed"

        retry = await scheduler.send_reminders(due_today.owner_id, AS_OF)
        assert retry.failed == 0
        assert providers["sms"].send.await_count == 1

    @pytest.mark.asyncio
    async def test_inbox_failure_does_not_stop_sweep(self, store, providers, due_today):
        first = store.add_tenant(make_tenant(due_today, days_in=65, name="First", delivery_method="app"))
        second = store.add_tenant(make_tenant(due_today, days_in=65, name="Second", delivery_method="app"))
        store.insert_notification = AsyncMock(side_effect=[AutoReconnect("connection reset"), None])
        scheduler = ReminderScheduler(
            store, NotificationDispatcher(sms=providers["sms"], email=providers["email"], in_app=InAppProvider(store))
        )

        report = await scheduler.send_reminders(due_today.owner_id, AS_OF)

        assert (report.sent, report.failed) == (1, 1)
        outcomes = {r.tenant_id: r.status for r in report.results}
        assert set(outcomes) == {str(first.id), str(second.id)}
        assert sorted(outcomes.values()) == ["failed", "sent"]
        assert len(store.reminders) == 2
        assert store.insert_notification.await_count == 2

    @pytest.mark.asyncio
    async def test_lost_claim_counts_as_skipped(self, store, scheduler, providers, due_today):
        store.add_tenant(make_tenant(due_today, days_in=65))
        store.insert_reminder = AsyncMock(return_value=False)

        report = await scheduler.send_reminders(due_today.owner_id, AS_OF)

        assert report.skipped == 1
        providers["sms"].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_dispatcher(self, store, due_today):
        with pytest.raises(RuntimeError):
            await ReminderScheduler(store).send_reminders(due_today.owner_id, AS_OF)
