import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from jinja2 import Template

from core.config import settings
from plugins.rent_ledger.accounting.dues import DueAggregator
from plugins.rent_ledger.models.models import (
    PaymentType,
    ReminderCandidate,
    ReminderRecord,
    ReminderSweepReport,
    ReminderTrigger,
    Tenant,
)
from plugins.rent_ledger.services.notifications import NotificationDispatcher
from plugins.rent_ledger.store import LedgerStore, parse_object_id
from plugins.rent_ledger.utils.lease_calendar import day_key, lease_has_started, reminder_trigger
from utils.date_helper import ensure_datetime

logger = logging.getLogger(__name__)

REMINDER_TEMPLATES = {
    ReminderTrigger.FIVE_DAYS_BEFORE: Template(
        "Hi {{ name }}, rent is due on {{ due_date }}. "
        "Balance: {{ currency }} {{ '%.2f' % total }}"
        "{% for label, amount in parts %}, {{ label }} {{ '%.2f' % amount }}{% endfor %}."
    ),
    ReminderTrigger.PAYMENT_DATE: Template(
        "Hi {{ name }}, your rent is due today ({{ due_date }}). "
        "Please pay {{ currency }} {{ '%.2f' % total }}"
        "{% for label, amount in parts %}, {{ label }} {{ '%.2f' % amount }}{% endfor %}."
    ),
}

REMINDER_SUBJECT = "Rent payment reminder"


class ReminderScheduler:
    """Picks the tenants owed a reminder today and sends it once per day and trigger."""

    def __init__(
        self,
        store: LedgerStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        dues: Optional[DueAggregator] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.dues = dues or DueAggregator()

    def compose(self, tenant: Tenant, trigger: ReminderTrigger, dues, as_of: datetime) -> str:
        lead = 5 if trigger == ReminderTrigger.FIVE_DAYS_BEFORE else 0
        due_date = (ensure_datetime(as_of) + timedelta(days=lead)).strftime("%B %d, %Y")
        parts = [
            (label, amount)
            for label, amount in (
                ("rent", dues.rent_due),
                ("utility", dues.utility_due),
                ("deposit", dues.deposit_due),
            )
            if amount > 0
        ]
        return REMINDER_TEMPLATES[trigger].render(
            name=tenant.name,
            due_date=due_date,
            currency=settings.CURRENCY,
            total=dues.total_due,
            parts=parts,
        )

    async def _collect(self, owner_id, as_of: datetime) -> List[Tuple[Tenant, ReminderCandidate]]:
        owner_oid = parse_object_id(owner_id, "owner id")
        as_of = ensure_datetime(as_of)
        day = day_key(as_of)
        found = []

        for prop in await self.store.find_properties(owner_oid):
            trigger = reminder_trigger(prop.rent_payment_date, as_of)
            if trigger is None:
                continue

            tenants = [
                t for t in await self.store.find_tenants([prop.id], active_only=True)
                if lease_has_started(t.lease_start_date, as_of)
            ]
            if not tenants:
                continue
            history = await self.store.find_payments(
                [t.id for t in tenants], types=[PaymentType.UTILITY.value]
            )

            for tenant in tenants:
                own = [p for p in history if p.tenant_id == tenant.id]
                dues = self.dues.compute(tenant, tenant.pricing(prop), own, as_of)
                if dues.total_due <= 0:
                    continue
                if await self.store.reminder_exists(tenant.id, trigger.value, day):
                    logger.debug(f"Reminder {trigger.value} already sent to tenant {tenant.id} on {day}")
                    continue
                found.append((tenant, ReminderCandidate(
                    tenant_id=str(tenant.id),
                    property_id=str(prop.id),
                    tenant_name=tenant.name,
                    trigger=trigger,
                    day=day,
                    channel=tenant.delivery_method,
                    dues=dues,
                    message=self.compose(tenant, trigger, dues, as_of),
                )))
        return found

    async def due_reminders(self, owner_id, as_of: datetime) -> List[ReminderCandidate]:
        return [candidate for _, candidate in await self._collect(owner_id, as_of)]

    async def send_reminders(self, owner_id, as_of: datetime) -> ReminderSweepReport:
        """
        Dispatch every due reminder. The dedupe record is claimed before
        sending and kept whatever the delivery outcome, so a second sweep on
        the same day sends nothing.
        """
        if self.dispatcher is None:
            raise RuntimeError("ReminderScheduler has no notification dispatcher")

        as_of = ensure_datetime(as_of)
        report = ReminderSweepReport(owner_id=str(owner_id), day=day_key(as_of))

        for tenant, candidate in await self._collect(owner_id, as_of):
            record = ReminderRecord(
                tenant_id=tenant.id,
                property_id=tenant.property_id,
                type=candidate.trigger,
                day=candidate.day,
                channel=candidate.channel,
            )
            if not await self.store.insert_reminder(record):
                report.skipped += 1
                continue

            result = await self.dispatcher.send(tenant, candidate.channel, candidate.message, REMINDER_SUBJECT)
            await self.store.set_reminder_outcome(record.id, result.status, result.error)
            report.results.append(result)
            if result.ok:
                report.sent += 1
            else:
                report.failed += 1

        logger.info(f"Reminder sweep for owner {owner_id} on {report.day}: {report.summary}, skipped {report.skipped}")
        return report
