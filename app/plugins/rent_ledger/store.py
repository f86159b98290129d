import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument, UpdateOne
from pymongo.errors import DuplicateKeyError

from plugins.rent_ledger.models.models import (
    LedgerAuditEntry,
    Payment,
    PaymentStatus,
    Property,
    ReminderRecord,
    Tenant,
)
from utils.date_helper import utcnow
from utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

TENANT_COLL = "tenants"
PROPERTY_COLL = "properties"
PAYMENT_COLL = "payments"
REMINDER_COLL = "reminders"
AUDIT_COLL = "ledger_audit"
NOTIFICATION_COLL = "notifications"


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValidationError(f"Invalid {label}: {value!r}")


class LedgerStore:
    """
    Collection access for the ledger: point reads, filtered scans and
    single-document conditional updates. No multi-document transactions.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.tenants = db[TENANT_COLL]
        self.properties = db[PROPERTY_COLL]
        self.payments = db[PAYMENT_COLL]
        self.reminders = db[REMINDER_COLL]
        self.audit = db[AUDIT_COLL]
        self.notifications = db[NOTIFICATION_COLL]

    # ---------------- Tenants ----------------

    async def get_tenant(self, tenant_id: ObjectId) -> Optional[Tenant]:
        doc = await self.tenants.find_one({"_id": tenant_id})
        return Tenant.model_validate(doc) if doc else None

    async def find_tenants(self, property_ids: Iterable[ObjectId], active_only: bool = False) -> List[Tenant]:
        query: Dict[str, Any] = {"property_id": {"$in": list(property_ids)}}
        if active_only:
            query["status"] = "active"
        docs = await self.tenants.find(query).to_list(None)
        return [Tenant.model_validate(d) for d in docs]

    async def compare_and_set_tenant(
        self, tenant_id: ObjectId, expected_version: int, fields: Dict[str, Any]
    ) -> bool:
        """
        Write ``fields`` only if the stored version still equals
        ``expected_version``; bumps the version on success.
        """
        result = await self.tenants.update_one(
            {"_id": tenant_id, "version": expected_version},
            {"$set": {**fields, "updated_at": utcnow()}, "$inc": {"version": 1}},
        )
        return result.matched_count == 1

    async def set_payment_statuses(self, statuses: Dict[ObjectId, str]) -> int:
        """Bulk write of the current/overdue flag. Does not touch the version."""
        if not statuses:
            return 0
        ops = [
            UpdateOne({"_id": tid, "payment_status": {"$ne": status}}, {"$set": {"payment_status": status}})
            for tid, status in statuses.items()
        ]
        result = await self.tenants.bulk_write(ops, ordered=False)
        return result.modified_count

    # ---------------- Properties ----------------

    async def get_property(self, property_id: ObjectId) -> Optional[Property]:
        doc = await self.properties.find_one({"_id": property_id})
        return Property.model_validate(doc) if doc else None

    async def find_properties(self, owner_id: ObjectId) -> List[Property]:
        docs = await self.properties.find({"owner_id": owner_id}).to_list(None)
        return [Property.model_validate(d) for d in docs]

    # ---------------- Payments ----------------

    async def find_payments(
        self,
        tenant_ids: Optional[Iterable[ObjectId]] = None,
        status: Optional[str] = PaymentStatus.COMPLETED.value,
        types: Optional[Iterable[str]] = None,
        created_since: Optional[datetime] = None,
        property_ids: Optional[Iterable[ObjectId]] = None,
    ) -> List[Payment]:
        query: Dict[str, Any] = {}
        if tenant_ids is not None:
            query["tenant_id"] = {"$in": list(tenant_ids)}
        if property_ids is not None:
            query["property_id"] = {"$in": list(property_ids)}
        if status is not None:
            query["status"] = status
        if types is not None:
            query["type"] = {"$in": list(types)}
        if created_since is not None:
            query["created_at"] = {"$gte": created_since}
        docs = await self.payments.find(query).sort("payment_date", 1).to_list(None)
        return [Payment.model_validate(d) for d in docs]

    async def get_payment_by_transaction(self, transaction_id: str) -> Optional[Payment]:
        doc = await self.payments.find_one({"transaction_id": transaction_id})
        return Payment.model_validate(doc) if doc else None

    async def insert_payment(self, payment: Payment) -> bool:
        """Insert a payment; False when the transaction id is already recorded."""
        try:
            await self.payments.insert_one(payment.to_mongo())
            return True
        except DuplicateKeyError:
            logger.warning(f"Duplicate transaction id {payment.transaction_id}, payment not inserted")
            return False

    async def transition_payment(self, transaction_id: str, status: str) -> Optional[Payment]:
        """Move a pending payment to ``status``. None if it was no longer pending."""
        doc = await self.payments.find_one_and_update(
            {"transaction_id": transaction_id, "status": PaymentStatus.PENDING.value},
            {"$set": {"status": status}},
            return_document=ReturnDocument.AFTER,
        )
        return Payment.model_validate(doc) if doc else None

    async def mark_payment_settled(self, payment_id: ObjectId, settled_at: datetime) -> bool:
        result = await self.payments.update_one(
            {"_id": payment_id, "settled_at": None},
            {"$set": {"settled_at": settled_at}},
        )
        return result.modified_count == 1

    # ---------------- Reminders / audit ----------------

    async def reminder_exists(self, tenant_id: ObjectId, trigger: str, day: str) -> bool:
        doc = await self.reminders.find_one({"tenant_id": tenant_id, "type": trigger, "day": day})
        return doc is not None

    async def insert_reminder(self, record: ReminderRecord) -> bool:
        """False when another sweep already recorded this tenant, trigger and day."""
        try:
            await self.reminders.insert_one(record.to_mongo())
            return True
        except DuplicateKeyError:
            return False

    async def set_reminder_outcome(self, record_id: ObjectId, status: str, error: Optional[str] = None) -> None:
        await self.reminders.update_one(
            {"_id": record_id},
            {"$set": {"delivery_status": status, "error": error}},
        )

    async def record_audit(self, entry: LedgerAuditEntry) -> None:
        await self.audit.insert_one(entry.to_mongo())

    async def insert_notification(self, doc: Dict[str, Any]) -> None:
        await self.notifications.insert_one(doc)
