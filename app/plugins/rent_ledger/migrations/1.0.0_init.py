import logging

from pymongo import ASCENDING, DESCENDING

from plugins.rent_ledger.store import (
    AUDIT_COLL,
    NOTIFICATION_COLL,
    PAYMENT_COLL,
    PROPERTY_COLL,
    REMINDER_COLL,
    TENANT_COLL,
)

logger = logging.getLogger(__name__)

INDEXES = {
    PROPERTY_COLL: [
        {"keys": [("owner_id", ASCENDING)], "name": "owner_id"},
    ],
    TENANT_COLL: [
        {"keys": [("property_id", ASCENDING), ("status", ASCENDING)], "name": "property_status"},
    ],
    PAYMENT_COLL: [
        {"keys": [("transaction_id", ASCENDING)], "name": "transaction_id_unique", "unique": True},
        {"keys": [("tenant_id", ASCENDING), ("status", ASCENDING), ("type", ASCENDING)], "name": "tenant_status_type"},
        {"keys": [("property_id", ASCENDING), ("payment_date", DESCENDING)], "name": "property_payment_date"},
    ],
    REMINDER_COLL: [
        {"keys": [("tenant_id", ASCENDING), ("type", ASCENDING), ("day", ASCENDING)], "name": "reminder_dedupe", "unique": True},
    ],
    AUDIT_COLL: [
        {"keys": [("tenant_id", ASCENDING), ("created_at", DESCENDING)], "name": "tenant_created_at"},
    ],
    NOTIFICATION_COLL: [
        {"keys": [("tenant_id", ASCENDING), ("created_at", DESCENDING)], "name": "tenant_created_at"},
    ],
}


async def run(db):
    logger.info("Initializing rent_ledger indexes...")
    for collection, indexes in INDEXES.items():
        for index in indexes:
            options = {k: v for k, v in index.items() if k != "keys"}
            await db[collection].create_index(index["keys"], **options)
    logger.info("rent_ledger migration complete.")


async def rollback(db):
    for collection, indexes in INDEXES.items():
        for index in indexes:
            await db[collection].drop_index(index["name"])
