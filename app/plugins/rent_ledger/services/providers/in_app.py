from typing import Any, Dict

from pymongo.errors import PyMongoError

from plugins.rent_ledger.services.providers.base import BaseProvider
from plugins.rent_ledger.store import LedgerStore
from utils.date_helper import utcnow
from utils.exceptions import DeliveryError


class InAppProvider(BaseProvider):
    """Stores the message in the tenant's notification inbox."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await self.store.insert_notification({
                "tenant_id": payload["tenant_id"],
                "type": payload.get("type", "payment"),
                "message": payload["message"],
                "delivery_method": "app",
                "status": "sent",
                "created_at": utcnow(),
            })
        except PyMongoError as e:
            raise DeliveryError(f"In-app notification for tenant {payload['tenant_id']} not stored: {e}") from e
        return {"status": "sent"}
