import logging
from typing import List, Optional, Tuple

from plugins.rent_ledger.models.models import DeliveryMethod, DeliveryResult, DeliveryStatus, Tenant
from plugins.rent_ledger.services.providers.base import BaseProvider
from plugins.rent_ledger.services.providers.in_app import InAppProvider
from plugins.rent_ledger.services.providers.provider_selector import get_provider
from plugins.rent_ledger.store import LedgerStore
from utils.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Routes a message to the tenant's delivery channel.

    Best effort: provider failures are logged and reported in the returned
    DeliveryResult, never raised to the caller.
    """

    def __init__(self, sms: BaseProvider, email: BaseProvider, in_app: BaseProvider):
        self.sms = sms
        self.email = email
        self.in_app = in_app

    @classmethod
    def from_settings(cls, store: LedgerStore) -> "NotificationDispatcher":
        return cls(sms=get_provider("ums"), email=get_provider("smtp"), in_app=InAppProvider(store))

    def _targets(self, tenant: Tenant, channel: DeliveryMethod) -> List[Tuple[str, BaseProvider, Optional[str]]]:
        if channel in (DeliveryMethod.SMS, DeliveryMethod.WHATSAPP):
            return [("sms", self.sms, tenant.phone)]
        if channel == DeliveryMethod.EMAIL:
            return [("email", self.email, tenant.email)]
        if channel == DeliveryMethod.BOTH:
            return [("sms", self.sms, tenant.phone), ("email", self.email, tenant.email)]
        return [("app", self.in_app, str(tenant.id))]

    async def send(
        self,
        tenant: Tenant,
        channel: DeliveryMethod | str,
        message: str,
        subject: Optional[str] = None,
    ) -> DeliveryResult:
        channel = DeliveryMethod(channel)
        delivered, errors = 0, []

        for name, provider, address in self._targets(tenant, channel):
            if not address:
                errors.append(f"{name}: no contact on file")
                continue
            payload = {
                "tenant_id": str(tenant.id),
                "to": address,
                "name": tenant.name,
                "subject": subject,
                "message": message,
            }
            try:
                await provider.send(payload)
                delivered += 1
            except DeliveryError as e:
                logger.warning(f"Delivery to tenant {tenant.id} via {name} failed: {e}")
                errors.append(f"{name}: {e}")

        return DeliveryResult(
            tenant_id=str(tenant.id),
            channel=channel.value,
            status=DeliveryStatus.SENT if delivered else DeliveryStatus.FAILED,
            error="; ".join(errors) or None,
        )
