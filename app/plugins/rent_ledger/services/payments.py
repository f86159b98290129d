import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import httpx
import orjson
from bson import ObjectId

from core.config import settings
from plugins.rent_ledger.accounting.allocator import PaymentAllocator, parse_payment_type, validate_amount
from plugins.rent_ledger.models.models import Payment, PaymentStatus, Tenant, UpdatedLedger
from plugins.rent_ledger.services.notifications import NotificationDispatcher
from plugins.rent_ledger.store import LedgerStore, parse_object_id
from utils.date_helper import ensure_datetime, utcnow
from utils.exceptions import ConcurrencyConflict, NotFoundError, UpstreamGatewayError, ValidationError

logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP = {
    "Completed": PaymentStatus.COMPLETED,
    "Failed": PaymentStatus.FAILED,
    "Cancelled": PaymentStatus.CANCELLED,
    "Timeout": PaymentStatus.FAILED,
    "Pending": PaymentStatus.PENDING,
}


class GatewayStatusClient(Protocol):
    async def fetch_status(self, transaction_id: str) -> Dict[str, Any]:
        ...


def map_gateway_status(data: Dict[str, Any]) -> PaymentStatus:
    """
    Translate a gateway status payload to a payment status.

    A ``Pending`` transaction whose M-Pesa response carries a cancel or
    insufficient-funds error is already final.
    """
    status = data.get("TransactionStatus")
    if status == "Pending" and data.get("MpesaResponse"):
        raw = data["MpesaResponse"]
        try:
            mpesa = orjson.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except orjson.JSONDecodeError as e:
            logger.error(f"Error parsing MpesaResponse: {e}")
            mpesa = {}
        error = str((mpesa or {}).get("errorMessage") or "")
        if "Cancel Button" in error:
            return PaymentStatus.CANCELLED
        if "insufficient" in error:
            return PaymentStatus.FAILED
    return GATEWAY_STATUS_MAP.get(status, PaymentStatus.PENDING)


class PaymentService:
    """
    Entry point for confirmed payments: records the payment once per
    transaction id, applies it to the tenant ledger and confirms to the tenant.
    """

    def __init__(
        self,
        store: LedgerStore,
        allocator: Optional[PaymentAllocator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        max_retries: Optional[int] = None,
    ):
        self.store = store
        self.allocator = allocator or PaymentAllocator(store)
        self.dispatcher = dispatcher
        self.max_retries = max_retries or settings.LEDGER_MAX_RETRIES

    async def _load_parties(self, tenant_id: ObjectId, property_id: ObjectId) -> Tenant:
        tenant = await self.store.get_tenant(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        if not await self.store.get_property(property_id):
            raise NotFoundError(f"Property {property_id} not found")
        if tenant.property_id != property_id:
            raise ValidationError(f"Tenant {tenant_id} does not rent in property {property_id}")
        return tenant

    async def confirm_payment(
        self,
        tenant_id,
        property_id,
        amount,
        type,
        transaction_id: str,
        reference: Optional[str] = None,
        payment_date: Optional[datetime] = None,
    ) -> Payment:
        amount = validate_amount(amount)
        payment_type = parse_payment_type(type)
        tenant_oid = parse_object_id(tenant_id, "tenant id")
        property_oid = parse_object_id(property_id, "property id")
        transaction_id = (transaction_id or "").strip()
        if not transaction_id:
            raise ValidationError("Transaction id is required")

        payment = await self.store.get_payment_by_transaction(transaction_id)
        if payment is None:
            await self._load_parties(tenant_oid, property_oid)
            payment = Payment.create(
                tenant_id=tenant_oid,
                property_id=property_oid,
                amount=amount,
                type=payment_type,
                transaction_id=transaction_id,
                reference=reference,
                payment_date=ensure_datetime(payment_date) if payment_date else None,
            )
            if not await self.store.insert_payment(payment):
                payment = await self.store.get_payment_by_transaction(transaction_id)

        if payment.tenant_id != tenant_oid:
            raise ValidationError(f"Transaction {transaction_id} belongs to another tenant")
        if payment.status == PaymentStatus.PENDING:
            payment = await self.store.transition_payment(transaction_id, PaymentStatus.COMPLETED.value) \
                or await self.store.get_payment_by_transaction(transaction_id)
        return await self._settle(payment)

    async def record_manual_payment(
        self,
        tenant_id,
        property_id,
        amount,
        type,
        reference: str,
        payment_date: Optional[datetime] = None,
    ) -> Payment:
        if not reference or not reference.strip():
            raise ValidationError("Reference is required for manual payments")
        return await self.confirm_payment(
            tenant_id,
            property_id,
            amount,
            type,
            transaction_id=f"MANUAL-{ObjectId()}",
            reference=reference.strip(),
            payment_date=payment_date,
        )

    async def record_pending_payment(
        self,
        tenant_id,
        property_id,
        amount,
        type,
        transaction_id: str,
        reference: Optional[str] = None,
    ) -> Payment:
        """Store a gateway-initiated payment until its status is resolved."""
        amount = validate_amount(amount)
        payment_type = parse_payment_type(type)
        tenant_oid = parse_object_id(tenant_id, "tenant id")
        property_oid = parse_object_id(property_id, "property id")
        if not transaction_id:
            raise ValidationError("Transaction id is required")

        await self._load_parties(tenant_oid, property_oid)
        payment = Payment.create(
            tenant_id=tenant_oid,
            property_id=property_oid,
            amount=amount,
            type=payment_type,
            transaction_id=transaction_id,
            reference=reference,
            status=PaymentStatus.PENDING,
        )
        if not await self.store.insert_payment(payment):
            return await self.store.get_payment_by_transaction(transaction_id)
        return payment

    async def resolve_payment(self, transaction_id: str, gateway: GatewayStatusClient) -> Payment:
        """
        Ask the gateway for the outcome of a pending payment and move it to
        its terminal status exactly once. A failed status check leaves the
        payment pending and raises UpstreamGatewayError.
        """
        payment = await self.store.get_payment_by_transaction(transaction_id)
        if not payment:
            raise NotFoundError(f"Payment {transaction_id} not found")
        if payment.status != PaymentStatus.PENDING:
            return await self._settle(payment)

        try:
            data = await gateway.fetch_status(transaction_id)
        except httpx.HTTPError as e:
            logger.error(f"Gateway status check for {transaction_id} failed: {e}")
            raise UpstreamGatewayError(f"Gateway status check for {transaction_id} failed") from e

        status = map_gateway_status(data)
        if status == PaymentStatus.PENDING:
            return payment

        updated = await self.store.transition_payment(transaction_id, status.value)
        if updated is None:
            # resolved concurrently
            updated = await self.store.get_payment_by_transaction(transaction_id)
        logger.info(f"Payment {transaction_id} resolved as {updated.status}")
        return await self._settle(updated)

    async def _settle(self, payment: Payment) -> Payment:
        """Apply a completed, unsettled payment and stamp its settlement time."""
        if payment.status != PaymentStatus.COMPLETED or payment.settled_at is not None:
            if payment.settled_at is not None:
                logger.info(f"Payment {payment.transaction_id} already settled, not applied again")
            return payment

        ledger = None
        for attempt in range(1, self.max_retries + 1):
            try:
                ledger = await self.allocator.apply_payment(payment.tenant_id, payment)
                break
            except ConcurrencyConflict:
                if attempt == self.max_retries:
                    raise
                logger.warning(
                    f"Retrying payment {payment.transaction_id} after version conflict "
                    f"(attempt {attempt}/{self.max_retries})"
                )

        settled_at = utcnow()
        await self.store.mark_payment_settled(payment.id, settled_at)
        payment = payment.model_copy(update={"settled_at": settled_at})
        await self._notify(payment, ledger)
        return payment

    async def _notify(self, payment: Payment, ledger: UpdatedLedger) -> None:
        if self.dispatcher is None:
            return
        tenant = await self.store.get_tenant(payment.tenant_id)
        if not tenant:
            return
        message = (
            f"Payment of {settings.CURRENCY} {payment.amount:.2f} ({payment.type}) received. "
            f"Ref {payment.transaction_id}. Balance due {settings.CURRENCY} {ledger.dues.total_due:.2f}, "
            f"wallet {settings.CURRENCY} {ledger.wallet_balance:.2f}."
        )
        result = await self.dispatcher.send(tenant, tenant.delivery_method, message, "Payment confirmation")
        if not result.ok:
            logger.warning(f"Payment confirmation for {payment.transaction_id} not delivered: {result.error}")
