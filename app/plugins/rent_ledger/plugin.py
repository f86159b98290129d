import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from plugins.rent_ledger.models.models import (
    ManualPaymentRequest,
    PaymentConfirmation,
    PendingPaymentRequest,
)
from plugins.rent_ledger.services.ledger_service import LedgerService
from utils.date_helper import parse_as_of
from utils.exceptions import (
    ConcurrencyConflict,
    LedgerError,
    NotFoundError,
    UpstreamGatewayError,
    ValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rent-ledger", tags=["Rent Ledger"])

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConcurrencyConflict: 409,
    UpstreamGatewayError: 502,
}


def get_ledger(request: Request) -> LedgerService:
    return request.app.state.ledger


async def ledger_error_handler(request: Request, exc: LedgerError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"success": False, "message": str(exc)})


# ===============================================================
# TENANT LEDGER
# ===============================================================

@router.get("/tenants/{tenant_id}/dues")
async def tenant_dues(request: Request, tenant_id: str, as_of: Optional[str] = Query(None)):
    dues = await get_ledger(request).get_dues(tenant_id, parse_as_of(as_of))
    return {"success": True, "dues": dues.as_dict()}


@router.post("/tenants/{tenant_id}/reconcile")
async def reconcile_tenant(request: Request, tenant_id: str):
    result = await get_ledger(request).reconcile(tenant_id)
    return {"success": True, "result": result.model_dump()}


# ===============================================================
# PAYMENTS
# ===============================================================

@router.post("/payments")
async def confirm_payment(request: Request, body: PaymentConfirmation):
    """Gateway-confirmed payment. Replaying a transaction id does not re-apply it."""
    payment = await get_ledger(request).payments.confirm_payment(
        body.tenant_id,
        body.property_id,
        body.amount,
        body.type,
        body.transaction_id,
        reference=body.reference,
        payment_date=body.payment_date,
    )
    return {"success": True, "payment": payment}


@router.post("/payments/manual")
async def manual_payment(request: Request, body: ManualPaymentRequest):
    payment = await get_ledger(request).payments.record_manual_payment(
        body.tenant_id,
        body.property_id,
        body.amount,
        body.type,
        body.reference,
        payment_date=body.payment_date,
    )
    return {"success": True, "payment": payment}


@router.post("/payments/pending")
async def pending_payment(request: Request, body: PendingPaymentRequest):
    payment = await get_ledger(request).payments.record_pending_payment(
        body.tenant_id,
        body.property_id,
        body.amount,
        body.type,
        body.transaction_id,
        reference=body.reference,
    )
    return {"success": True, "payment": payment}


# ===============================================================
# OWNER PORTFOLIO
# ===============================================================

@router.get("/owners/{owner_id}/stats")
async def owner_stats(request: Request, owner_id: str, as_of: Optional[str] = Query(None)):
    stats = await get_ledger(request).compute_owner_stats(owner_id, parse_as_of(as_of))
    return {"success": True, "stats": stats.model_dump()}


@router.get("/owners/{owner_id}/reminders")
async def owner_reminders(request: Request, owner_id: str, as_of: Optional[str] = Query(None)):
    candidates = await get_ledger(request).due_reminders(owner_id, parse_as_of(as_of))
    return {"success": True, "reminders": [c.model_dump() for c in candidates]}


@router.post("/owners/{owner_id}/reminders/send")
async def send_owner_reminders(request: Request, owner_id: str, as_of: Optional[str] = Query(None)):
    report = await get_ledger(request).send_reminders(owner_id, parse_as_of(as_of))
    return {
        "success": True,
        "message": report.summary,
        "report": report.model_dump(),
    }


def init_plugin(app: FastAPI):
    """Register error mapping and return the plugin router."""
    app.add_exception_handler(LedgerError, ledger_error_handler)
    return {"router": router}
