import pytest
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError as SchemaError

from core.MongoORJSONResponse import MongoORJSONResponse
from plugins.rent_ledger.models.models import (
    DueBreakdown,
    ManualPaymentRequest,
    PaymentConfirmation,
    PendingPaymentRequest,
    PortfolioStats,
    ReminderSweepReport,
)
from plugins.rent_ledger.plugin import init_plugin
from utils.exceptions import ConcurrencyConflict, NotFoundError, UpstreamGatewayError, ValidationError
from conftest import AS_OF, make_payment, make_property, make_tenant


@pytest.fixture
def ledger():
    ledger = MagicMock()
    ledger.get_dues = AsyncMock(return_value=DueBreakdown(rent_due=20000, utility_due=800, months_elapsed=2))
    ledger.reconcile = AsyncMock()
    ledger.compute_owner_stats = AsyncMock()
    ledger.due_reminders = AsyncMock(return_value=[])
    ledger.send_reminders = AsyncMock()
    ledger.payments.confirm_payment = AsyncMock()
    ledger.payments.record_manual_payment = AsyncMock()
    ledger.payments.record_pending_payment = AsyncMock()
    return ledger


@pytest.fixture
def client(ledger):
    app = FastAPI(default_response_class=MongoORJSONResponse)
    app.include_router(init_plugin(app)["router"])
    app.state.ledger = ledger
    return TestClient(app)


def payment_body(**overrides):
    body = {
        "tenant_id": str(ObjectId()),
        "property_id": str(ObjectId()),
        "amount": 15000,
        "type": "Rent",
        "transaction_id": "QK7ABC123",
    }
    body.update(overrides)
    return body


class TestLedgerRoutes:

    def test_dues(self, client, ledger):
        tid = str(ObjectId())
        resp = client.get(f"/rent-ledger/tenants/{tid}/dues", params={"as_of": "2025-08-14"})

        assert resp.status_code == 200
        assert resp.json()["dues"]["total_due"] == 20800
        args = ledger.get_dues.await_args.args
        assert args[0] == tid
        assert args[1].isoformat() == "2025-08-14T00:00:00+00:00"

    def test_bad_as_of(self, client):
        resp = client.get(f"/rent-ledger/tenants/{ObjectId()}/dues", params={"as_of": "14/08/2025"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_confirm_payment(self, client, ledger):
        tenant = make_tenant(make_property(ObjectId()))
        ledger.payments.confirm_payment.return_value = make_payment(tenant, 15000)

        resp = client.post("/rent-ledger/payments", json=payment_body())

        assert resp.status_code == 200
        payment = resp.json()["payment"]
        assert payment["_id"]
        assert payment["tenant_id"] == str(tenant.id)
        assert payment["status"] == "completed"

    def test_manual_payment_requires_reference(self, client):
        body = payment_body()
        body.pop("transaction_id")
        resp = client.post("/rent-ledger/payments/manual", json=body)
        assert resp.status_code == 422

    def test_owner_stats(self, client, ledger):
        owner = str(ObjectId())
        ledger.compute_owner_stats.return_value = PortfolioStats(owner_id=owner, as_of=AS_OF, overdue_count=2)

        resp = client.get(f"/rent-ledger/owners/{owner}/stats")

        assert resp.status_code == 200
        assert resp.json()["stats"]["overdue_count"] == 2

    def test_send_reminders(self, client, ledger):
        owner = str(ObjectId())
        ledger.send_reminders.return_value = ReminderSweepReport(owner_id=owner, day="2025-08-14", sent=3, failed=1)

        resp = client.post(f"/rent-ledger/owners/{owner}/reminders/send", params={"as_of": "2025-08-14"})

        assert resp.status_code == 200
        assert resp.json()["message"] == "sent 3, failed 1"


class TestErrorMapping:

    @pytest.mark.parametrize("error, status", [
        (ValidationError("Invalid tenant id: 'x'"), 400),
        (NotFoundError("Tenant not found"), 404),
        (ConcurrencyConflict(ObjectId(), 3), 409),
        (UpstreamGatewayError("gateway down"), 502),
    ])
    def test_status_codes(self, client, ledger, error, status):
        ledger.reconcile.side_effect = error

        resp = client.post(f"/rent-ledger/tenants/{ObjectId()}/reconcile")

        assert resp.status_code == status
        assert resp.json() == {"success": False, "message": str(error)}


class TestPaymentBodies:

    @pytest.mark.parametrize("model", [PaymentConfirmation, ManualPaymentRequest, PendingPaymentRequest])
    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf"), 0, -1])
    def test_amount_must_be_finite_and_positive(self, model, amount):
        with pytest.raises(SchemaError):
            model(**payment_body(amount=amount, reference="CASH-1"))

    def test_valid_body(self):
        body = PaymentConfirmation(**payment_body())
        assert body.amount == 15000
