"""
Tests degli endpoint HTTP (httpx + ASGITransport).

Le richieste usano token JWT firmati con la chiave di configurazione,
come quelli emessi dal servizio di autenticazione.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.exc import DBAPIError

from app.core.config import settings
from app.core.database import get_db, is_transaction_conflict
from app.main import app
from app.services.invoice_deal_service import invoice_deal_service
from app.services.payment_service import payment_service


def _auth(role: str = "admin", sub: str = "admin-1", token_type: str = "access") -> dict[str, str]:
    token = jwt.encode(
        {"sub": sub, "role": role, "type": token_type},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


ADMIN = _auth()


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch, renderer_cls):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(invoice_deal_service, "_renderer", renderer_cls())

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class TestAuth:

    @pytest.mark.asyncio
    async def test_health_is_public(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_missing_token(self, client, make_booking):
        booking = await make_booking()
        response = await client.post(f"/api/v1/bookings/{booking.id}/confirm")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, client, make_booking):
        booking = await make_booking()
        response = await client.post(
            f"/api/v1/bookings/{booking.id}/confirm",
            headers={"Authorization": "Bearer non-un-token"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_token_is_rejected(self, client, make_booking):
        booking = await make_booking()
        response = await client.post(
            f"/api/v1/bookings/{booking.id}/confirm",
            headers=_auth(token_type="refresh"),
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_without_type_counts_as_access(self, client):
        token = jwt.encode(
            {"sub": "admin-1", "role": "admin"}, settings.secret_key, algorithm=settings.jwt_algorithm
        )

        response = await client.get(
            f"/api/v1/bookings/{uuid.uuid4()}", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_driver_cannot_confirm(self, client, make_booking):
        booking = await make_booking()
        response = await client.post(
            f"/api/v1/bookings/{booking.id}/confirm",
            headers=_auth(role="driver", sub="driver-1"),
        )
        assert response.status_code == 403


class TestBookingEndpoints:

    @pytest.mark.asyncio
    async def test_confirm_returns_booking_and_invoice(self, client, make_booking):
        booking = await make_booking(price=Decimal("1000.00"))

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/confirm",
            json={"note": "ok"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["booking"]["status"] == "confirmed"
        assert Decimal(body["invoice"]["total_amount"]) == Decimal("1180.00")
        assert body["warnings"] == []

        tracks = await client.get(f"/api/v1/bookings/{booking.id}/tracks", headers=ADMIN)
        assert tracks.status_code == 200
        assert [t["new_status"] for t in tracks.json()] == ["confirmed"]

    @pytest.mark.asyncio
    async def test_confirm_twice_returns_typed_error(self, client, make_booking):
        booking = await make_booking()
        await client.post(f"/api/v1/bookings/{booking.id}/confirm", headers=ADMIN)

        response = await client.post(f"/api/v1/bookings/{booking.id}/confirm", headers=ADMIN)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "NOOP_TRANSITION"
        assert body["retryable"] is False

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, make_booking):
        booking = await make_booking()

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/status",
            json={"status": "completed"},
            headers=ADMIN,
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, client):
        response = await client.get(f"/api/v1/bookings/{uuid.uuid4()}", headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"


class TestInvoiceEndpoints:

    @pytest.mark.asyncio
    async def test_payment_flow_with_customer_credit(self, client, make_booking):
        booking = await make_booking(price=Decimal("1000.00"))
        created = await client.post(
            f"/api/v1/invoices/from-booking/{booking.id}",
            json={"invoice_type": "tax_invoice"},
            headers=ADMIN,
        )
        assert created.status_code == 200
        invoice_id = created.json()["invoice"]["id"]

        paid = await client.post(
            f"/api/v1/invoices/{invoice_id}/payments",
            json={"payments": [{"amount": "1180.00", "method": "cash"}]},
            headers=ADMIN,
        )
        assert paid.status_code == 201
        assert paid.json()["invoice"]["status"] == "paid"

        extra = await client.post(
            f"/api/v1/invoices/{invoice_id}/payments",
            json={"payments": [{"amount": "100.00", "method": "credit_card"}]},
            headers=ADMIN,
        )
        body = extra.json()
        assert Decimal(body["remaining"]) == Decimal("-100.00")
        assert Decimal(body["excess"]) == Decimal("100.00")
        assert Decimal(body["customer_credit"]) == Decimal("100.00")
        assert body["invoice"]["status"] == "paid"

        payments = await client.get(f"/api/v1/invoices/{invoice_id}/payments", headers=ADMIN)
        assert len(payments.json()) == 2

    @pytest.mark.asyncio
    async def test_invalid_amount_is_not_retryable(self, client, make_booking):
        booking = await make_booking()
        created = await client.post(
            f"/api/v1/invoices/from-booking/{booking.id}", json={}, headers=ADMIN
        )
        invoice_id = created.json()["invoice"]["id"]

        response = await client.post(
            f"/api/v1/invoices/{invoice_id}/payments",
            json={"payments": [{"amount": "50.00", "method": "cash"}, {"amount": "0", "method": "cash"}]},
            headers=ADMIN,
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INVALID_AMOUNT"
        assert body["retryable"] is False

        payments = await client.get(f"/api/v1/invoices/{invoice_id}/payments", headers=ADMIN)
        assert payments.json() == []

    @pytest.mark.asyncio
    async def test_create_invoice_is_idempotent(self, client, make_booking):
        booking = await make_booking()

        first = await client.post(f"/api/v1/invoices/from-booking/{booking.id}", json={}, headers=ADMIN)
        second = await client.post(f"/api/v1/invoices/from-booking/{booking.id}", json={}, headers=ADMIN)

        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert second.json()["invoice"]["id"] == first.json()["invoice"]["id"]


class TestInvoiceDealEndpoints:

    @pytest.mark.asyncio
    async def test_create_twice_returns_same_deal(self, client, make_booking):
        booking = await make_booking()

        first = await client.post(
            "/api/v1/invoice-deals", json={"booking_id": str(booking.id)}, headers=ADMIN
        )
        second = await client.post(
            "/api/v1/invoice-deals", json={"booking_id": str(booking.id)}, headers=ADMIN
        )

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert first.json()["deal"]["pdf_url"] is not None
        assert second.json()["created"] is False
        assert second.json()["deal"]["id"] == first.json()["deal"]["id"]

        fetched = await client.get(
            f"/api/v1/invoice-deals/{first.json()['deal']['id']}", headers=ADMIN
        )
        assert fetched.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_booking(self, client):
        response = await client.post(
            "/api/v1/invoice-deals", json={"booking_id": str(uuid.uuid4())}, headers=ADMIN
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "MISSING_BOOKING"


class TestBalanceEndpoints:

    @pytest.mark.asyncio
    async def test_customer_balance(self, client, make_customer, make_booking):
        customer = await make_customer()
        await make_booking(customer=customer, price=Decimal("250.00"))

        response = await client.get(f"/api/v1/customers/{customer.id}/balance", headers=ADMIN)

        assert response.status_code == 200
        assert Decimal(response.json()["balance"]) == Decimal("-250.00")

    @pytest.mark.asyncio
    async def test_contractor_reads_only_own_balance(self, client, make_contractor):
        own = await make_contractor(name="Mio")
        other = await make_contractor(name="Altro")
        headers = _auth(role="contractor", sub=str(own.id))

        mine = await client.get(f"/api/v1/contractors/{own.id}/balance", headers=headers)
        theirs = await client.get(f"/api/v1/contractors/{other.id}/balance", headers=headers)

        assert mine.status_code == 200
        assert Decimal(mine.json()["balance"]) == Decimal("0.00")
        assert theirs.status_code == 403
        assert theirs.json()["error_code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_contractor_cannot_read_customer_balance(self, client, make_customer, make_contractor):
        customer = await make_customer()
        contractor = await make_contractor()

        response = await client.get(
            f"/api/v1/customers/{customer.id}/balance",
            headers=_auth(role="contractor", sub=str(contractor.id)),
        )

        assert response.status_code == 403


def _driver_error(sqlstate: str) -> DBAPIError:
    orig = Exception("errore del driver")
    orig.sqlstate = sqlstate
    return DBAPIError("SELECT 1", {}, orig)


class TestDatabaseErrors:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sqlstate", ["40P01", "40001"])
    async def test_deadlock_is_a_retryable_conflict(self, client, sqlstate):
        with patch.object(
            payment_service, "apply_payments", AsyncMock(side_effect=_driver_error(sqlstate))
        ):
            response = await client.post(
                f"/api/v1/invoices/{uuid.uuid4()}/payments",
                json={"payments": [{"amount": "10.00", "method": "cash"}]},
                headers=ADMIN,
            )

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "TRANSACTION_CONFLICT"
        assert body["retryable"] is True

    @pytest.mark.asyncio
    async def test_other_driver_errors_stay_internal(self, client):
        with patch.object(
            payment_service, "apply_payments", AsyncMock(side_effect=_driver_error("23502"))
        ):
            response = await client.post(
                f"/api/v1/invoices/{uuid.uuid4()}/payments",
                json={"payments": [{"amount": "10.00", "method": "cash"}]},
                headers=ADMIN,
            )

        assert response.status_code == 500
        assert "retryable" not in response.json()

    def test_psycopg2_pgcode_is_recognised(self):
        orig = Exception("deadlock detected")
        orig.pgcode = "40P01"

        assert is_transaction_conflict(DBAPIError("SELECT 1", {}, orig)) is True
        assert is_transaction_conflict(DBAPIError("SELECT 1", {}, Exception("altro"))) is False
