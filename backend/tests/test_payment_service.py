"""
Tests per PaymentService: applicazione atomica dei pagamenti,
sovrapagamento come credito cliente, validazione importi.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.core.exceptions import BusinessValidationError, InvalidAmountError, NotFoundError
from app.models import Invoice, Payment
from app.schemas.invoice import PaymentInput, PaymentMethod
from app.services.invoice_service import invoice_service
from app.services.payment_service import payment_service


def _pay(amount: str, method: PaymentMethod = PaymentMethod.CASH, **kwargs) -> PaymentInput:
    return PaymentInput(amount=Decimal(amount), method=method, **kwargs)


async def _payments_count(db) -> int:
    result = await db.execute(select(func.count(Payment.id)))
    return result.scalar_one()


@pytest.fixture
def invoiced_booking(db, make_booking):
    """Prenotazione da 1000 con fattura fiscale (totale 1180)."""
    async def _make(**kwargs):
        booking = await make_booking(price=Decimal("1000.00"), **kwargs)
        invoice, _ = await invoice_service.ensure_invoice(db, booking)
        return booking, invoice

    return _make


class TestApplyPayments:

    @pytest.mark.asyncio
    async def test_full_payment_then_overpayment(self, db, invoiced_booking):
        booking, invoice = await invoiced_booking()
        assert invoice.total_amount == Decimal("1180.00")

        result = await payment_service.apply_payments(db, invoice.id, [_pay("1180.00")])

        assert result.invoice.status.value == "paid"
        assert result.remaining == Decimal("0.00")
        assert result.excess == Decimal("0.00")
        assert result.paid_sum == Decimal("1180.00")

        result = await payment_service.apply_payments(db, invoice.id, [_pay("100.00")])

        assert result.invoice.status.value == "paid"
        assert result.remaining == Decimal("-100.00")
        assert result.excess == Decimal("100.00")
        assert result.customer_credit == Decimal("100.00")
        assert result.invoice.customer_credit == Decimal("100.00")
        assert result.invoice.paid_amount == Decimal("1280.00")

    @pytest.mark.asyncio
    async def test_partial_payment_leaves_pending(self, db, invoiced_booking):
        booking, invoice = await invoiced_booking()

        result = await payment_service.apply_payments(
            db,
            invoice.id,
            [_pay("500.00"), _pay("300.00", PaymentMethod.BANK_TRANSFER, transaction_id="TRX-1")],
        )

        assert result.invoice.status.value == "pending"
        assert result.paid_sum == Decimal("800.00")
        assert result.remaining == Decimal("380.00")
        assert len(result.payments) == 2
        assert await _payments_count(db) == 2

        await db.refresh(booking)
        assert booking.payment_status == "unpaid"

    @pytest.mark.asyncio
    async def test_remaining_always_equals_total_minus_paid(self, db, invoiced_booking):
        _, invoice = await invoiced_booking()

        for amount in ("100.10", "0.90", "999.99", "200.00"):
            await payment_service.apply_payments(db, invoice.id, [_pay(amount)])
            stored = (
                await db.execute(
                    select(Invoice).where(Invoice.id == invoice.id).execution_options(populate_existing=True)
                )
            ).scalar_one()
            assert stored.remaining_amount == stored.total_amount - stored.paid_amount

    @pytest.mark.asyncio
    async def test_exact_payment_marks_booking_paid(self, db, invoiced_booking):
        booking, invoice = await invoiced_booking()

        await payment_service.apply_payments(db, invoice.id, [_pay("1000.00"), _pay("180.00")])

        await db.refresh(booking)
        assert booking.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejects_whole_batch(self, db, invoiced_booking):
        _, invoice = await invoiced_booking()

        with pytest.raises(InvalidAmountError) as exc_info:
            await payment_service.apply_payments(
                db, invoice.id, [_pay("100.00"), _pay("0.00")]
            )

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert exc_info.value.retryable is False
        assert exc_info.value.extra["index"] == 1
        assert await _payments_count(db) == 0

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, db, invoiced_booking):
        _, invoice = await invoiced_booking()

        with pytest.raises(InvalidAmountError):
            await payment_service.apply_payments(db, invoice.id, [_pay("-5.00")])

    @pytest.mark.asyncio
    async def test_invoice_not_found(self, db):
        with pytest.raises(NotFoundError):
            await payment_service.apply_payments(db, uuid.uuid4(), [_pay("10.00")])

    @pytest.mark.asyncio
    async def test_contractor_mismatch_rolls_back_everything(
        self, db, invoiced_booking, make_contractor
    ):
        assigned = await make_contractor(name="Assegnato")
        stranger = await make_contractor(name="Estraneo")
        booking, invoice = await invoiced_booking(contractor_id=assigned.id)
        invoice_id = invoice.id

        with pytest.raises(BusinessValidationError) as exc_info:
            await payment_service.apply_payments(
                db,
                invoice_id,
                [_pay("100.00"), _pay("50.00", contractor_id=stranger.id)],
            )

        assert exc_info.value.error_code == "CONTRACTOR_MISMATCH"
        assert await _payments_count(db) == 0

        stored = await invoice_service.get_by_id(db, invoice_id)
        await db.refresh(stored)
        assert stored.paid_amount == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_payer_is_customer_or_contractor(self, db, invoiced_booking, make_contractor):
        contractor = await make_contractor()
        booking, invoice = await invoiced_booking(contractor_id=contractor.id)

        result = await payment_service.apply_payments(
            db,
            invoice.id,
            [_pay("100.00"), _pay("200.00", contractor_id=contractor.id)],
        )

        by_customer, by_contractor = result.payments
        assert by_customer.customer_id == booking.customer_id
        assert by_customer.contractor_id is None
        assert by_contractor.contractor_id == contractor.id
        assert by_contractor.customer_id is None

    @pytest.mark.asyncio
    async def test_list_for_invoice(self, db, invoiced_booking):
        _, invoice = await invoiced_booking()
        await payment_service.apply_payments(db, invoice.id, [_pay("10.00"), _pay("20.00")])

        payments = await payment_service.list_for_invoice(db, invoice.id)

        assert sorted(p.amount for p in payments) == [Decimal("10.00"), Decimal("20.00")]

    @pytest.mark.asyncio
    async def test_booking_is_locked_before_the_invoice(self, db, invoiced_booking):
        _, invoice = await invoiced_booking()
        order = []

        real_lock_booking = invoice_service.lock_booking
        real_get_by_id = invoice_service.get_by_id

        async def lock_booking(session, booking_id):
            order.append("booking")
            return await real_lock_booking(session, booking_id)

        async def get_by_id(session, invoice_id, for_update=False):
            if for_update:
                order.append("invoice")
            return await real_get_by_id(session, invoice_id, for_update)

        with patch.object(invoice_service, "lock_booking", new=lock_booking), patch.object(
            invoice_service, "get_by_id", new=get_by_id
        ):
            await payment_service.apply_payments(db, invoice.id, [_pay("10.00")])

        assert order == ["booking", "invoice"]
