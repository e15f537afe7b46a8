"""
Tests per InvoiceDealService: get-or-create idempotente, snapshot,
PDF best-effort e rigenerazione.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ExternalServiceFailure, MissingBookingError, NotFoundError
from app.models import Booking, InvoiceDeal
from app.schemas.invoice import PaymentInput, PaymentMethod
from app.schemas.invoice_deal import DocumentKind, DocumentLanguage
from app.services.booking_service import booking_service
from app.services.invoice_deal_service import InvoiceDealService
from app.services.payment_service import payment_service


async def _deals_count(db) -> int:
    result = await db.execute(select(func.count(InvoiceDeal.id)))
    return result.scalar_one()


class TestCreateDeal:

    @pytest.mark.asyncio
    async def test_creates_deal_with_pdf(self, db, make_booking, make_contractor, fake_renderer):
        contractor = await make_contractor(name="Trasporti Neri")
        booking = await make_booking(price=Decimal("1000.00"), contractor_id=contractor.id)
        service = InvoiceDealService(renderer=fake_renderer)

        result = await service.create_deal(db, booking.id)

        assert result.created is True
        assert result.warnings == []
        deal = result.deal
        assert deal.total_amount == Decimal("1180.00")
        assert deal.tax_amount == Decimal("180.00")
        assert deal.remaining_amount == Decimal("1180.00")
        assert deal.status == "issued"
        assert deal.contractor_id == contractor.id
        assert deal.pdf_url.endswith(".pdf")

        snapshot = fake_renderer.calls[0]
        assert snapshot.kind == DocumentKind.DEAL
        assert snapshot.provider.name == "Trasporti Neri"
        assert snapshot.items[0].quantity == Decimal("1")
        assert snapshot.items[0].line_total == Decimal("1000.00")
        assert deal.booking_snapshot["booking_number"] == booking.booking_number

        await db.refresh(booking)
        assert booking.invoice_deal_id == deal.id

    @pytest.mark.asyncio
    async def test_second_call_returns_existing(self, db, make_booking, fake_renderer):
        booking = await make_booking()
        service = InvoiceDealService(renderer=fake_renderer)

        first = await service.create_deal(db, booking.id)
        second = await service.create_deal(db, booking.id)

        assert second.created is False
        assert second.deal.id == first.deal.id
        assert len(fake_renderer.calls) == 1
        assert await _deals_count(db) == 1

    @pytest.mark.asyncio
    async def test_lost_race_returns_the_winner(self, db, session_factory, make_booking, renderer_cls):
        # Gara simulata; quella reale su PostgreSQL è in test_concurrency.py
        booking = await make_booking()
        winner_service = InvoiceDealService(renderer=renderer_cls())
        async with session_factory() as other:
            winner = await winner_service.create_deal(other, booking.id)

        renderer = renderer_cls()
        service = InvoiceDealService(renderer=renderer)
        real_get_by_booking = service.get_by_booking
        calls = []

        async def miss_first_lookup(session, booking_id):
            calls.append(booking_id)
            if len(calls) == 1:
                return None
            return await real_get_by_booking(session, booking_id)

        with patch.object(service, "get_by_booking", new=miss_first_lookup):
            result = await service.create_deal(db, booking.id)

        assert result.created is False
        assert result.deal.id == winner.deal.id
        assert renderer.calls == []
        assert await _deals_count(db) == 1

    @pytest.mark.asyncio
    async def test_missing_booking(self, db, fake_renderer):
        service = InvoiceDealService(renderer=fake_renderer)

        with pytest.raises(MissingBookingError) as exc_info:
            await service.create_deal(db, uuid.uuid4())

        assert exc_info.value.status_code == 404
        assert exc_info.value.error_code == "MISSING_BOOKING"
        assert await _deals_count(db) == 0

    @pytest.mark.asyncio
    async def test_priced_from_catalogue_by_customer_type(
        self, db, make_customer, make_booking, make_service, fake_renderer
    ):
        customer = await make_customer(customer_type="business", business_name="Acme S.p.A.")
        catalogue = await make_service(price_private=Decimal("800.00"), price_business=Decimal("1000.00"))
        booking = await make_booking(customer=customer, price=Decimal("900.00"), service_id=catalogue.id)
        service = InvoiceDealService(renderer=fake_renderer)

        result = await service.create_deal(db, booking.id, DocumentLanguage.HE)

        snapshot = fake_renderer.calls[0]
        assert snapshot.language == DocumentLanguage.HE
        assert snapshot.customer.name == "Acme S.p.A."
        assert snapshot.subtotal_amount == Decimal("1000.00")
        assert result.deal.total_amount == Decimal("1180.00")

    @pytest.mark.asyncio
    async def test_amounts_copied_from_invoice(self, db, make_booking, fake_renderer):
        booking = await make_booking(price=Decimal("1000.00"))
        confirmation = await booking_service.confirm(db, booking.id)
        await payment_service.apply_payments(
            db,
            confirmation.invoice.id,
            [PaymentInput(amount=Decimal("500.00"), method=PaymentMethod.CASH)],
        )
        service = InvoiceDealService(renderer=fake_renderer)

        result = await service.create_deal(db, booking.id)

        assert result.deal.invoice_number == confirmation.invoice.invoice_number
        assert result.deal.paid_amount == Decimal("500.00")
        assert result.deal.remaining_amount == Decimal("680.00")


class TestPdfFailures:

    @pytest.mark.asyncio
    async def test_timeout_keeps_deal_then_regenerate(self, db, make_booking, renderer_cls):
        booking = await make_booking()
        service = InvoiceDealService(renderer=renderer_cls(delay=1.0), timeout=0.05)

        result = await service.create_deal(db, booking.id)

        assert result.created is True
        assert result.deal.pdf_url is None
        assert len(result.warnings) == 1
        assert await _deals_count(db) == 1

        service._renderer = renderer_cls()
        regenerated = await service.regenerate_pdf(db, result.deal.id)

        assert regenerated.created is False
        assert regenerated.deal.id == result.deal.id
        assert regenerated.deal.pdf_url is not None
        assert await _deals_count(db) == 1

    @pytest.mark.asyncio
    async def test_renderer_error_is_a_warning(self, db, make_booking, renderer_cls):
        booking = await make_booking()
        service = InvoiceDealService(renderer=renderer_cls(fail=True))

        result = await service.create_deal(db, booking.id)

        assert result.deal.pdf_url is None
        assert "PDF non generato" in result.warnings[0]

        stored = (await db.execute(select(Booking).where(Booking.id == booking.id))).scalar_one()
        assert stored.invoice_deal_id == result.deal.id

    @pytest.mark.asyncio
    async def test_regenerate_surfaces_failure(self, db, make_booking, renderer_cls):
        booking = await make_booking()
        service = InvoiceDealService(renderer=renderer_cls(fail=True))
        result = await service.create_deal(db, booking.id)

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await service.regenerate_pdf(db, result.deal.id)

        assert exc_info.value.retryable is True
        assert await _deals_count(db) == 1

    @pytest.mark.asyncio
    async def test_regenerate_unknown_deal(self, db, fake_renderer):
        service = InvoiceDealService(renderer=fake_renderer)

        with pytest.raises(NotFoundError):
            await service.regenerate_pdf(db, uuid.uuid4())
