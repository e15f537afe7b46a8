"""
Service Layer per l'Invoice Deal
Progetto: Fleet Back Office (Gestionale Trasporti)

L'Invoice Deal è il documento riepilogativo bloccato, creato una sola
volta per prenotazione. La creazione avviene in due fasi:
1. commit della riga del deal (con lo snapshot del documento)
2. richiesta del PDF al renderer, fuori da qualsiasi transazione;
   l'esito viene salvato in una transazione separata
"""

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppException,
    ConflictError,
    DuplicateDealError,
    ExternalServiceFailure,
    MissingBookingError,
    NotFoundError,
)
from app.models import Booking, Contractor, Customer, Invoice, InvoiceDeal, Service
from app.models.mixins import utcnow
from app.schemas.invoice_deal import (
    DocumentKind,
    DocumentLanguage,
    DocumentSnapshot,
    InvoiceDealRead,
    InvoiceDealResult,
    LineItemSnapshot,
    PartySnapshot,
)
from app.services.invoice_service import compute_tax, invoice_service, quantize_money
from app.services.pdf_service import PdfRenderer, get_pdf_renderer

# Logger per questo modulo
logger = logging.getLogger(__name__)


class InvoiceDealService:
    """
    Service per la creazione idempotente dell'Invoice Deal.

    Al massimo un deal per prenotazione, anche con richieste
    concorrenti: vincolo unique su booking_id + rilettura della
    riga vincente in caso di IntegrityError.
    """

    def __init__(
        self,
        renderer: Optional[PdfRenderer] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._renderer = renderer
        self.timeout = timeout or settings.pdf_timeout_seconds

    @property
    def renderer(self) -> PdfRenderer:
        if self._renderer is None:
            self._renderer = get_pdf_renderer()
        return self._renderer

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

    async def get_by_id(self, db: AsyncSession, deal_id: uuid.UUID) -> InvoiceDeal:
        """
        Recupera un deal per ID.

        Raises:
            NotFoundError: Deal non trovato
        """
        result = await db.execute(select(InvoiceDeal).where(InvoiceDeal.id == deal_id))
        deal = result.scalar_one_or_none()

        if not deal:
            raise NotFoundError(f"Invoice deal {deal_id} non trovato")

        return deal

    async def get_by_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
    ) -> Optional[InvoiceDeal]:
        result = await db.execute(
            select(InvoiceDeal)
            .where(InvoiceDeal.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------

    async def create_deal(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        language: Optional[DocumentLanguage] = None,
    ) -> InvoiceDealResult:
        """
        Get-or-create del deal della prenotazione.

        Steps:
        1. Se il deal esiste già lo restituisce invariato (created=False)
        2. Costruisce lo snapshot del documento
        3. Inserisce il deal in un SAVEPOINT e imposta booking.invoice_deal_id
        4. Commit
        5. Richiede il PDF (best-effort, con timeout); un errore
           diventa warning e pdf_url resta vuoto

        Raises:
            MissingBookingError: Prenotazione o cliente non trovati
        """
        existing = await self.get_by_booking(db, booking_id)
        if existing is not None:
            logger.debug("Invoice deal già presente per la prenotazione %s", booking_id)
            return InvoiceDealResult(deal=InvoiceDealRead.model_validate(existing), created=False)

        try:
            booking = await self._get_booking(db, booking_id)
            snapshot = await self.build_snapshot(db, booking, language)

            deal = InvoiceDeal(
                booking_id=booking.id,
                contractor_id=booking.contractor_id,
                invoice_number=snapshot.document_number,
                booking_snapshot=snapshot.model_dump(mode="json"),
                tax_amount=snapshot.tax_amount,
                total_amount=snapshot.total_amount,
                paid_amount=snapshot.paid_amount,
                remaining_amount=snapshot.remaining_amount,
                status="issued",
            )

            try:
                await self._insert(db, deal)
            except DuplicateDealError:
                winner = await self.get_by_booking(db, booking_id)
                if winner is None:
                    logger.error("Invoice deal duplicato ma non rileggibile: %s", booking_id)
                    raise ConflictError("Errore durante la creazione dell'invoice deal")
                logger.info(
                    "Invoice deal per la prenotazione %s già creato da una richiesta concorrente",
                    booking_id,
                )
                result = InvoiceDealResult(deal=InvoiceDealRead.model_validate(winner), created=False)
                await db.commit()
                return result

            if booking.invoice_deal_id is None:
                booking.invoice_deal_id = deal.id
            await db.commit()
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        logger.info("Creato invoice deal %s per la prenotazione %s", deal.id, booking.booking_number)

        warnings: list[str] = []
        try:
            await self._attach_pdf(db, deal, snapshot)
        except ExternalServiceFailure as e:
            logger.warning("PDF non generato per l'invoice deal %s: %s", deal.id, e.detail)
            warnings.append(f"PDF non generato: {e.detail}")
        except SQLAlchemyError as e:
            logger.warning("URL del PDF non salvato per l'invoice deal %s: %s", deal.id, e)
            warnings.append("URL del PDF non salvato")
            await db.refresh(deal)

        return InvoiceDealResult(
            deal=InvoiceDealRead.model_validate(deal),
            created=True,
            warnings=warnings,
        )

    async def regenerate_pdf(
        self,
        db: AsyncSession,
        deal_id: uuid.UUID,
    ) -> InvoiceDealResult:
        """
        Rigenera il PDF di un deal esistente dallo snapshot salvato.

        Non crea mai un nuovo deal.

        Raises:
            NotFoundError: Deal non trovato
            ExternalServiceFailure: Renderer non disponibile
        """
        deal = await self.get_by_id(db, deal_id)
        snapshot = DocumentSnapshot.model_validate(deal.booking_snapshot)
        # Nessuna transazione aperta durante la chiamata al renderer
        await db.commit()

        await self._attach_pdf(db, deal, snapshot)
        return InvoiceDealResult(deal=InvoiceDealRead.model_validate(deal), created=False)

    async def _attach_pdf(
        self,
        db: AsyncSession,
        deal: InvoiceDeal,
        snapshot: DocumentSnapshot,
    ) -> None:
        """Richiede il PDF e salva l'URL in una transazione separata."""
        pdf_url = await self._render(snapshot)

        try:
            deal.pdf_url = pdf_url
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        logger.info("PDF associato all'invoice deal %s", deal.id)

    async def _render(self, snapshot: DocumentSnapshot) -> str:
        try:
            return await asyncio.wait_for(
                self.renderer.render(snapshot),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceFailure(
                f"Timeout del servizio PDF dopo {self.timeout}s"
            ) from e

    async def _insert(self, db: AsyncSession, deal: InvoiceDeal) -> None:
        try:
            async with db.begin_nested():
                db.add(deal)
                await db.flush()
        except IntegrityError as e:
            raise DuplicateDealError(extra={"booking_id": str(deal.booking_id)}) from e

    # ------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------

    async def _get_booking(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise MissingBookingError(f"Prenotazione {booking_id} non trovata")
        return booking

    async def build_snapshot(
        self,
        db: AsyncSession,
        booking: Booking,
        language: Optional[DocumentLanguage] = None,
    ) -> DocumentSnapshot:
        """
        Costruisce lo snapshot autosufficiente del documento.

        Gli importi vengono dalla fattura della prenotazione se esiste,
        altrimenti dal listino (prezzo per tipo cliente, in mancanza il
        prezzo della prenotazione) più l'imposta ad aliquota fissa.

        Raises:
            MissingBookingError: Cliente della prenotazione non trovato
        """
        customer = await db.get(Customer, booking.customer_id)
        if customer is None:
            raise MissingBookingError(
                f"Cliente della prenotazione {booking.booking_number} non trovato",
                extra={"booking_id": str(booking.id)},
            )

        contractor: Optional[Contractor] = None
        if booking.contractor_id is not None:
            contractor = await db.get(Contractor, booking.contractor_id)

        service: Optional[Service] = None
        if booking.service_id is not None:
            service = await db.get(Service, booking.service_id)

        invoice: Optional[Invoice] = await invoice_service.get_by_booking(db, booking.id)

        if invoice is not None:
            document_number = invoice.invoice_number
            subtotal = invoice.subtotal_amount
            tax = invoice.tax_amount
            total = invoice.total_amount
            paid = invoice.paid_amount
            remaining = invoice.remaining_amount
            service_name = invoice.service_name or (service.name if service else None)
        else:
            document_number = f"DEAL-{booking.booking_number}"
            unit_price = booking.price
            if service is not None and service.price_for(customer.customer_type) > 0:
                unit_price = service.price_for(customer.customer_type)
            subtotal = quantize_money(unit_price)
            tax = compute_tax(subtotal)
            total = subtotal + tax
            paid = Decimal("0.00")
            remaining = total
            service_name = service.name if service else None

        description = service_name or f"Prenotazione {booking.booking_number}"

        return DocumentSnapshot(
            kind=DocumentKind.DEAL,
            language=language or DocumentLanguage(settings.pdf_default_language),
            document_number=document_number,
            issued_at=utcnow(),
            booking_id=booking.id,
            booking_number=booking.booking_number,
            service_address=booking.service_address,
            scheduled_at=booking.scheduled_at,
            customer=PartySnapshot(
                id=customer.id,
                name=customer.display_name,
                tax_id=customer.tax_id,
                phone=customer.phone,
                email=customer.email,
                address=customer.address,
            ),
            provider=PartySnapshot(
                id=contractor.id,
                name=contractor.name,
                phone=contractor.phone,
                email=contractor.email,
            ) if contractor else None,
            company=PartySnapshot(
                name=settings.invoice_company_name,
                tax_id=settings.invoice_company_tax_id or None,
                phone=settings.invoice_phone or None,
                email=settings.invoice_email or None,
                address=settings.invoice_address or None,
            ),
            service_name=service_name,
            items=[
                LineItemSnapshot(
                    description=description,
                    quantity=Decimal("1"),
                    unit_price=subtotal,
                    line_total=subtotal,
                )
            ],
            subtotal_amount=subtotal,
            tax_rate=settings.tax_rate if tax is not None else None,
            tax_amount=tax,
            total_amount=total,
            paid_amount=paid,
            remaining_amount=remaining,
        )


invoice_deal_service = InvoiceDealService()
