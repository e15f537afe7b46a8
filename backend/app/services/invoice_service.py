"""
Service Layer per la Fatturazione
Progetto: Fleet Back Office (Gestionale Trasporti)

Definisce la logica di business per la gestione delle fatture:
creazione (una sola per prenotazione) e arricchimento, calcolo
dell'imposta ad aliquota fissa, numerazione e scadenze.
"""

import logging
import random
import string
import time
import uuid
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppException,
    BusinessValidationError,
    ConflictError,
    DuplicateInvoiceError,
    NotFoundError,
)
from app.models import Booking, Invoice, Payment, Service
from app.schemas.booking import BookingPaymentStatus, BookingStatus
from app.schemas.invoice import (
    InvoiceCreate,
    InvoiceCreationResult,
    InvoiceDirection,
    InvoiceFields,
    InvoiceRead,
    InvoiceStatus,
    InvoiceType,
    OverdueRefreshResult,
)
from app.services.sequence_service import invoice_sequence_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# ------------------------------------------------------------
# Calcoli monetari
# ------------------------------------------------------------

def quantize_money(value) -> Decimal:
    """Arrotonda a 2 decimali (ROUND_HALF_UP)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_tax(subtotal: Decimal, rate: Optional[Decimal] = None) -> Decimal:
    """Imposta ad aliquota fissa, arrotondata al momento del calcolo."""
    if rate is None:
        rate = settings.tax_rate
    return quantize_money(subtotal * rate)


def compute_amounts(
    invoice_type: InvoiceType,
    base_amount: Decimal,
) -> tuple[Decimal, Optional[Decimal], Decimal]:
    """
    Calcola (imponibile, imposta, totale) per il tipo di documento.

    - tax_invoice / tax_invoice_receipt: imposta = imponibile * aliquota
    - general: nessuna imposta, totale = imponibile
    - receipt_only: nessuna distinzione imponibile/totale, totale = importo
    """
    base_amount = quantize_money(base_amount)
    if invoice_type.is_taxed:
        tax = compute_tax(base_amount)
        return base_amount, tax, base_amount + tax
    return base_amount, None, base_amount


def recompute_balance(invoice: Invoice, today: Optional[date] = None) -> None:
    """
    Ricalcola residuo e stato della fattura.

    remaining = total - paid (negativo = credito cliente);
    lo stato diventa 'paid' se e solo se remaining <= 0.
    """
    today = today or date.today()
    invoice.remaining_amount = quantize_money(invoice.total_amount - invoice.paid_amount)
    if invoice.remaining_amount <= 0:
        invoice.status = InvoiceStatus.PAID.value
    elif invoice.due_date < today:
        invoice.status = InvoiceStatus.OVERDUE.value
    else:
        invoice.status = InvoiceStatus.PENDING.value


def sync_booking_payment_flag(booking: Booking, invoice: Invoice) -> None:
    """Allinea il flag payment_status della prenotazione allo stato della fattura."""
    if invoice.status == InvoiceStatus.PAID.value:
        booking.payment_status = BookingPaymentStatus.PAID.value
    else:
        booking.payment_status = BookingPaymentStatus.UNPAID.value


def fallback_invoice_number() -> str:
    """
    Numero alternativo quando la serie non è disponibile.

    <prefisso>-<timestamp ms>-<5 caratteri casuali>: il suffisso
    (non crittografico) riduce le collisioni tra richieste nello stesso ms.
    """
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"{settings.invoice_number_prefix}-{int(time.time() * 1000)}-{suffix}"


class InvoiceService:
    """
    Service per la gestione delle operazioni sulle fatture.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Implementa:
    - Creazione idempotente della fattura di una prenotazione
      (vincolo unique su booking_id + rilettura della riga vincente)
    - Arricchimento della fattura esistente
    - Numerazione progressiva con fallback
    - Aggiornamento fatture scadute

    I metodi `*_in_tx` non fanno commit: partecipano alla transazione
    del chiamante.
    """

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

    async def get_by_id(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        for_update: bool = False,
    ) -> Invoice:
        """
        Recupera una fattura per ID.

        Raises:
            NotFoundError: Fattura non trovata
        """
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()

        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")

        return invoice

    async def get_by_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        """Fattura della prenotazione, None se non ancora creata."""
        stmt = select(Invoice).where(Invoice.booking_id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
    ) -> Booking:
        """
        Blocca la riga della prenotazione (SELECT ... FOR UPDATE).

        Ordine dei lock in tutto il ledger: prenotazione, fattura, serie
        numerica, saldo trasportatore.

        Raises:
            NotFoundError: Prenotazione non trovata
        """
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(f"Prenotazione {booking_id} non trovata")
        return booking

    async def list_payments(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
    ) -> list[Payment]:
        """Pagamenti registrati sulla fattura, in ordine cronologico."""
        await self.get_by_id(db, invoice_id)
        result = await db.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.paid_at.asc(), Payment.created_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Creazione / arricchimento
    # ------------------------------------------------------------

    async def ensure_invoice(
        self,
        db: AsyncSession,
        booking: Booking,
        invoice_type: InvoiceType = InvoiceType.TAX_INVOICE,
        fields: Optional[InvoiceFields] = None,
    ) -> tuple[Invoice, bool]:
        """
        Crea la fattura della prenotazione oppure arricchisce quella esistente, e fa commit.

        Args:
            db: Sessione database
            booking: Prenotazione da fatturare
            invoice_type: Tipo documento (usato solo in creazione)
            fields: Campi descrittivi/importo opzionali

        Returns:
            tuple[Invoice, bool]: la fattura e True se è stata creata ora
        """
        try:
            booking = await self.lock_booking(db, booking.id)
            invoice, created = await self.ensure_invoice_in_tx(db, booking, invoice_type, fields)
            await db.commit()
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise
        return invoice, created

    async def ensure_invoice_in_tx(
        self,
        db: AsyncSession,
        booking: Booking,
        invoice_type: InvoiceType = InvoiceType.TAX_INVOICE,
        fields: Optional[InvoiceFields] = None,
    ) -> tuple[Invoice, bool]:
        """
        Versione senza commit di ensure_invoice.

        Il chiamante deve detenere il lock sulla prenotazione (lock_booking).

        Steps:
        1. Cerca la fattura per booking_id: se esiste la arricchisce
        2. Altrimenti la costruisce (numero, importi, scadenza)
        3. Inserisce dentro un SAVEPOINT
        4. Se un creatore concorrente ha vinto (DuplicateInvoiceError)
           rilegge la sua riga e la arricchisce
        5. Se il conflitto era sul numero fattura riprova una volta
           con un numero alternativo
        """
        fields = fields or InvoiceFields()

        existing = await self.get_by_booking(db, booking.id, for_update=True)
        if existing is not None:
            await self._enrich(db, existing, booking, fields)
            return existing, False

        invoice = await self._build_invoice(db, booking, invoice_type, fields)

        for attempt in range(2):
            try:
                await self._insert(db, invoice)
            except DuplicateInvoiceError:
                winner = await self.get_by_booking(db, booking.id, for_update=True)
                if winner is not None:
                    logger.info(
                        "Fattura per la prenotazione %s già creata da una richiesta concorrente: %s",
                        booking.id,
                        winner.invoice_number,
                    )
                    await self._enrich(db, winner, booking, fields)
                    return winner, False
                if attempt == 1:
                    logger.error(
                        "Impossibile creare la fattura per la prenotazione %s: numero duplicato",
                        booking.id,
                    )
                    raise ConflictError("Errore durante la creazione della fattura")
                invoice = await self._build_invoice(
                    db, booking, invoice_type, fields, invoice_number=fallback_invoice_number()
                )
            else:
                break

        logger.info(
            "Creata fattura %s per la prenotazione %s (totale %s)",
            invoice.invoice_number,
            booking.id,
            invoice.total_amount,
        )
        return invoice, True

    async def _insert(self, db: AsyncSession, invoice: Invoice) -> None:
        """Inserisce la fattura in un SAVEPOINT; un vincolo unique violato diventa DuplicateInvoiceError."""
        try:
            async with db.begin_nested():
                db.add(invoice)
                await db.flush()
        except IntegrityError as e:
            raise DuplicateInvoiceError(
                extra={"booking_id": str(invoice.booking_id), "invoice_number": invoice.invoice_number}
            ) from e

    async def _next_invoice_number(self, db: AsyncSession) -> str:
        try:
            return await invoice_sequence_service.next_invoice_number(db)
        except SQLAlchemyError as e:
            number = fallback_invoice_number()
            logger.warning("Serie fatture non disponibile (%s), uso il numero %s", e, number)
            return number

    async def _build_invoice(
        self,
        db: AsyncSession,
        booking: Booking,
        invoice_type: InvoiceType,
        fields: InvoiceFields,
        invoice_number: Optional[str] = None,
    ) -> Invoice:
        """Costruisce (senza aggiungerla alla sessione) una nuova fattura per la prenotazione."""
        base_amount = fields.amount if fields.amount is not None else booking.price
        subtotal, tax, total = compute_amounts(invoice_type, base_amount)
        service = await self._get_service(db, booking.service_id)

        invoice = Invoice(
            invoice_number=invoice_number or await self._next_invoice_number(db),
            booking_id=booking.id,
            customer_id=booking.customer_id,
            contractor_id=booking.contractor_id,
            invoice_type=invoice_type.value,
            direction=self._direction(invoice_type, fields).value,
            status=InvoiceStatus.PENDING.value,
            subtotal_amount=subtotal,
            tax_amount=tax,
            total_amount=total,
            paid_amount=Decimal("0.00"),
            remaining_amount=total,
            due_date=date.today() + timedelta(days=settings.invoice_due_days),
            service_name=fields.service_name or (service.name if service else None),
            service_description=fields.service_description or (service.description if service else None),
            bill_description=fields.bill_description,
            notes=fields.notes or booking.notes,
            commission=fields.commission,
            custom_amount=fields.amount,
        )
        return invoice

    async def _enrich(
        self,
        db: AsyncSession,
        invoice: Invoice,
        booking: Booking,
        fields: InvoiceFields,
    ) -> None:
        """
        Arricchisce una fattura esistente dallo stato attuale della prenotazione.

        Importi e campi descrittivi vengono ricalcolati (mai azzerati),
        il tipo documento resta quello di creazione, il trasportatore
        viene impostato solo se ancora vuoto.

        Un importo esplicito (ora o in creazione) prevale sul prezzo
        della prenotazione e resta memorizzato sulla fattura.
        """
        invoice_type = InvoiceType(invoice.invoice_type)
        if fields.amount is not None:
            invoice.custom_amount = fields.amount
        base_amount = invoice.custom_amount if invoice.custom_amount is not None else booking.price
        subtotal, tax, total = compute_amounts(invoice_type, base_amount)
        service = await self._get_service(db, booking.service_id)

        invoice.subtotal_amount = subtotal
        invoice.tax_amount = tax
        invoice.total_amount = total
        invoice.direction = self._direction(
            invoice_type, fields, current=invoice.direction
        ).value

        if fields.service_name or service:
            invoice.service_name = fields.service_name or service.name
        if fields.service_description or (service and service.description):
            invoice.service_description = fields.service_description or service.description
        if fields.notes or booking.notes:
            invoice.notes = fields.notes or booking.notes
        if fields.bill_description:
            invoice.bill_description = fields.bill_description
        if fields.commission is not None:
            invoice.commission = fields.commission

        if invoice.contractor_id is None and booking.contractor_id is not None:
            invoice.contractor_id = booking.contractor_id

        recompute_balance(invoice)
        sync_booking_payment_flag(booking, invoice)
        await db.flush()

        logger.info("Arricchita fattura %s (totale %s)", invoice.invoice_number, invoice.total_amount)

    @staticmethod
    def _direction(
        invoice_type: InvoiceType,
        fields: InvoiceFields,
        current: Optional[str] = None,
    ) -> InvoiceDirection:
        """La fattura fiscale è sempre 'negative'; gli altri tipi seguono la richiesta."""
        if invoice_type == InvoiceType.TAX_INVOICE:
            return InvoiceDirection.NEGATIVE
        if fields.direction is not None:
            return fields.direction
        if current is not None:
            return InvoiceDirection(current)
        return InvoiceDirection.POSITIVE

    async def _get_service(
        self,
        db: AsyncSession,
        service_id: Optional[uuid.UUID],
    ) -> Optional[Service]:
        if service_id is None:
            return None
        result = await db.execute(select(Service).where(Service.id == service_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------
    # Creazione da API
    # ------------------------------------------------------------

    async def create_invoice(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        data: InvoiceCreate,
    ) -> InvoiceCreationResult:
        """
        Crea la fattura di una prenotazione (idempotente).

        Per i tipi ricevuta i pagamenti contestuali sono applicati nella
        stessa transazione della creazione. Se la fattura esisteva già
        viene arricchita e i pagamenti NON vengono riapplicati.

        Raises:
            NotFoundError: Prenotazione non trovata
            BusinessValidationError: Prenotazione annullata
            InvalidAmountError: Pagamento non positivo
        """
        from app.schemas.invoice import PaymentRead
        from app.services.payment_service import payment_service

        warnings: list[str] = []
        payment_rows: list[Payment] = []

        try:
            booking = await self.lock_booking(db, booking_id)
            if booking.status == BookingStatus.CANCELLED.value:
                raise BusinessValidationError(
                    f"La prenotazione {booking.booking_number} è annullata e non può essere fatturata"
                )

            if data.payments:
                payment_service.validate_inputs(data.payments)

            invoice, created = await self.ensure_invoice_in_tx(
                db, booking, data.invoice_type, data
            )

            if not created and invoice.invoice_type != data.invoice_type.value:
                warnings.append(
                    f"Fattura già esistente di tipo '{invoice.invoice_type}': tipo richiesto ignorato"
                )

            if data.payments:
                if created:
                    payment_rows = await payment_service.apply_in_tx(
                        db, invoice, booking, data.payments
                    )
                else:
                    warnings.append(
                        "Fattura già esistente: i pagamenti contestuali non sono stati applicati"
                    )

            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error(f"Errore di integrità durante creazione fattura: {e}")
            raise ConflictError("Errore durante la creazione della fattura")
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        return InvoiceCreationResult(
            invoice=InvoiceRead.model_validate(invoice),
            created=created,
            payments=[PaymentRead.model_validate(p) for p in payment_rows],
            warnings=warnings,
        )

    # ------------------------------------------------------------
    # Scadenze
    # ------------------------------------------------------------

    async def refresh_overdue(
        self,
        db: AsyncSession,
        today: Optional[date] = None,
    ) -> OverdueRefreshResult:
        """
        Marca come 'overdue' le fatture pending scadute con residuo positivo.

        Filtro: status = pending AND due_date < today AND remaining_amount > 0
        """
        today = today or date.today()

        result = await db.execute(
            select(Invoice)
            .where(
                Invoice.status == InvoiceStatus.PENDING.value,
                Invoice.due_date < today,
                Invoice.remaining_amount > 0,
            )
            .with_for_update()
            .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        )
        invoices = list(result.scalars().all())

        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE.value

        await db.commit()

        if invoices:
            logger.info("Fatture marcate come scadute: %d", len(invoices))

        return OverdueRefreshResult(
            updated=len(invoices),
            invoice_ids=[invoice.id for invoice in invoices],
        )


invoice_service = InvoiceService()
