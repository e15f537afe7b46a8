"""
Service Layer per i Pagamenti
Progetto: Fleet Back Office (Gestionale Trasporti)

Applica i pagamenti alle fatture. Ogni chiamata è tutto-o-niente:
se un pagamento del lotto viene rifiutato non ne viene registrato nessuno.
"""

import logging
import uuid
from decimal import Decimal
from typing import Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AppException,
    BusinessValidationError,
    ConflictError,
    InvalidAmountError,
)
from app.models import Booking, Invoice, Payment
from app.models.mixins import utcnow
from app.schemas.invoice import (
    InvoiceRead,
    PaymentApplicationResult,
    PaymentInput,
    PaymentRead,
)
from app.services.balance_service import balance_service
from app.services.invoice_service import (
    invoice_service,
    quantize_money,
    recompute_balance,
    sync_booking_payment_flag,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)


class PaymentService:
    """
    Service per la registrazione dei pagamenti.

    Regole:
    - importo > 0 (altrimenti InvalidAmountError, nessuna scrittura)
    - il pagatore è il trasportatore se contractor_id è valorizzato,
      altrimenti il cliente della prenotazione
    - un pagamento a nome del trasportatore deve riferirsi al
      trasportatore assegnato alla prenotazione
    - il sovrapagamento è ammesso e diventa credito del cliente
    """

    def validate_inputs(self, payments: Sequence[PaymentInput]) -> None:
        """
        Valida gli importi di tutto il lotto prima di qualsiasi scrittura.

        Raises:
            InvalidAmountError: Importo nullo o negativo
        """
        for index, payment in enumerate(payments):
            if payment.amount <= 0:
                raise InvalidAmountError(
                    f"Importo del pagamento non valido: {payment.amount}",
                    extra={"index": index, "amount": str(payment.amount)},
                )

    async def apply_payments(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        payments: Sequence[PaymentInput],
    ) -> PaymentApplicationResult:
        """
        Applica uno o più pagamenti alla fattura, in un'unica transazione.

        Steps:
        1. Valida gli importi
        2. Blocca prenotazione e poi fattura (SELECT ... FOR UPDATE),
           nello stesso ordine usato da InvoiceService
        3. Registra i pagamenti e aggiorna pagato/residuo/stato
        4. Allinea il flag della prenotazione e i saldi trasportatore
        5. Commit

        Raises:
            InvalidAmountError: Importo non positivo
            NotFoundError: Fattura non trovata
            BusinessValidationError: Trasportatore non coerente con la prenotazione
        """
        self.validate_inputs(payments)

        try:
            # Lettura senza lock solo per risalire alla prenotazione
            invoice = await invoice_service.get_by_id(db, invoice_id)
            booking = await invoice_service.lock_booking(db, invoice.booking_id)
            invoice = await invoice_service.get_by_id(db, invoice_id, for_update=True)

            rows = await self.apply_in_tx(db, invoice, booking, payments)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error(f"Errore di integrità durante registrazione pagamenti: {e}")
            raise ConflictError("Errore durante la registrazione dei pagamenti")
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        paid_sum = sum((row.amount for row in rows), Decimal("0.00"))
        remaining = invoice.remaining_amount
        excess = -remaining if remaining < 0 else Decimal("0.00")

        return PaymentApplicationResult(
            invoice=InvoiceRead.model_validate(invoice),
            payments=[PaymentRead.model_validate(row) for row in rows],
            paid_sum=quantize_money(paid_sum),
            excess=excess,
            remaining=remaining,
        )

    async def apply_in_tx(
        self,
        db: AsyncSession,
        invoice: Invoice,
        booking: Booking,
        payments: Sequence[PaymentInput],
    ) -> list[Payment]:
        """
        Registra i pagamenti senza commit.

        Il chiamante deve detenere il lock su fattura e prenotazione.
        """
        self.validate_inputs(payments)

        rows: list[Payment] = []
        for data in payments:
            if data.contractor_id is not None and data.contractor_id != booking.contractor_id:
                raise BusinessValidationError(
                    "Il pagamento è intestato a un trasportatore diverso da quello della prenotazione",
                    error_code="CONTRACTOR_MISMATCH",
                    extra={
                        "contractor_id": str(data.contractor_id),
                        "booking_contractor_id": str(booking.contractor_id) if booking.contractor_id else None,
                    },
                )

            row = Payment(
                invoice_id=invoice.id,
                booking_id=booking.id,
                customer_id=None if data.contractor_id else booking.customer_id,
                contractor_id=data.contractor_id,
                amount=quantize_money(data.amount),
                method=data.method.value,
                transaction_id=data.transaction_id,
                notes=data.notes,
                paid_at=data.paid_at or utcnow(),
            )
            db.add(row)
            rows.append(row)

        invoice.paid_amount = quantize_money(
            invoice.paid_amount + sum((row.amount for row in rows), Decimal("0.00"))
        )
        recompute_balance(invoice)
        sync_booking_payment_flag(booking, invoice)
        await db.flush()

        for row in rows:
            await balance_service.on_payment_recorded(db, row)

        logger.info(
            "Registrati %d pagamenti sulla fattura %s: pagato %s, residuo %s",
            len(rows),
            invoice.invoice_number,
            invoice.paid_amount,
            invoice.remaining_amount,
        )
        return rows

    async def list_for_invoice(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
    ) -> list[Payment]:
        """Pagamenti registrati sulla fattura."""
        return await invoice_service.list_payments(db, invoice_id)


payment_service = PaymentService()
