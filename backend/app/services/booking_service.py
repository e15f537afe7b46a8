"""
Service Layer per le Prenotazioni
Progetto: Fleet Back Office (Gestionale Trasporti)

Gestisce la macchina a stati della prenotazione e la conferma,
che coordina saldo trasportatore, storico e fattura.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AppException,
    BusinessValidationError,
    InvalidAmountError,
    InvalidTransitionError,
    NoOpTransitionError,
    NotFoundError,
)
from app.models import Booking, BookingTrack, Contractor
from app.schemas.booking import (
    BookingConfirmation,
    BookingRead,
    BookingStatus,
    BookingStatusChange,
    BookingTransitionResult,
    ContractorAssignment,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
)
from app.schemas.invoice import InvoiceRead
from app.services.audit_trail_service import audit_trail_service
from app.services.balance_service import balance_service
from app.services.invoice_service import invoice_service

# Logger per questo modulo
logger = logging.getLogger(__name__)


class BookingService:
    """
    Service per la gestione delle prenotazioni.

    Ogni cambio di stato avviene con la riga della prenotazione
    bloccata (SELECT ... FOR UPDATE), così due richieste concorrenti
    sulla stessa prenotazione vengono serializzate.
    """

    async def get_by_id(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
    ) -> Booking:
        """
        Recupera una prenotazione per ID.

        Raises:
            NotFoundError: Prenotazione non trovata
        """
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()

        if not booking:
            logger.warning("Prenotazione non trovata: %s", booking_id)
            raise NotFoundError(f"Prenotazione con ID {booking_id} non trovata")

        return booking

    async def get_tracks(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
    ) -> list[BookingTrack]:
        """Storico stati della prenotazione, dalla voce più recente."""
        await self.get_by_id(db, booking_id)
        return await audit_trail_service.list_for_booking(db, booking_id)

    async def _lock(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()

        if not booking:
            logger.warning("Prenotazione non trovata: %s", booking_id)
            raise NotFoundError(f"Prenotazione con ID {booking_id} non trovata")

        return booking

    def _check_transition(self, booking: Booking, new_status: BookingStatus) -> BookingStatus:
        """
        Valida la transizione usando la matrice VALID_TRANSITIONS.

        Returns:
            BookingStatus: lo stato corrente

        Raises:
            NoOpTransitionError: La prenotazione è già nello stato richiesto
            InvalidTransitionError: Transizione non prevista
        """
        try:
            current_status = BookingStatus(booking.status)
        except ValueError:
            logger.error("Stato invalido nel database: %s", booking.status)
            raise BusinessValidationError(f"Stato invalido: {booking.status}")

        if current_status == new_status:
            raise NoOpTransitionError(
                f"La prenotazione {booking.booking_number} è già '{new_status.value}'"
            )

        if new_status not in VALID_TRANSITIONS.get(current_status, []):
            logger.warning(
                "Transizione non consentita: %s -> %s",
                current_status.value,
                new_status.value,
            )
            raise InvalidTransitionError(
                f"Transizione da '{current_status.value}' a '{new_status.value}' non consentita",
                extra={"from": current_status.value, "to": new_status.value},
            )

        return current_status

    # ------------------------------------------------------------
    # Conferma
    # ------------------------------------------------------------

    async def confirm(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        note: Optional[str] = None,
    ) -> BookingConfirmation:
        """
        Conferma una prenotazione.

        Steps:
        1. Blocca la prenotazione e valida la transizione
        2. Imposta lo stato 'confirmed' e addebita il trasportatore
        3. Scrive lo storico in un SAVEPOINT (un errore diventa warning)
        4. Commit: da qui la conferma è definitiva
        5. Crea o arricchisce la fattura (un errore diventa warning)

        Raises:
            NotFoundError: Prenotazione o trasportatore non trovato
            NoOpTransitionError: Prenotazione già confermata
            InvalidTransitionError: Stato corrente non confermabile
        """
        warnings: list[str] = []

        try:
            booking = await self._lock(db, booking_id)
            current_status = self._check_transition(booking, BookingStatus.CONFIRMED)

            booking.status = BookingStatus.CONFIRMED.value
            await db.flush()

            await balance_service.on_booking_confirmed(db, booking)

            try:
                async with db.begin_nested():
                    await audit_trail_service.append(
                        db,
                        booking.id,
                        current_status.value,
                        BookingStatus.CONFIRMED.value,
                        note,
                    )
            except SQLAlchemyError as e:
                logger.warning(
                    "Storico non registrato per la prenotazione %s: %s", booking_id, e
                )
                warnings.append("Storico stati non registrato per la conferma")

            await db.commit()
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        logger.info("Prenotazione %s confermata", booking.booking_number)

        invoice_read: Optional[InvoiceRead] = None
        try:
            invoice, _ = await invoice_service.ensure_invoice(db, booking)
            invoice_read = InvoiceRead.model_validate(invoice)
        except (SQLAlchemyError, AppException) as e:
            logger.warning(
                "Fattura non creata per la prenotazione %s: %s", booking_id, e
            )
            warnings.append(f"Fattura non creata: {e}")

        # Dopo un eventuale rollback gli attributi sono scaduti
        await db.refresh(booking)

        return BookingConfirmation(
            booking=BookingRead.model_validate(booking),
            invoice=invoice_read,
            warnings=warnings,
        )

    # ------------------------------------------------------------
    # Cambio stato generico
    # ------------------------------------------------------------

    async def set_status(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        data: BookingStatusChange,
    ) -> BookingTransitionResult:
        """
        Cambia lo stato di una prenotazione.

        La conferma passa sempre da confirm(); per gli altri stati
        la voce di storico fa parte della stessa transazione.

        Raises:
            NotFoundError: Prenotazione non trovata
            NoOpTransitionError: Stato già impostato
            InvalidTransitionError: Transizione non consentita
        """
        if data.status == BookingStatus.CONFIRMED:
            confirmation = await self.confirm(db, booking_id, data.note)
            return BookingTransitionResult(
                booking=confirmation.booking,
                warnings=confirmation.warnings,
            )

        try:
            booking = await self._lock(db, booking_id)
            current_status = self._check_transition(booking, data.status)

            booking.status = data.status.value
            await db.flush()

            await audit_trail_service.append(
                db,
                booking.id,
                current_status.value,
                data.status.value,
                data.note,
            )
            await db.commit()
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        logger.info(
            "Cambiato stato prenotazione %s: %s -> %s",
            booking.booking_number,
            current_status.value,
            data.status.value,
        )
        return BookingTransitionResult(booking=BookingRead.model_validate(booking))

    # ------------------------------------------------------------
    # Assegnazione trasportatore
    # ------------------------------------------------------------

    async def assign_contractor(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        data: ContractorAssignment,
    ) -> BookingTransitionResult:
        """
        Assegna (o sostituisce) il trasportatore della prenotazione.

        Lo stato non cambia; nello storico viene registrata una voce
        con stato precedente e nuovo coincidenti.

        Raises:
            InvalidAmountError: Compenso non positivo
            NotFoundError: Prenotazione o trasportatore non trovato
            BusinessValidationError: Prenotazione in stato finale
        """
        if data.contractor_price <= 0:
            raise InvalidAmountError(
                f"Il compenso del trasportatore deve essere positivo: {data.contractor_price}",
                extra={"contractor_price": str(data.contractor_price)},
            )

        try:
            booking = await self._lock(db, booking_id)

            if BookingStatus(booking.status) in TERMINAL_STATUSES:
                raise BusinessValidationError(
                    f"Impossibile assegnare un trasportatore: prenotazione in stato '{booking.status}'"
                )

            result = await db.execute(
                select(Contractor).where(Contractor.id == data.contractor_id)
            )
            contractor = result.scalar_one_or_none()
            if not contractor:
                logger.warning("Trasportatore non trovato: %s", data.contractor_id)
                raise NotFoundError(f"Trasportatore con ID {data.contractor_id} non trovato")

            booking.contractor_id = contractor.id
            booking.contractor_price = data.contractor_price
            await db.flush()

            await audit_trail_service.append(
                db,
                booking.id,
                booking.status,
                booking.status,
                f"Assegnato trasportatore {contractor.name}",
            )
            await db.commit()
        except (SQLAlchemyError, AppException):
            await db.rollback()
            raise

        logger.info(
            "Trasportatore %s assegnato alla prenotazione %s",
            contractor.id,
            booking.booking_number,
        )
        return BookingTransitionResult(booking=BookingRead.model_validate(booking))


booking_service = BookingService()
