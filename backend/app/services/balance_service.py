"""
Service Layer per i saldi clienti e trasportatori
Progetto: Fleet Back Office (Gestionale Trasporti)

- Saldo cliente: DERIVATO, ricalcolato ad ogni lettura da pagamenti e prenotazioni.
- Saldo trasportatore: MEMORIZZATO, modificato solo con UPDATE atomici
  (balance = balance ± importo) per non perdere aggiornamenti concorrenti.
"""

import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models import Booking, Contractor, Customer, Payment
from app.schemas.balance import ContractorBalance, CustomerBalance

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _money(value) -> Decimal:
    """Normalizza un aggregato SQL (Decimal, float, int o None) a 2 decimali."""
    if value is None:
        value = 0
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class BalanceService:
    """
    Service per il calcolo e l'aggiornamento dei saldi.

    Le operazioni che modificano il saldo trasportatore non fanno commit:
    partecipano alla transazione del chiamante (conferma prenotazione,
    registrazione pagamenti).
    """

    # ------------------------------------------------------------
    # Hook chiamati dagli altri service
    # ------------------------------------------------------------

    async def on_booking_confirmed(
        self,
        db: AsyncSession,
        booking: Booking,
    ) -> Optional[Decimal]:
        """
        Addebita al saldo del trasportatore il prezzo della prenotazione confermata.

        Returns:
            Il nuovo saldo, oppure None se la prenotazione non ha trasportatore
        """
        if booking.contractor_id is None:
            return None
        return await self._adjust_contractor_balance(
            db, booking.contractor_id, -booking.price
        )

    async def on_payment_recorded(
        self,
        db: AsyncSession,
        payment: Payment,
    ) -> Optional[Decimal]:
        """
        Accredita al trasportatore un pagamento registrato a suo nome.

        I pagamenti del cliente non modificano nulla: il saldo cliente
        è sempre derivato.
        """
        if payment.contractor_id is None:
            return None
        return await self._adjust_contractor_balance(
            db, payment.contractor_id, payment.amount
        )

    async def _adjust_contractor_balance(
        self,
        db: AsyncSession,
        contractor_id: uuid.UUID,
        delta: Decimal,
    ) -> Decimal:
        """UPDATE contractors SET balance = balance + :delta (atomico lato database)."""
        result = await db.execute(
            update(Contractor)
            .where(Contractor.id == contractor_id)
            .values(balance=Contractor.balance + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Trasportatore {contractor_id} non trovato")

        new_balance = await self._read_contractor_balance(db, contractor_id)
        logger.info(
            "Saldo trasportatore %s aggiornato di %s: %s",
            contractor_id,
            delta,
            new_balance,
        )
        return new_balance

    async def _read_contractor_balance(
        self,
        db: AsyncSession,
        contractor_id: uuid.UUID,
    ) -> Decimal:
        result = await db.execute(
            select(Contractor.balance).where(Contractor.id == contractor_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Trasportatore {contractor_id} non trovato")
        return _money(balance)

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

    async def customer_balance(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
    ) -> CustomerBalance:
        """
        Saldo del cliente: sum(pagamenti) - sum(prezzo prenotazioni non pagate).

        Una prenotazione è "non pagata" se il suo flag payment_status è
        'unpaid'; le prenotazioni annullate non contano. Unica funzione
        canonica: ogni punto che mostra il saldo cliente passa da qui.

        Raises:
            NotFoundError: Cliente non trovato
        """
        exists = await db.execute(select(Customer.id).where(Customer.id == customer_id))
        if exists.scalar_one_or_none() is None:
            raise NotFoundError(f"Cliente {customer_id} non trovato")

        payments_result = await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .where(Payment.customer_id == customer_id)
        )
        total_payments = _money(payments_result.scalar_one())

        unpaid_result = await db.execute(
            select(func.coalesce(func.sum(Booking.price), 0))
            .where(
                Booking.customer_id == customer_id,
                Booking.payment_status == "unpaid",
                Booking.status != "cancelled",
            )
        )
        unpaid_total = _money(unpaid_result.scalar_one())

        return CustomerBalance(
            customer_id=customer_id,
            total_payments=total_payments,
            unpaid_bookings_total=unpaid_total,
            balance=total_payments - unpaid_total,
        )

    async def contractor_balance(
        self,
        db: AsyncSession,
        contractor_id: uuid.UUID,
    ) -> ContractorBalance:
        """Saldo memorizzato del trasportatore."""
        balance = await self._read_contractor_balance(db, contractor_id)
        return ContractorBalance(contractor_id=contractor_id, balance=balance)


balance_service = BalanceService()
