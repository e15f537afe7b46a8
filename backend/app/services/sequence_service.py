"""
Service per la numerazione progressiva dei documenti
Progetto: Fleet Back Office (Gestionale Trasporti)
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models import InvoiceSequence

# Logger per questo modulo
logger = logging.getLogger(__name__)


class InvoiceSequenceService:
    """
    Genera numeri fattura progressivi annuali.

    Formato: <prefisso>-YYYY-NNNNN (es. INV-2026-00001)

    Il contatore è una riga di `invoice_sequences` letta con
    SELECT ... FOR UPDATE dentro un SAVEPOINT: se l'incremento
    fallisce viene annullato solo il savepoint e il chiamante
    può ripiegare su un numero alternativo.
    """

    async def next_invoice_number(
        self,
        db: AsyncSession,
        issue_date: Optional[date] = None,
    ) -> str:
        """
        Restituisce il prossimo numero della serie dell'anno.

        Args:
            db: Sessione database
            issue_date: Data di emissione (default: oggi)

        Returns:
            str: Numero fattura formattato
        """
        issue_date = issue_date or date.today()
        name = f"invoice-{issue_date.year}"

        async with db.begin_nested():
            result = await db.execute(
                select(InvoiceSequence)
                .where(InvoiceSequence.name == name)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            sequence = result.scalar_one_or_none()

            if sequence is None:
                sequence = InvoiceSequence(name=name, current_value=0)
                db.add(sequence)

            sequence.current_value += 1
            await db.flush()
            value = sequence.current_value

        logger.debug("Serie %s: assegnato progressivo %s", name, value)
        return f"{settings.invoice_number_prefix}-{issue_date.year}-{value:05d}"


invoice_sequence_service = InvoiceSequenceService()
