"""
Service Layer per lo storico stati delle prenotazioni
Progetto: Fleet Back Office (Gestionale Trasporti)

Lo storico è append-only: questo service espone solo inserimento
e lettura. I timestamp sono strettamente crescenti per prenotazione.
"""

import datetime
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import BookingTrack
from app.models.mixins import utcnow

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Incremento minimo tra due voci della stessa prenotazione
TIMESTAMP_STEP = datetime.timedelta(microseconds=1)


def next_track_timestamp(
    last: Optional[datetime.datetime],
    now: Optional[datetime.datetime] = None,
) -> datetime.datetime:
    """
    Calcola il timestamp della prossima voce: max(now, last + 1µs).

    Gli orari naive (SQLite non conserva il fuso) sono interpretati come UTC.
    """
    now = now or utcnow()
    if last is None:
        return now
    if last.tzinfo is None:
        last = last.replace(tzinfo=datetime.timezone.utc)
    return max(now, last + TIMESTAMP_STEP)


class AuditTrailService:
    """
    Service per lo storico stati (BookingTrack).

    Il chiamante deve detenere il lock sulla riga della prenotazione:
    è quello che serializza gli inserimenti per la stessa prenotazione.
    """

    async def append(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        old_status: Optional[str],
        new_status: str,
        note: Optional[str] = None,
    ) -> BookingTrack:
        """
        Aggiunge una voce allo storico (flush, senza commit).

        Args:
            db: Sessione database
            booking_id: UUID della prenotazione
            old_status: Stato precedente (None per la prima voce)
            new_status: Nuovo stato
            note: Nota libera

        Returns:
            BookingTrack: La voce inserita
        """
        result = await db.execute(
            select(BookingTrack.created_at)
            .where(BookingTrack.booking_id == booking_id)
            .order_by(BookingTrack.created_at.desc())
            .limit(1)
        )
        last = result.scalar_one_or_none()

        track = BookingTrack(
            booking_id=booking_id,
            old_status=old_status,
            new_status=new_status,
            note=note,
            created_at=next_track_timestamp(last),
        )
        db.add(track)
        await db.flush()

        logger.info(
            "Storico prenotazione %s: %s -> %s",
            booking_id,
            old_status,
            new_status,
        )
        return track

    async def list_for_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
    ) -> list[BookingTrack]:
        """Storico della prenotazione, dalla voce più recente."""
        result = await db.execute(
            select(BookingTrack)
            .where(BookingTrack.booking_id == booking_id)
            .order_by(BookingTrack.created_at.desc())
        )
        return list(result.scalars().all())


audit_trail_service = AuditTrailService()
