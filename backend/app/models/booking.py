"""
Modelli SQLAlchemy per le Prenotazioni
Progetto: Fleet Back Office (Gestionale Trasporti)

Contiene:
- Booking: ordine di servizio del cliente
- BookingTrack: storico append-only dei cambi di stato
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import (
    CreatedAtMixin,
    TimestampMixin,
    UUIDMixin,
    register_append_only,
)


class Booking(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le prenotazioni.

    Lo stato si modifica SOLO tramite BookingService (macchina a stati);
    una prenotazione non si cancella mai, al massimo passa a 'cancelled'.

    Attributes:
        booking_number: Numero leggibile della prenotazione
        status: pending | confirmed | in_progress | completed | cancelled
        payment_status: unpaid | paid (flag usato dal saldo cliente)
        customer_id: Cliente che ha prenotato
        contractor_id: Trasportatore assegnato (opzionale)
        service_id: Servizio a listino (opzionale)
        price: Prezzo concordato con il cliente
        contractor_price: Compenso concordato con il trasportatore
        invoice_deal_id: Riferimento all'Invoice Deal (impostato una sola volta)
    """

    __tablename__ = "bookings"

    booking_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="Stato prenotazione",
    )

    payment_status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="unpaid",
        doc="Flag di pagamento: unpaid, paid",
    )

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    contractor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    service_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Nessuna FK: bookings <-> invoice_deals si riferiscono a vicenda
    invoice_deal_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        doc="UUID dell'Invoice Deal, impostato una sola volta",
    )

    # ------------------------------------------------------------
    # Colonne Dati
    # ------------------------------------------------------------
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    contractor_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    service_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    scheduled_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_bookings_status", "status"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid', 'paid')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("price >= 0", name="ck_bookings_price_positive"),
        CheckConstraint(
            "contractor_price IS NULL OR contractor_price > 0",
            name="ck_bookings_contractor_price_positive",
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, number={self.booking_number}, status={self.status})>"


@register_append_only
class BookingTrack(Base, UUIDMixin, CreatedAtMixin):
    """
    Voce dello storico stati di una prenotazione.

    Append-only: UPDATE e DELETE vengono rifiutati a livello ORM.
    created_at è assegnato da AuditTrailService in modo strettamente
    crescente per prenotazione.
    """

    __tablename__ = "booking_tracks"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
    )

    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    new_status: Mapped[str] = mapped_column(String(20), nullable=False)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "created_at", name="uq_booking_tracks_booking_created"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingTrack(booking_id={self.booking_id}, "
            f"{self.old_status} -> {self.new_status})>"
        )
