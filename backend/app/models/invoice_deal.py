"""
Modello SQLAlchemy per l'Invoice Deal
Progetto: Fleet Back Office (Gestionale Trasporti)

L'Invoice Deal è il documento riepilogativo bloccato, prodotto una sola
volta per prenotazione. A differenza della fattura non viene mai
arricchito: gli importi e lo snapshot restano quelli della creazione.
"""

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class InvoiceDeal(Base, UUIDMixin, TimestampMixin):
    """
    Modello per gli Invoice Deal.

    Attributes:
        booking_id: Prenotazione (unique: al massimo un deal per prenotazione)
        invoice_number: Numero documento
        booking_snapshot: Snapshot autosufficiente (cliente, fornitore, righe, totali)
        status: issued
        pdf_url: URL del PDF, None finché il servizio di rendering non risponde
    """

    __tablename__ = "invoice_deals"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    contractor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="SET NULL"),
        nullable=True,
    )

    invoice_number: Mapped[str] = mapped_column(String(40), nullable=False)

    booking_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="issued")

    pdf_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('issued')", name="ck_invoice_deals_status"),
    )

    def __repr__(self) -> str:
        return f"<InvoiceDeal(id={self.id}, booking_id={self.booking_id}, pdf={self.pdf_url})>"
