"""
Modelli SQLAlchemy per la Fatturazione
Progetto: Fleet Back Office (Gestionale Trasporti)

Contiene:
- Invoice: Fattura della prenotazione (al massimo una per prenotazione)
- Payment: Pagamenti registrati sulla fattura (immutabili)
- InvoiceSequence: Contatori per la numerazione progressiva
"""

from __future__ import annotations

import datetime
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import (
    CreatedAtMixin,
    TimestampMixin,
    UUIDMixin,
    register_append_only,
    utcnow,
)


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le fatture.

    Una fattura è creata una sola volta per prenotazione (vincolo unique
    su booking_id) e può essere arricchita in seguito. Gli importi pagati
    cambiano SOLO registrando nuovi Payment.

    Invariante: remaining_amount == total_amount - paid_amount.
    Un residuo negativo rappresenta credito del cliente.

    Attributes:
        invoice_number: Numero fattura (formato: INV-YYYY-NNNNN)
        booking_id: Prenotazione fatturata (1:1)
        customer_id: Cliente (denormalizzato per velocità query)
        contractor_id: Trasportatore, impostato solo se ancora vuoto
        invoice_type: tax_invoice | receipt_only | general | tax_invoice_receipt
        direction: positive | negative
        status: pending | paid | overdue
        subtotal_amount: Imponibile
        tax_amount: Imposta (None per i tipi senza imposta)
        total_amount: Totale documento
        paid_amount: Somma dei pagamenti registrati
        remaining_amount: Residuo da incassare
        custom_amount: Importo base esplicito, mantenuto negli arricchimenti
        due_date: Data scadenza
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        doc="UUID della prenotazione (relazione 1:1)",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    contractor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    invoice_number: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
    )

    invoice_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="tax_invoice",
    )

    direction: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="positive",
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="pending",
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    commission: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Importo base indicato esplicitamente; None = prezzo della prenotazione
    custom_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # ------------------------------------------------------------
    # Colonne Descrittive
    # ------------------------------------------------------------
    service_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    bill_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_invoices_customer_id", "customer_id"),
        Index("ix_invoices_status_due_date", "status", "due_date"),
        CheckConstraint(
            "invoice_type IN ('tax_invoice', 'receipt_only', 'general', 'tax_invoice_receipt')",
            name="ck_invoices_invoice_type",
        ),
        CheckConstraint(
            "direction IN ('positive', 'negative')",
            name="ck_invoices_direction",
        ),
        CheckConstraint(
            "status IN ('pending', 'paid', 'overdue')",
            name="ck_invoices_status",
        ),
        CheckConstraint("subtotal_amount >= 0", name="ck_invoices_subtotal_positive"),
        CheckConstraint("total_amount >= 0", name="ck_invoices_total_positive"),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_positive"),
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, total={self.total_amount})>"


@register_append_only
class Payment(Base, UUIDMixin, CreatedAtMixin):
    """
    Modello per i pagamenti.

    Un pagamento è effettuato dal cliente (customer_id) oppure da/per
    il trasportatore (contractor_id). Immutabile una volta creato.
    """

    __tablename__ = "payments"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
    )

    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    contractor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    method: Mapped[str] = mapped_column(String(20), nullable=False)

    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    paid_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "method IN ('cash', 'credit_card', 'bank_transfer', 'check')",
            name="ck_payments_method",
        ),
        CheckConstraint(
            "customer_id IS NOT NULL OR contractor_id IS NOT NULL",
            name="ck_payments_payer_present",
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount})>"


class InvoiceSequence(Base, UUIDMixin, TimestampMixin):
    """
    Contatore per la numerazione progressiva (una riga per serie/anno).

    Letto con SELECT ... FOR UPDATE: le transazioni concorrenti che
    numerano la stessa serie vengono serializzate sulla riga.
    """

    __tablename__ = "invoice_sequences"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<InvoiceSequence(name={self.name}, value={self.current_value})>"
