"""
Modelli SQLAlchemy per l'anagrafica
Progetto: Fleet Back Office (Gestionale Trasporti)

Contiene:
- Customer: cliente che prenota il servizio (privato o azienda)
- Contractor: trasportatore esterno a cui viene assegnata la prenotazione
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i clienti.

    Il saldo del cliente NON è memorizzato: viene sempre ricalcolato
    da prenotazioni e pagamenti (vedi BalanceService.customer_balance).

    Attributes:
        name: Nome e cognome o referente
        customer_type: private | business (determina il listino)
        business_name: Ragione sociale (solo business)
        tax_id: Codice fiscale / partita IVA
    """

    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="private",
        doc="Tipo cliente: private, business",
    )
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_customers_name", "name"),
        CheckConstraint(
            "customer_type IN ('private', 'business')",
            name="ck_customers_customer_type",
        ),
    )

    @property
    def display_name(self) -> str:
        """Nome da stampare sui documenti."""
        if self.customer_type == "business" and self.business_name:
            return self.business_name
        return self.name

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.name}, type={self.customer_type})>"


class Contractor(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i trasportatori.

    Il saldo è memorizzato e rappresenta quanto l'azienda deve al
    trasportatore al netto dei pagamenti registrati: viene decrementato
    alla conferma di una prenotazione assegnata e incrementato a ogni
    pagamento registrato a suo nome. Va modificato SOLO con UPDATE
    atomici (vedi BalanceService), mai con read-modify-write in Python.
    """

    __tablename__ = "contractors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Saldo corrente del trasportatore",
    )

    def __repr__(self) -> str:
        return f"<Contractor(id={self.id}, name={self.name})>"
