"""
Modello SQLAlchemy per il catalogo servizi
Progetto: Fleet Back Office (Gestionale Trasporti)
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Service(Base, UUIDMixin, TimestampMixin):
    """
    Servizio a listino (es. trasloco, trasporto container).

    Ha due prezzi: uno per i clienti privati e uno per le aziende.
    Usato per prezzare l'Invoice Deal quando la prenotazione non ha
    ancora una fattura.
    """

    __tablename__ = "services"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_private: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    price_business: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price_private >= 0", name="ck_services_price_private_positive"),
        CheckConstraint("price_business >= 0", name="ck_services_price_business_positive"),
    )

    def price_for(self, customer_type: str) -> Decimal:
        """Prezzo di listino per il tipo cliente."""
        if customer_type == "business":
            return self.price_business
        return self.price_private

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name})>"
