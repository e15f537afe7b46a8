"""
Schemas Pydantic per le Prenotazioni
Progetto: Fleet Back Office (Gestionale Trasporti)

Definisce la macchina a stati della prenotazione e gli schemi
di validazione e serializzazione per l'API.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.invoice import InvoiceRead


# -------------------------------------------------------------------
# Enum per gli stati della prenotazione
# -------------------------------------------------------------------

class BookingStatus(str, Enum):
    """Enum che definisce i possibili stati di una prenotazione."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPaymentStatus(str, Enum):
    """Flag di pagamento della prenotazione."""
    UNPAID = "unpaid"
    PAID = "paid"


# -------------------------------------------------------------------
# Matrice delle transizioni di stato valide
# -------------------------------------------------------------------

# Nota: la validazione delle transizioni avviene nel service layer (booking_service.py)
# Questa matrice è definita qui come unica source of truth e importata dal service.
VALID_TRANSITIONS: dict[BookingStatus, list[BookingStatus]] = {
    BookingStatus.PENDING: [BookingStatus.CONFIRMED, BookingStatus.CANCELLED],
    BookingStatus.CONFIRMED: [BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED],
    BookingStatus.IN_PROGRESS: [BookingStatus.COMPLETED, BookingStatus.CANCELLED],
    BookingStatus.COMPLETED: [],  # Stato finale
    BookingStatus.CANCELLED: [],  # Stato finale
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


# -------------------------------------------------------------------
# Schemas di input
# -------------------------------------------------------------------

class BookingStatusChange(BaseModel):
    """Richiesta di cambio stato generico."""

    status: BookingStatus = Field(..., description="Nuovo stato")
    note: Optional[str] = Field(None, max_length=1000, description="Nota per lo storico")


class ContractorAssignment(BaseModel):
    """Assegnazione di un trasportatore con il relativo compenso."""

    contractor_id: uuid.UUID = Field(..., description="UUID del trasportatore")
    contractor_price: Decimal = Field(
        ...,
        max_digits=12,
        decimal_places=2,
        description="Compenso concordato (deve essere positivo)",
    )


# -------------------------------------------------------------------
# Schemas di output
# -------------------------------------------------------------------

class BookingRead(BaseModel):
    """Schema per la lettura di una prenotazione."""

    id: uuid.UUID
    booking_number: str
    status: BookingStatus
    payment_status: BookingPaymentStatus
    customer_id: uuid.UUID
    contractor_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    price: Decimal
    contractor_price: Optional[Decimal] = None
    service_address: Optional[str] = None
    scheduled_at: Optional[datetime.datetime] = None
    notes: Optional[str] = None
    invoice_deal_id: Optional[uuid.UUID] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class BookingTrackRead(BaseModel):
    """Voce dello storico stati."""

    id: uuid.UUID
    booking_id: uuid.UUID
    old_status: Optional[BookingStatus] = None
    new_status: BookingStatus
    note: Optional[str] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class BookingConfirmation(BaseModel):
    """
    Esito di confirm().

    La conferma può riuscire anche se lo storico o la fattura
    non sono stati scritti: in quel caso `warnings` lo riporta.
    """

    booking: BookingRead
    invoice: Optional[InvoiceRead] = None
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class BookingTransitionResult(BaseModel):
    """Esito di un cambio stato generico o di un'assegnazione."""

    booking: BookingRead
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


__all__ = [
    "BookingStatus",
    "BookingPaymentStatus",
    "VALID_TRANSITIONS",
    "TERMINAL_STATUSES",
    "BookingStatusChange",
    "ContractorAssignment",
    "BookingRead",
    "BookingTrackRead",
    "BookingConfirmation",
    "BookingTransitionResult",
]
