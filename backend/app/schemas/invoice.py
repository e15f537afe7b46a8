"""
Schemas Pydantic per la Fatturazione
Progetto: Fleet Back Office (Gestionale Trasporti)

Contiene:
- Enums: PaymentMethod, InvoiceStatus, InvoiceType, InvoiceDirection
- Schemas per Payment
- Schemas per Invoice
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PaymentMethod(str, Enum):
    """Metodi di pagamento supportati."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"


class InvoiceStatus(str, Enum):
    """Stato della fattura."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class InvoiceType(str, Enum):
    """
    Tipo di documento.

    - tax_invoice: fattura con imposta ad aliquota fissa
    - tax_invoice_receipt: fattura con imposta + ricevuta di pagamento
    - receipt_only: ricevuta, nessuna imposta, totale = importo
    - general: documento generico, nessuna imposta, totale = imponibile
    """
    TAX_INVOICE = "tax_invoice"
    RECEIPT_ONLY = "receipt_only"
    GENERAL = "general"
    TAX_INVOICE_RECEIPT = "tax_invoice_receipt"

    @property
    def is_taxed(self) -> bool:
        return self in (InvoiceType.TAX_INVOICE, InvoiceType.TAX_INVOICE_RECEIPT)

    @property
    def is_receipt(self) -> bool:
        return self in (InvoiceType.RECEIPT_ONLY, InvoiceType.TAX_INVOICE_RECEIPT)


class InvoiceDirection(str, Enum):
    """Verso del documento."""
    POSITIVE = "positive"
    NEGATIVE = "negative"


# -------------------------------------------------------------------
# Schemas per Payment
# -------------------------------------------------------------------

class PaymentInput(BaseModel):
    """
    Singolo pagamento da applicare a una fattura.

    L'importo non è vincolato qui: un importo non positivo viene
    rifiutato da PaymentService con InvalidAmountError.
    """

    amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Importo")
    method: PaymentMethod = Field(..., description="Metodo di pagamento")
    contractor_id: Optional[uuid.UUID] = Field(
        None,
        description="Se valorizzato il pagamento è registrato a nome del trasportatore",
    )
    transaction_id: Optional[str] = Field(
        None,
        max_length=100,
        description="Riferimento transazione (numero assegno, ricevuta POS, etc.)",
    )
    notes: Optional[str] = Field(None, description="Note aggiuntive sul pagamento")
    paid_at: Optional[datetime.datetime] = Field(None, description="Data/ora pagamento (default: adesso)")


class ApplyPaymentsRequest(BaseModel):
    """Richiesta di applicazione di uno o più pagamenti."""

    payments: list[PaymentInput] = Field(..., min_length=1)


class PaymentRead(BaseModel):
    """Schema per leggere un pagamento registrato."""

    id: uuid.UUID
    invoice_id: uuid.UUID
    booking_id: uuid.UUID
    customer_id: Optional[uuid.UUID] = None
    contractor_id: Optional[uuid.UUID] = None
    amount: Decimal
    method: PaymentMethod
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceFields(BaseModel):
    """
    Campi descrittivi e importo opzionali per creazione/arricchimento.

    I campi lasciati a None vengono ricavati dalla prenotazione
    (servizio a listino, prezzo, note).
    """

    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        max_digits=12,
        decimal_places=2,
        description="Imponibile (o importo ricevuta); default: prezzo della prenotazione",
    )
    service_name: Optional[str] = Field(None, max_length=255)
    service_description: Optional[str] = None
    bill_description: Optional[str] = None
    notes: Optional[str] = None
    commission: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    direction: Optional[InvoiceDirection] = Field(
        None,
        description="Ignorato per tax_invoice, sempre 'negative'",
    )


class InvoiceCreate(InvoiceFields):
    """Richiesta di creazione fattura per una prenotazione."""

    invoice_type: InvoiceType = Field(default=InvoiceType.TAX_INVOICE)
    payments: list[PaymentInput] = Field(
        default_factory=list,
        description="Pagamenti contestuali (solo per i tipi ricevuta)",
    )

    @model_validator(mode="after")
    def validate_receipt_payments(self) -> "InvoiceCreate":
        """I pagamenti contestuali sono ammessi solo per i documenti ricevuta."""
        if self.payments and not self.invoice_type.is_receipt:
            raise ValueError(
                f"Il tipo '{self.invoice_type.value}' non accetta pagamenti contestuali"
            )
        return self


class InvoiceRead(BaseModel):
    """Schema per la lettura di una fattura."""

    id: uuid.UUID
    invoice_number: str
    booking_id: uuid.UUID
    customer_id: uuid.UUID
    contractor_id: Optional[uuid.UUID] = None
    invoice_type: InvoiceType
    direction: InvoiceDirection
    status: InvoiceStatus
    subtotal_amount: Decimal
    tax_amount: Optional[Decimal] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    commission: Optional[Decimal] = None
    custom_amount: Optional[Decimal] = None
    due_date: datetime.date
    service_name: Optional[str] = None
    service_description: Optional[str] = None
    bill_description: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def customer_credit(self) -> Decimal:
        """Credito del cliente (residuo negativo), 0 se non c'è."""
        if self.remaining_amount < 0:
            return -self.remaining_amount
        return Decimal("0.00")


class InvoiceCreationResult(BaseModel):
    """Esito della creazione (o lettura idempotente) di una fattura."""

    invoice: InvoiceRead
    created: bool = Field(..., description="False se la fattura esisteva già ed è stata arricchita")
    payments: list[PaymentRead] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PaymentApplicationResult(BaseModel):
    """
    Esito dell'applicazione di pagamenti.

    - excess: quanto i pagamenti superano il totale (credito cliente), 0 altrimenti
    - remaining: residuo dopo i pagamenti (può essere negativo)
    """

    invoice: InvoiceRead
    payments: list[PaymentRead]
    paid_sum: Decimal
    excess: Decimal
    remaining: Decimal

    @computed_field
    @property
    def customer_credit(self) -> Decimal:
        if self.remaining < 0:
            return -self.remaining
        return Decimal("0.00")


class OverdueRefreshResult(BaseModel):
    """Esito dell'aggiornamento delle fatture scadute."""

    updated: int
    invoice_ids: list[uuid.UUID] = Field(default_factory=list)


__all__ = [
    "PaymentMethod",
    "InvoiceStatus",
    "InvoiceType",
    "InvoiceDirection",
    "PaymentInput",
    "ApplyPaymentsRequest",
    "PaymentRead",
    "InvoiceFields",
    "InvoiceCreate",
    "InvoiceRead",
    "InvoiceCreationResult",
    "PaymentApplicationResult",
    "OverdueRefreshResult",
]
