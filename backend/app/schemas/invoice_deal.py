"""
Schemas Pydantic per l'Invoice Deal
Progetto: Fleet Back Office (Gestionale Trasporti)

Contiene lo snapshot del documento (inviato al servizio PDF e
salvato nel deal) e gli schemi API.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentKind(str, Enum):
    """Tipo di documento richiesto al servizio PDF."""
    DEAL = "deal"
    RECEIPT = "receipt"


class DocumentLanguage(str, Enum):
    """Lingue supportate dai documenti."""
    EN = "en"
    HE = "he"
    AR = "ar"


# -------------------------------------------------------------------
# Snapshot
# -------------------------------------------------------------------

class PartySnapshot(BaseModel):
    """Cliente o fornitore come appare sul documento."""

    id: Optional[uuid.UUID] = None
    name: str
    tax_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class LineItemSnapshot(BaseModel):
    """Riga del documento."""

    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    line_total: Decimal


class DocumentSnapshot(BaseModel):
    """
    Snapshot autosufficiente di un documento.

    Contiene tutto il necessario per il rendering: il servizio PDF
    non deve mai rileggere il database.
    """

    kind: DocumentKind = DocumentKind.DEAL
    language: DocumentLanguage = DocumentLanguage.EN
    document_number: str
    issued_at: datetime.datetime
    booking_id: uuid.UUID
    booking_number: str
    service_address: Optional[str] = None
    scheduled_at: Optional[datetime.datetime] = None
    customer: PartySnapshot
    provider: Optional[PartySnapshot] = None
    company: PartySnapshot
    service_name: Optional[str] = None
    items: list[LineItemSnapshot]
    subtotal_amount: Decimal
    tax_rate: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal


# -------------------------------------------------------------------
# Schemas API
# -------------------------------------------------------------------

class InvoiceDealCreate(BaseModel):
    """Richiesta di creazione dell'Invoice Deal."""

    booking_id: uuid.UUID = Field(..., description="UUID della prenotazione")
    language: Optional[DocumentLanguage] = Field(
        None,
        description="Lingua del documento (default da configurazione)",
    )


class InvoiceDealRead(BaseModel):
    """Schema per la lettura di un Invoice Deal."""

    id: uuid.UUID
    booking_id: uuid.UUID
    contractor_id: Optional[uuid.UUID] = None
    invoice_number: str
    booking_snapshot: dict
    tax_amount: Optional[Decimal] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: str
    pdf_url: Optional[str] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceDealResult(BaseModel):
    """
    Esito di create/regenerate.

    `created` è False quando il deal esisteva già; `warnings` riporta
    l'eventuale fallimento del PDF (il deal resta valido con pdf_url None).
    """

    deal: InvoiceDealRead
    created: bool
    warnings: list[str] = Field(default_factory=list)


__all__ = [
    "DocumentKind",
    "DocumentLanguage",
    "PartySnapshot",
    "LineItemSnapshot",
    "DocumentSnapshot",
    "InvoiceDealCreate",
    "InvoiceDealRead",
    "InvoiceDealResult",
]
