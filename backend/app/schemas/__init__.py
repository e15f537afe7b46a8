"""
Schemas Pydantic per il progetto Fleet Back Office

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle richieste e risposte API.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from app.schemas import BookingRead, InvoiceRead, etc.

from app.schemas.token import CallerIdentity, CallerRole, TokenPayload
from app.schemas.invoice import (
    ApplyPaymentsRequest,
    InvoiceCreate,
    InvoiceCreationResult,
    InvoiceDirection,
    InvoiceFields,
    InvoiceRead,
    InvoiceStatus,
    InvoiceType,
    OverdueRefreshResult,
    PaymentApplicationResult,
    PaymentInput,
    PaymentMethod,
    PaymentRead,
)
from app.schemas.booking import (
    VALID_TRANSITIONS,
    BookingConfirmation,
    BookingPaymentStatus,
    BookingRead,
    BookingStatus,
    BookingStatusChange,
    BookingTrackRead,
    BookingTransitionResult,
    ContractorAssignment,
)
from app.schemas.invoice_deal import (
    DocumentKind,
    DocumentLanguage,
    DocumentSnapshot,
    InvoiceDealCreate,
    InvoiceDealRead,
    InvoiceDealResult,
    LineItemSnapshot,
    PartySnapshot,
)
from app.schemas.balance import ContractorBalance, CustomerBalance
