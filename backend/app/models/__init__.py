"""
Modelli Database SQLAlchemy
Progetto: Fleet Back Office (Gestionale Trasporti)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- Customer, Contractor: Anagrafiche
- Service: Catalogo servizi con listino privati/aziende
- Booking, BookingTrack: Prenotazioni e storico stati
- Invoice, Payment, InvoiceSequence: Fatturazione e incassi
- InvoiceDeal: Documento riepilogativo bloccato
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


# Import modelli implementati
from app.models.customer import Contractor, Customer
from app.models.service_catalog import Service
from app.models.booking import Booking, BookingTrack
from app.models.invoice import Invoice, InvoiceSequence, Payment
from app.models.invoice_deal import InvoiceDeal

# Esportazione di tutti i modelli
__all__ = [
    "Base",
    "Customer",
    "Contractor",
    "Service",
    "Booking",
    "BookingTrack",
    "Invoice",
    "InvoiceSequence",
    "Payment",
    "InvoiceDeal",
]
