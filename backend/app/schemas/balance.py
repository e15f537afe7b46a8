"""
Schemas Pydantic per i saldi
Progetto: Fleet Back Office (Gestionale Trasporti)
"""

import uuid
from decimal import Decimal

from pydantic import BaseModel, Field


class CustomerBalance(BaseModel):
    """
    Saldo derivato del cliente.

    balance = total_payments - unpaid_bookings_total
    (positivo = credito del cliente, negativo = debito)
    """

    customer_id: uuid.UUID
    total_payments: Decimal = Field(..., description="Somma dei pagamenti del cliente")
    unpaid_bookings_total: Decimal = Field(..., description="Somma dei prezzi delle prenotazioni non pagate")
    balance: Decimal


class ContractorBalance(BaseModel):
    """Saldo memorizzato del trasportatore."""

    contractor_id: uuid.UUID
    balance: Decimal


__all__ = ["CustomerBalance", "ContractorBalance"]
