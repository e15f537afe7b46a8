"""
API v1 Routes
Progetto: Fleet Back Office (Gestionale Trasporti)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import balances, bookings, invoice_deals, invoices

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(bookings.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(invoice_deals.router)
api_v1_router.include_router(balances.router)

# Esportazione
__all__ = ["api_v1_router"]
