"""
Router FastAPI per l'Invoice Deal
Progetto: Fleet Back Office (Gestionale Trasporti)
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminCaller, CurrentCaller
from app.schemas.invoice_deal import InvoiceDealCreate, InvoiceDealRead, InvoiceDealResult
from app.services.invoice_deal_service import invoice_deal_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/invoice-deals",
    tags=["Invoice Deal"],
)


@router.post(
    "",
    name="invoice_deal_crea",
    summary="Crea invoice deal",
    description=(
        "Get-or-create del documento riepilogativo della prenotazione. "
        "Se il PDF non può essere generato il deal viene comunque creato "
        "con pdf_url vuoto e un warning."
    ),
    response_model=InvoiceDealResult,
    status_code=status.HTTP_200_OK,
)
async def create_invoice_deal(
    caller: AdminCaller,
    data: InvoiceDealCreate,
    db: AsyncSession = Depends(get_db),
) -> InvoiceDealResult:
    return await invoice_deal_service.create_deal(db, data.booking_id, data.language)


@router.get(
    "/{deal_id}",
    name="invoice_deal_dettaglio",
    summary="Dettaglio invoice deal",
    response_model=InvoiceDealRead,
    status_code=status.HTTP_200_OK,
)
async def get_invoice_deal(
    caller: CurrentCaller,
    deal_id: uuid.UUID = Path(..., description="UUID del deal"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceDealRead:
    deal = await invoice_deal_service.get_by_id(db, deal_id)
    return InvoiceDealRead.model_validate(deal)


@router.post(
    "/{deal_id}/pdf",
    name="invoice_deal_rigenera_pdf",
    summary="Rigenera PDF",
    description="Richiede di nuovo il PDF del deal. 502 se il servizio PDF non risponde.",
    response_model=InvoiceDealResult,
    status_code=status.HTTP_200_OK,
)
async def regenerate_invoice_deal_pdf(
    caller: AdminCaller,
    deal_id: uuid.UUID = Path(..., description="UUID del deal"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceDealResult:
    return await invoice_deal_service.regenerate_pdf(db, deal_id)
