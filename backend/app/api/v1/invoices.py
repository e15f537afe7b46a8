"""
Router FastAPI per la Fatturazione
Progetto: Fleet Back Office (Gestionale Trasporti)

Definisce gli endpoint API per la creazione delle fatture,
l'applicazione dei pagamenti e l'aggiornamento delle scadenze.
"""

import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminCaller, CurrentCaller
from app.schemas.invoice import (
    ApplyPaymentsRequest,
    InvoiceCreate,
    InvoiceCreationResult,
    InvoiceRead,
    OverdueRefreshResult,
    PaymentApplicationResult,
    PaymentRead,
)
from app.services.document_mirror_service import document_mirror_service
from app.services.invoice_service import invoice_service
from app.services.payment_service import payment_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Fatturazione"],
)


# -------------------------------------------------------------------
# Endpoints per Fatture
# -------------------------------------------------------------------

@router.post(
    "/from-booking/{booking_id}",
    name="fattura_da_prenotazione",
    summary="Crea fattura da prenotazione",
    description=(
        "Crea la fattura della prenotazione; se esiste già la arricchisce e la "
        "restituisce (created=false). Per i tipi ricevuta accetta pagamenti contestuali."
    ),
    response_model=InvoiceCreationResult,
    status_code=status.HTTP_200_OK,
)
async def create_invoice_from_booking(
    caller: AdminCaller,
    data: InvoiceCreate,
    background_tasks: BackgroundTasks,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceCreationResult:
    """
    Crea una fattura a partire da una prenotazione.

    Tipi supportati: tax_invoice, tax_invoice_receipt, receipt_only, general.
    """
    result = await invoice_service.create_invoice(db, booking_id, data)
    background_tasks.add_task(
        document_mirror_service.mirror_invoice, result.invoice, result.payments
    )
    return result


@router.post(
    "/refresh-overdue",
    name="fatture_aggiorna_scadute",
    summary="Aggiorna fatture scadute",
    description="Marca come 'overdue' le fatture pending scadute con residuo positivo.",
    response_model=OverdueRefreshResult,
    status_code=status.HTTP_200_OK,
)
async def refresh_overdue_invoices(
    caller: AdminCaller,
    db: AsyncSession = Depends(get_db),
) -> OverdueRefreshResult:
    return await invoice_service.refresh_overdue(db)


@router.get(
    "/{invoice_id}",
    name="fattura_dettaglio",
    summary="Dettaglio fattura",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_invoice(
    caller: CurrentCaller,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    """
    Recupera i dettagli di una fattura per ID.
    """
    invoice = await invoice_service.get_by_id(db, invoice_id)
    return InvoiceRead.model_validate(invoice)


# -------------------------------------------------------------------
# Endpoints per Pagamenti
# -------------------------------------------------------------------

@router.post(
    "/{invoice_id}/payments",
    name="fattura_pagamenti_applica",
    summary="Applica pagamenti",
    description=(
        "Applica uno o più pagamenti in un'unica transazione. "
        "Il sovrapagamento è ammesso e diventa credito del cliente."
    ),
    response_model=PaymentApplicationResult,
    status_code=status.HTTP_201_CREATED,
)
async def apply_payments(
    caller: AdminCaller,
    data: ApplyPaymentsRequest,
    background_tasks: BackgroundTasks,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> PaymentApplicationResult:
    """
    Registra i pagamenti sulla fattura.

    - 422 INVALID_AMOUNT se un importo non è positivo (nessun pagamento registrato)
    - 422 CONTRACTOR_MISMATCH se il trasportatore non è quello della prenotazione
    """
    result = await payment_service.apply_payments(db, invoice_id, data.payments)
    background_tasks.add_task(
        document_mirror_service.mirror_invoice, result.invoice, result.payments
    )
    return result


@router.get(
    "/{invoice_id}/payments",
    name="fattura_pagamenti_lista",
    summary="Lista pagamenti",
    response_model=list[PaymentRead],
    status_code=status.HTTP_200_OK,
)
async def get_invoice_payments(
    caller: CurrentCaller,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> list[PaymentRead]:
    payments = await payment_service.list_for_invoice(db, invoice_id)
    return [PaymentRead.model_validate(p) for p in payments]
