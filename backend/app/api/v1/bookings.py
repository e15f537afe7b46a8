"""
Router FastAPI per le Prenotazioni
Progetto: Fleet Back Office (Gestionale Trasporti)

Endpoint per conferma, cambio stato, assegnazione trasportatore
e storico stati delle prenotazioni.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminCaller, CurrentCaller
from app.schemas.booking import (
    BookingConfirmation,
    BookingRead,
    BookingStatusChange,
    BookingTrackRead,
    BookingTransitionResult,
    ContractorAssignment,
)
from app.services.booking_service import booking_service
from app.services.document_mirror_service import document_mirror_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/bookings",
    tags=["Prenotazioni"],
)


@router.get(
    "/{booking_id}",
    name="prenotazione_dettaglio",
    summary="Dettaglio prenotazione",
    response_model=BookingRead,
    status_code=status.HTTP_200_OK,
)
async def get_booking(
    caller: CurrentCaller,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    db: AsyncSession = Depends(get_db),
) -> BookingRead:
    booking = await booking_service.get_by_id(db, booking_id)
    return BookingRead.model_validate(booking)


@router.post(
    "/{booking_id}/confirm",
    name="prenotazione_conferma",
    summary="Conferma prenotazione",
    description=(
        "Conferma la prenotazione, addebita il trasportatore, registra lo storico "
        "e crea (o arricchisce) la fattura. Errori su storico e fattura sono "
        "restituiti come warning."
    ),
    response_model=BookingConfirmation,
    status_code=status.HTTP_200_OK,
)
async def confirm_booking(
    caller: AdminCaller,
    background_tasks: BackgroundTasks,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    note: Optional[str] = Body(None, embed=True, max_length=1000),
    db: AsyncSession = Depends(get_db),
) -> BookingConfirmation:
    """
    Conferma una prenotazione.

    - 404 se la prenotazione non esiste
    - 409 NOOP_TRANSITION se già confermata
    - 422 INVALID_TRANSITION se lo stato corrente non è confermabile
    """
    confirmation = await booking_service.confirm(db, booking_id, note)
    if confirmation.invoice is not None:
        background_tasks.add_task(document_mirror_service.mirror_invoice, confirmation.invoice)
    return confirmation


@router.post(
    "/{booking_id}/status",
    name="prenotazione_cambio_stato",
    summary="Cambio stato prenotazione",
    response_model=BookingTransitionResult,
    status_code=status.HTTP_200_OK,
)
async def change_booking_status(
    caller: AdminCaller,
    data: BookingStatusChange,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    db: AsyncSession = Depends(get_db),
) -> BookingTransitionResult:
    """
    Transizioni valide:
    - pending → confirmed, cancelled
    - confirmed → in_progress, cancelled
    - in_progress → completed, cancelled
    """
    return await booking_service.set_status(db, booking_id, data)


@router.post(
    "/{booking_id}/assign-contractor",
    name="prenotazione_assegna_trasportatore",
    summary="Assegna trasportatore",
    response_model=BookingTransitionResult,
    status_code=status.HTTP_200_OK,
)
async def assign_contractor(
    caller: AdminCaller,
    data: ContractorAssignment,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    db: AsyncSession = Depends(get_db),
) -> BookingTransitionResult:
    return await booking_service.assign_contractor(db, booking_id, data)


@router.get(
    "/{booking_id}/tracks",
    name="prenotazione_storico",
    summary="Storico stati",
    description="Storico append-only dei cambi di stato, dalla voce più recente.",
    response_model=list[BookingTrackRead],
    status_code=status.HTTP_200_OK,
)
async def get_booking_tracks(
    caller: CurrentCaller,
    booking_id: uuid.UUID = Path(..., description="UUID della prenotazione"),
    db: AsyncSession = Depends(get_db),
) -> list[BookingTrackRead]:
    tracks = await booking_service.get_tracks(db, booking_id)
    return [BookingTrackRead.model_validate(t) for t in tracks]
