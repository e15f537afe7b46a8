"""
Router FastAPI per i saldi
Progetto: Fleet Back Office (Gestionale Trasporti)
"""

import uuid

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminCaller, CurrentCaller
from app.core.exceptions import AuthorizationError
from app.schemas.balance import ContractorBalance, CustomerBalance
from app.services.balance_service import balance_service

router = APIRouter(tags=["Saldi"])


@router.get(
    "/customers/{customer_id}/balance",
    name="cliente_saldo",
    summary="Saldo cliente",
    description="Saldo derivato: pagamenti del cliente meno prenotazioni non pagate.",
    response_model=CustomerBalance,
    status_code=status.HTTP_200_OK,
)
async def get_customer_balance(
    caller: AdminCaller,
    customer_id: uuid.UUID = Path(..., description="UUID del cliente"),
    db: AsyncSession = Depends(get_db),
) -> CustomerBalance:
    return await balance_service.customer_balance(db, customer_id)


@router.get(
    "/contractors/{contractor_id}/balance",
    name="trasportatore_saldo",
    summary="Saldo trasportatore",
    description="Saldo memorizzato. Un trasportatore può consultare solo il proprio.",
    response_model=ContractorBalance,
    status_code=status.HTTP_200_OK,
)
async def get_contractor_balance(
    caller: CurrentCaller,
    contractor_id: uuid.UUID = Path(..., description="UUID del trasportatore"),
    db: AsyncSession = Depends(get_db),
) -> ContractorBalance:
    if not caller.is_admin and caller.user_id != str(contractor_id):
        raise AuthorizationError("Un trasportatore può consultare solo il proprio saldo")
    return await balance_service.contractor_balance(db, contractor_id)
