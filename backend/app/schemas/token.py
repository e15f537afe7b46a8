"""
Schemas Pydantic per l'identità del chiamante
Progetto: Fleet Back Office (Gestionale Trasporti)

I token sono emessi dal servizio di autenticazione esterno;
il backend si limita a verificarli e a leggerne soggetto e ruolo.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CallerRole(str, Enum):
    """Ruoli riconosciuti dal back office."""
    ADMIN = "admin"
    CONTRACTOR = "contractor"
    DRIVER = "driver"


class TokenPayload(BaseModel):
    """
    Schema per il payload contenuto nei token JWT.

    Attributes:
        sub: Subject - ID dell'utente come stringa
        role: Ruolo dell'utente
        exp: Expiration - Data/ora di scadenza
        type: Tipo di token ("access" o "refresh")
    """

    sub: str = Field(..., description="ID utente")
    role: CallerRole = Field(..., description="Ruolo dell'utente")
    exp: Optional[datetime] = Field(None, description="Data/ora di scadenza")
    type: str = Field(default="access", description="Tipo di token (access/refresh)")


class CallerIdentity(BaseModel):
    """Identità risolta del chiamante, passata agli endpoint."""

    user_id: str = Field(..., description="ID utente (per i trasportatori coincide con l'ID contractor)")
    role: CallerRole = Field(..., description="Ruolo del chiamante")

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN


__all__ = [
    "CallerRole",
    "TokenPayload",
    "CallerIdentity",
]
