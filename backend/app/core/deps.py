"""
Dependency Injection per autenticazione
Progetto: Fleet Back Office (Gestionale Trasporti)

Funzioni di dependency injection per autenticazione e autorizzazione.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.security import resolve_caller
from app.schemas.token import CallerIdentity, CallerRole

# OAuth2 scheme - estrae il token dall'header Authorization.
# Il login avviene sul servizio di autenticazione esterno.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/auth/login",
    auto_error=False,
)


async def get_current_caller(
    token: Optional[str] = Depends(oauth2_scheme),
) -> CallerIdentity:
    """
    Dependency per ottenere l'identità del chiamante dal token JWT.

    Raises:
        HTTPException 401: Se il token manca, è invalido o scaduto
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token di autenticazione non fornito",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return resolve_caller(token)


def require_role(*allowed_roles: CallerRole):
    """
    Factory function per creare una dependency che verifica il ruolo.

    Example:
        @router.post("/{booking_id}/confirm")
        async def confirm(caller: CallerIdentity = Depends(require_role(CallerRole.ADMIN))):
            ...
    """
    async def role_checker(
        caller: Annotated[CallerIdentity, Depends(get_current_caller)]
    ) -> CallerIdentity:
        if caller.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Accesso negato. Ruolo richiesto: {', '.join(r.value for r in allowed_roles)}",
            )
        return caller

    return role_checker


# Type aliases per uso comune
CurrentCaller = Annotated[CallerIdentity, Depends(get_current_caller)]
AdminCaller = Annotated[CallerIdentity, Depends(require_role(CallerRole.ADMIN))]


# Export
__all__ = [
    "get_current_caller",
    "require_role",
    "oauth2_scheme",
    "CurrentCaller",
    "AdminCaller",
]
