"""
Modulo di sicurezza per autenticazione JWT
Progetto: Fleet Back Office (Gestionale Trasporti)

Verifica dei token emessi dal servizio di autenticazione esterno.
Il back office non gestisce password né emette token.

Il servizio di autenticazione firma con la stessa chiave sia i token
di accesso sia quelli di refresh (claim `type`): qui sono accettati
solo i primi. Un token senza claim `type` vale come accesso.
"""

from datetime import datetime, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.schemas.token import CallerIdentity, TokenPayload


def decode_token(token: str) -> TokenPayload:
    """
    Decodifica e valida un token JWT.

    Args:
        token: Token JWT da decodificare

    Returns:
        TokenPayload con i dati del token

    Raises:
        HTTPException: Se il token è invalido, scaduto o con ruolo sconosciuto
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token invalido o scaduto: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    exp = payload.get("exp")
    try:
        token_data = TokenPayload(
            sub=payload.get("sub") or "",
            role=payload.get("role"),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
            type=payload.get("type", "access"),
        )
    except PydanticValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalido: ruolo non riconosciuto",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalido: missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data


def resolve_caller(token: str) -> CallerIdentity:
    """
    Converte un token di accesso valido nell'identità del chiamante.

    Raises:
        HTTPException: 401 se il token non è valido o è un token di refresh
    """
    token_data = decode_token(token)

    # Il refresh token serve solo a ottenere un nuovo accesso dal servizio di autenticazione
    if token_data.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token di refresh non valido per questa operazione",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CallerIdentity(user_id=token_data.sub, role=token_data.role)


# Export delle funzioni
__all__ = [
    "decode_token",
    "resolve_caller",
]
