"""
Eccezioni Custom per l'applicazione.
Progetto: Fleet Back Office (Gestionale Trasporti)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)

Il flag `retryable` indica al chiamante se ripetere la stessa richiesta
è sicuro (es. gara persa su un vincolo unique) oppure se l'input va corretto.
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "ConflictError",
    "AuthorizationError",
    "InvalidTransitionError",
    "NoOpTransitionError",
    "DuplicateInvoiceError",
    "DuplicateDealError",
    "InvalidAmountError",
    "MissingBookingError",
    "ExternalServiceFailure",
    "ImmutableRecordError",
    "TransactionConflictError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        retryable: True se la stessa richiesta può essere ripetuta senza modifiche
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    retryable: bool = False

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        # Use provided error_code or fall back to class-level default
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra if extra is not None else None
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateError(AppException):
    """
    Eccezione sollevata quando si tenta di creare una risorsa duplicata.

    Utilizzata per violazioni di vincoli unique (es. seconda fattura per la stessa prenotazione).
    """

    status_code: int = 409
    error_code: str = "DUPLICATE_RESOURCE"

    def __init__(
        self,
        detail: str = "Risorsa già esistente",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    NON confondere con pydantic.ValidationError che gestisce
    la validazione dello schema/formato dei dati in input.

    Esempi di utilizzo:
        - "Il trasportatore del pagamento non è quello assegnato alla prenotazione"
        - "Solo prenotazioni attive possono essere assegnate"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione BusinessValidationError.

        Args:
            detail: Messaggio di errore (default: "Validazione dati fallita")
            error_code: Identificativo univoco (default: "BUSINESS_VALIDATION_ERROR")
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione non può essere eseguita
    a causa dello stato corrente della risorsa.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflitto di stato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class AuthorizationError(AppException):
    """
    Eccezione sollevata per accesso non autorizzato.

    Utilizzata quando il chiamante tenta di accedere a una risorsa
    o eseguire un'operazione per cui il suo ruolo non ha i permessi.

    Esempi di utilizzo:
        - "Solo gli amministratori possono confermare una prenotazione"
        - "Un trasportatore può consultare solo il proprio saldo"
    """

    status_code: int = 403
    error_code: str = "FORBIDDEN"

    def __init__(
        self,
        detail: str = "Accesso non autorizzato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


# ------------------------------------------------------------
# Eccezioni del motore di riconciliazione
# ------------------------------------------------------------

class InvalidTransitionError(BusinessValidationError):
    """Cambio di stato della prenotazione non previsto dalla macchina a stati."""

    error_code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        detail: str = "Transizione di stato non consentita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class NoOpTransitionError(ConflictError):
    """La prenotazione si trova già nello stato richiesto."""

    error_code: str = "NOOP_TRANSITION"

    def __init__(
        self,
        detail: str = "La prenotazione è già nello stato richiesto",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateInvoiceError(DuplicateError):
    """
    Un creatore concorrente ha già inserito la fattura per la prenotazione.

    Viene risolta internamente rileggendo la riga vincente:
    non dovrebbe mai arrivare al client in condizioni normali.
    """

    error_code: str = "DUPLICATE_INVOICE"
    retryable: bool = True

    def __init__(
        self,
        detail: str = "Fattura già esistente per la prenotazione",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateDealError(DuplicateError):
    """Come DuplicateInvoiceError, per l'Invoice Deal."""

    error_code: str = "DUPLICATE_DEAL"
    retryable: bool = True

    def __init__(
        self,
        detail: str = "Invoice deal già esistente per la prenotazione",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidAmountError(BusinessValidationError):
    """Importo non positivo (pagamenti, prezzo trasportatore)."""

    error_code: str = "INVALID_AMOUNT"

    def __init__(
        self,
        detail: str = "L'importo deve essere maggiore di zero",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class MissingBookingError(NotFoundError):
    """Prenotazione assente o senza dati sufficienti per costruire lo snapshot del deal."""

    error_code: str = "MISSING_BOOKING"

    def __init__(
        self,
        detail: str = "Prenotazione non trovata o incompleta",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ExternalServiceFailure(AppException):
    """
    Un collaboratore esterno (servizio PDF, gateway) non ha risposto
    o ha risposto con errore.

    Nei flussi best-effort viene loggata e trasformata in warning;
    arriva al client solo quando la chiamata esterna è lo scopo
    stesso della richiesta (es. rigenerazione PDF).
    """

    status_code: int = 502
    error_code: str = "EXTERNAL_SERVICE_FAILURE"
    retryable: bool = True

    def __init__(
        self,
        detail: str = "Servizio esterno non disponibile",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ImmutableRecordError(ConflictError):
    """Tentativo di modificare o cancellare un record append-only (storico stati, pagamenti)."""

    error_code: str = "IMMUTABLE_RECORD"

    def __init__(
        self,
        detail: str = "Il record non può essere modificato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class TransactionConflictError(ConflictError):
    """
    Il database ha interrotto la transazione per deadlock o errore di
    serializzazione. Nessuna scrittura è stata applicata: la stessa
    richiesta può essere ripetuta.
    """

    error_code: str = "TRANSACTION_CONFLICT"
    retryable: bool = True

    def __init__(
        self,
        detail: str = "Transazione interrotta da un accesso concorrente, riprovare",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
