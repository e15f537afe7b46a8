"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Fleet Back Office (Gestionale Trasporti)

Definisce engine, session factory e dependency injection per FastAPI.

Le operazioni del motore di riconciliazione usano SAVEPOINT
(`session.begin_nested()`): il database deve supportarli
(PostgreSQL in produzione).
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict[str, Any]:
    """Opzioni del pool: SQLite (sviluppo locale) non accetta pool_size/max_overflow."""
    options: dict[str, Any] = {
        "echo": settings.debug,  # Log query in modalità debug
        "pool_pre_ping": True,   # Verifica connessione prima di usarla
    }
    if not database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Crea una sessione database per ogni richiesta e la chiude
    automaticamente al termine.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# SQLSTATE PostgreSQL: deadlock_detected, serialization_failure
RETRYABLE_SQLSTATES = frozenset({"40P01", "40001"})


def is_transaction_conflict(exc: DBAPIError) -> bool:
    """
    True se il database ha annullato la transazione per deadlock o
    serializzazione. asyncpg/psycopg espongono `sqlstate`, psycopg2 `pgcode`.
    """
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in RETRYABLE_SQLSTATES


async def init_db() -> None:
    """
    Inizializza la connessione al database.

    Esegue un test di connessione per verificare
    che il database sia raggiungibile.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")
