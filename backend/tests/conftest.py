"""
Pytest configuration and fixtures.

I test dei service girano su un database SQLite su file (aiosqlite),
con SAVEPOINT abilitati: stesso codice SQLAlchemy async usato in
produzione con PostgreSQL.
"""

import asyncio
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import ExternalServiceFailure
from app.models import Base, Booking, Contractor, Customer, Service
from app.schemas.invoice_deal import DocumentSnapshot
from app.services.pdf_service import PdfRenderer


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = MagicMock()
    return db


# ============================================================
# Fixtures per database SQLite
# ============================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Engine su un file SQLite temporaneo, schema creato da zero."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")

    # pysqlite gestisce BEGIN a modo suo: lo disattiviamo per avere SAVEPOINT funzionanti
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================
# Factory
# ============================================================


@pytest.fixture
def make_customer(db):
    async def _make(**kwargs) -> Customer:
        kwargs.setdefault("name", "Mario Rossi")
        kwargs.setdefault("customer_type", "private")
        customer = Customer(**kwargs)
        db.add(customer)
        await db.commit()
        return customer

    return _make


@pytest.fixture
def make_contractor(db):
    async def _make(**kwargs) -> Contractor:
        kwargs.setdefault("name", "Trasporti Bianchi")
        kwargs.setdefault("balance", Decimal("0.00"))
        contractor = Contractor(**kwargs)
        db.add(contractor)
        await db.commit()
        return contractor

    return _make


@pytest.fixture
def make_service(db):
    async def _make(**kwargs) -> Service:
        kwargs.setdefault("name", "Trasloco locale")
        kwargs.setdefault("description", "Trasloco entro 50 km")
        kwargs.setdefault("price_private", Decimal("800.00"))
        kwargs.setdefault("price_business", Decimal("1000.00"))
        service = Service(**kwargs)
        db.add(service)
        await db.commit()
        return service

    return _make


@pytest.fixture
def make_booking(db, make_customer):
    async def _make(customer: Optional[Customer] = None, **kwargs) -> Booking:
        if customer is None and "customer_id" not in kwargs:
            customer = await make_customer()
        if customer is not None:
            kwargs["customer_id"] = customer.id
        kwargs.setdefault("booking_number", f"BK-{uuid.uuid4().hex[:8].upper()}")
        kwargs.setdefault("price", Decimal("1000.00"))
        kwargs.setdefault("status", "pending")
        kwargs.setdefault("payment_status", "unpaid")
        booking = Booking(**kwargs)
        db.add(booking)
        await db.commit()
        return booking

    return _make


# ============================================================
# Renderer PDF finto
# ============================================================


class FakePdfRenderer(PdfRenderer):
    """Renderer in memoria: registra le chiamate, può fallire o rallentare."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.calls: list[DocumentSnapshot] = []

    async def render(self, snapshot: DocumentSnapshot) -> str:
        self.calls.append(snapshot)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ExternalServiceFailure("Servizio PDF non disponibile")
        return f"https://docs.example.com/{snapshot.kind.value}/{snapshot.document_number}.pdf"


@pytest.fixture
def fake_renderer():
    return FakePdfRenderer()


@pytest.fixture
def renderer_cls():
    """La classe, per i test che devono configurarla (fail/delay)."""
    return FakePdfRenderer
