import asyncio
import sys
import os
from decimal import Decimal

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.database import AsyncSessionLocal, engine
from app.models import Base, Contractor, Customer, Service


async def seed():
    """Dati minimi per provare il flusso prenotazione -> fattura -> pagamento."""
    async with AsyncSessionLocal() as db:
        db.add_all([
            Customer(name="Cliente Demo", customer_type="private", phone="+39 000 000000"),
            Customer(
                name="Referente Demo",
                customer_type="business",
                business_name="Demo Logistica S.r.l.",
                tax_id="IT00000000000",
            ),
            Contractor(name="Trasporti Demo", balance=Decimal("0.00")),
            Service(
                name="Trasloco locale",
                description="Trasloco entro 50 km",
                price_private=Decimal("800.00"),
                price_business=Decimal("1000.00"),
            ),
        ])
        await db.commit()
    print("Dati demo inseriti.")


async def reset(with_seed: bool = False):
    print("Connessione al database, eliminazione tabelle...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        print("Tabelle eliminate. Creazione nuove tabelle...")
        await conn.run_sync(Base.metadata.create_all)
    if with_seed:
        await seed()
    await engine.dispose()
    print("Database resettato con successo!")

if __name__ == "__main__":
    asyncio.run(reset(with_seed="--seed" in sys.argv))
