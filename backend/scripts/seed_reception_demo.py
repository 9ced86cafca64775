"""
Seed Reception Demo — Creates pharmacy orders, stock and sales history for development.

Orders are simulated with three supplier behaviours:
  - delivered on time, received quantity reported
  - delivered late / short, received quantity reported
  - never reported (received quantity left at 0)
Stock snapshots follow the simulated deliveries so the reconciliation
pipeline has reception events to find.

Run: python scripts/seed_reception_demo.py [--days 180] [--create-tables]
"""

import argparse
import asyncio
import os
import random
import sys
import uuid
from datetime import date, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_settings
from db.models import (
    DailySale,
    GlobalProduct,
    InternalProduct,
    InventorySnapshot,
    Order,
    OrderLine,
    Pharmacy,
    Supplier,
)
from db.session import Base, create_session_factory

settings = get_settings()

# Seed data constants
PHARMACIES = [
    ("Pharmacie du Centre", "Toulouse", "31000"),
    ("Pharmacie des Halles", "Lyon", "69001"),
    ("Pharmacie de la Gare", "Nantes", "44000"),
]
SUPPLIERS = [("OCP Répartition", "wholesaler"), ("Alliance Healthcare", "wholesaler"), ("Sanofi Direct", "laboratory")]
PRODUCTS = [
    ("3400930000001", "Doliprane 1000mg cpr 8", "Sanofi", "Antalgiques", 1.45),
    ("3400930000002", "Efferalgan 500mg cpr 16", "UPSA", "Antalgiques", 1.20),
    ("3400930000003", "Spasfon Lyoc 80mg 10", "Teva", "Gastro", 2.90),
    ("3400930000004", "Smecta 3g sachets 30", "Ipsen", "Gastro", 3.75),
    ("3400930000005", "Dafalgan 1g cpr 8", "UPSA", "Antalgiques", 1.38),
    ("3400930000006", "Humex Rhume cpr 16", "Urgo", "ORL", 4.10),
]


async def seed_data(days: int, create_tables: bool):
    """Create demo data covering the last `days` days."""
    engine, SessionLocal = create_session_factory(settings.database_url)
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    rng = random.Random(42)
    today = date.today()
    first_day = today - timedelta(days=days)

    async with SessionLocal() as db:
        suppliers = [Supplier(name=name, supplier_type=kind) for name, kind in SUPPLIERS]
        db.add_all(suppliers)
        for code, name, lab, category, _ in PRODUCTS:
            db.add(GlobalProduct(code_13_ref=code, name=name, laboratory=lab, category=category, tva_rate=2.1))
        await db.flush()

        n_orders = 0
        for pharmacy_name, city, postal_code in PHARMACIES:
            pharmacy = Pharmacy(name=pharmacy_name, city=city, postal_code=postal_code)
            db.add(pharmacy)
            await db.flush()

            for code, name, _, _, price in PRODUCTS:
                product = InternalProduct(pharmacy_id=pharmacy.pharmacy_id, code_13_ref=code, name=name)
                db.add(product)
                await db.flush()

                # ── Orders (one every ~2 weeks) ──────────────────
                inbound: dict[date, int] = {}
                day = first_day + timedelta(days=rng.randint(0, 10))
                while day < today:
                    ordered = rng.choice([12, 24, 36, 48, 60])
                    behaviour = rng.random()
                    if behaviour < 0.6:
                        arrival, received, reported = day + timedelta(days=rng.randint(0, 3)), ordered, ordered
                    elif behaviour < 0.85:
                        short = rng.randint(1, ordered // 2)
                        arrival = day + timedelta(days=rng.randint(31, 75))
                        received, reported = ordered - short, ordered - short
                    else:
                        arrival, received, reported = None, 0, 0

                    order = Order(
                        order_id=uuid.uuid4(),
                        pharmacy_id=pharmacy.pharmacy_id,
                        supplier_id=rng.choice(suppliers).supplier_id,
                        sent_date=day - timedelta(days=2),
                        delivery_date=day,
                    )
                    db.add(order)
                    db.add(
                        OrderLine(
                            order_id=order.order_id,
                            product_id=product.product_id,
                            quantity=ordered,
                            received_quantity=reported,
                        )
                    )
                    n_orders += 1
                    if arrival is not None and received:
                        inbound[arrival] = inbound.get(arrival, 0) + received
                    day += timedelta(days=rng.randint(10, 18))

                # ── Stock + sales history ───────────────────────
                stock = rng.randint(20, 60)
                current = first_day
                while current <= today:
                    sold = min(stock, rng.randint(0, 4))
                    stock = stock - sold + inbound.get(current, 0)
                    db.add(DailySale(product_id=product.product_id, date=current, quantity=sold))
                    db.add(
                        InventorySnapshot(
                            product_id=product.product_id,
                            date=current,
                            stock=stock,
                            weighted_average_price=round(price * rng.uniform(0.95, 1.05), 4),
                        )
                    )
                    current += timedelta(days=1)

        await db.commit()
        print(f"✅ Seeded: {len(PHARMACIES)} pharmacies, {len(PRODUCTS)} products, {n_orders} order lines over {days} days")

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed order / stock / sales demo data")
    parser.add_argument("--days", type=int, default=180, help="Days of history to generate (default: 180)")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()
    asyncio.run(seed_data(args.days, args.create_tables))


if __name__ == "__main__":
    main()
