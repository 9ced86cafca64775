"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets its own in-memory SQLite database wrapped in a transaction
that rolls back at teardown. The API's session factory is overridden to
hand out that same session, guarded by a lock so the concurrent current /
comparison periods take turns on it.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from api.deps import get_current_user, get_session_factory
from api.main import app
from core.security import UserContext
from db.session import Base

# In-memory SQLite, one connection shared through the whole test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PHARMACY_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
PHARMACY_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")

EAN_TOTAL = "3400930000001"  # never reported, delivered 70 days ago
EAN_OK = "3400930000002"  # fully received, reception seen 10 days after delivery
EAN_SHORT = "3400930000003"  # half received, reception seen 45 days after delivery
EAN_NO_STOCK = "3400930000004"  # fully received, no stock history at all
EAN_OTHER_PHARMACY = "3400930000005"

TODAY = date.today()


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Create a test session wrapped in a transaction that rolls back after each test."""
    async with test_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def shared_session_factory(test_db):
    """Session factory handing out the test session, one user at a time."""
    lock = asyncio.Lock()

    @asynccontextmanager
    async def factory():
        async with lock:
            yield test_db

    return factory


@pytest.fixture
def admin_user():
    return UserContext(user_id="auth|admin", role="admin")


@pytest.fixture
def pharmacy_b_user():
    return UserContext(user_id="auth|pharmacist-b", role="pharmacist", pharmacy_id=PHARMACY_B)


@pytest.fixture
def current_user(admin_user):
    """User the client authenticates as. Override in a test module to change it."""
    return admin_user


@pytest.fixture
async def client(shared_session_factory, current_user):
    """Create an async test client with dependency overrides."""

    def override_get_current_user():
        return current_user

    def override_get_session_factory():
        return shared_session_factory

    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


class ReceptionSeeder:
    """Small builder over the ORM so tests read as scenarios."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._products: dict[tuple[uuid.UUID, str], uuid.UUID] = {}

    async def pharmacy(self, pharmacy_id: uuid.UUID, name: str = "Pharmacie Test"):
        from db.models import Pharmacy

        self.db.add(Pharmacy(pharmacy_id=pharmacy_id, name=name, city="Toulouse", postal_code="31000"))
        await self.db.flush()
        return pharmacy_id

    async def supplier(self, name: str = "OCP Répartition") -> uuid.UUID:
        from db.models import Supplier

        supplier = Supplier(name=name)
        self.db.add(supplier)
        await self.db.flush()
        return supplier.supplier_id

    async def product(self, pharmacy_id: uuid.UUID, code: str, name: str | None = None) -> uuid.UUID:
        from db.models import GlobalProduct, InternalProduct

        if await self.db.get(GlobalProduct, code) is None:
            self.db.add(GlobalProduct(code_13_ref=code, name=name or f"Produit {code[-4:]}", category="OTC"))
        product = InternalProduct(pharmacy_id=pharmacy_id, code_13_ref=code, name=name)
        self.db.add(product)
        await self.db.flush()
        self._products[(pharmacy_id, code)] = product.product_id
        return product.product_id

    async def order_line(
        self,
        pharmacy_id: uuid.UUID,
        product_id: uuid.UUID,
        ordered: int,
        received: int,
        delivery_date: date | None,
        supplier_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        from db.models import Order, OrderLine

        order = Order(pharmacy_id=pharmacy_id, supplier_id=supplier_id, delivery_date=delivery_date)
        self.db.add(order)
        await self.db.flush()
        line = OrderLine(order_id=order.order_id, product_id=product_id, quantity=ordered, received_quantity=received)
        self.db.add(line)
        await self.db.flush()
        return line.line_id

    async def stock(self, product_id: uuid.UUID, day: date, stock: int, price: float | None = None):
        from db.models import InventorySnapshot

        self.db.add(InventorySnapshot(product_id=product_id, date=day, stock=stock, weighted_average_price=price))
        await self.db.flush()

    async def sale(self, product_id: uuid.UUID, day: date, quantity: int):
        from db.models import DailySale

        self.db.add(DailySale(product_id=product_id, date=day, quantity=quantity))
        await self.db.flush()


@pytest.fixture
def seeder(test_db):
    return ReceptionSeeder(test_db)


@pytest.fixture
async def seeded_db(seeder):
    """
    Reference chain used by the integration tests (window = days_ago(75)..days_ago(35)).

    Pharmacy A:
      EAN_TOTAL     ordered 100, received 0,  delivered D-70             → RUPTURE_TOTALE_LONGUE
      EAN_OK        ordered 50,  received 50, reception +50 at D-30      → OK (matched, delay 10)
      EAN_SHORT     ordered 80,  received 40, reception +40 at D-15      → RUPTURE_COURTE (delay 45)
      EAN_NO_STOCK  ordered 20,  received 20, no stock history           → OK (unmatched)
      EAN_TOTAL     ordered 10,  received 0,  delivered D-180            (comparison window only)
    Pharmacy B:
      EAN_OTHER_PHARMACY ordered 30, received 0, delivered D-45          → RUPTURE_TOTALE_COURTE
    """
    await seeder.pharmacy(PHARMACY_A, "Pharmacie du Centre")
    await seeder.pharmacy(PHARMACY_B, "Pharmacie de la Gare")
    wholesaler = await seeder.supplier("OCP Répartition")
    laboratory = await seeder.supplier("Sanofi Direct")

    p_total = await seeder.product(PHARMACY_A, EAN_TOTAL)
    p_ok = await seeder.product(PHARMACY_A, EAN_OK)
    p_short = await seeder.product(PHARMACY_A, EAN_SHORT)
    p_no_stock = await seeder.product(PHARMACY_A, EAN_NO_STOCK)
    p_other = await seeder.product(PHARMACY_B, EAN_OTHER_PHARMACY)

    lines = {
        "total": await seeder.order_line(PHARMACY_A, p_total, 100, 0, days_ago(70), wholesaler),
        "ok": await seeder.order_line(PHARMACY_A, p_ok, 50, 50, days_ago(40), wholesaler),
        "short": await seeder.order_line(PHARMACY_A, p_short, 80, 40, days_ago(60), wholesaler),
        "no_stock": await seeder.order_line(PHARMACY_A, p_no_stock, 20, 20, days_ago(50), laboratory),
        "comparison": await seeder.order_line(PHARMACY_A, p_total, 10, 0, days_ago(180), wholesaler),
        "other": await seeder.order_line(PHARMACY_B, p_other, 30, 0, days_ago(45), wholesaler),
        "undelivered": await seeder.order_line(PHARMACY_A, p_total, 15, 0, None, wholesaler),
    }

    await seeder.stock(p_total, days_ago(80), 0, price=2.0)
    await seeder.stock(p_ok, days_ago(45), 5, price=1.5)
    await seeder.stock(p_ok, days_ago(30), 55, price=1.5)
    await seeder.stock(p_short, days_ago(62), 10, price=3.0)
    await seeder.stock(p_short, days_ago(15), 45, price=3.0)
    await seeder.sale(p_short, days_ago(15), 5)
    await seeder.stock(p_other, days_ago(50), 3, price=4.0)

    return {
        "products": {
            "total": p_total,
            "ok": p_ok,
            "short": p_short,
            "no_stock": p_no_stock,
            "other": p_other,
        },
        "lines": lines,
        "suppliers": {"wholesaler": wholesaler, "laboratory": laboratory},
    }
