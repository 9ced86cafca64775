"""
Officina Database Models

Read model of the pharmacy-chain data warehouse. Rows are written by the
ingestion collaborators (order feed, inventory feed, sales feed); the
analytics service only reads them.

Tables:
  Reference (1-4):
  1. pharmacies           - Pharmacies of the chain
  2. suppliers            - Wholesalers / laboratories delivering orders
  3. global_products      - Product catalog keyed by EAN-13 (code_13_ref)
  4. internal_products    - Per-pharmacy product rows pointing at a global product

  Facts (5-8):
  5. orders               - Order headers (pharmacy, supplier, delivery date)
  6. order_lines          - Ordered vs reported received quantity per product
  7. inventory_snapshots  - Daily stock level + weighted-average purchase price
  8. daily_sales          - Units sold per product and day
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Pharmacies ─────────────────────────────────────────────────────────


class Pharmacy(Base):
    __tablename__ = "pharmacies"

    pharmacy_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    city = Column(String(100))
    postal_code = Column(String(10))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    orders = relationship("Order", back_populates="pharmacy")
    products = relationship("InternalProduct", back_populates="pharmacy")


# ─── 2. Suppliers ──────────────────────────────────────────────────────────


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    supplier_type = Column(String(20), nullable=False, default="wholesaler")  # wholesaler, laboratory

    __table_args__ = (
        CheckConstraint("supplier_type IN ('wholesaler', 'laboratory')", name="ck_supplier_type"),
    )


# ─── 3. Global Products ────────────────────────────────────────────────────


class GlobalProduct(Base):
    __tablename__ = "global_products"

    code_13_ref = Column(String(13), primary_key=True)  # EAN-13
    name = Column(String(255), nullable=False)
    laboratory = Column(String(255))
    category = Column(String(255))
    tva_rate = Column(Float)


# ─── 4. Internal Products ──────────────────────────────────────────────────


class InternalProduct(Base):
    __tablename__ = "internal_products"

    product_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    pharmacy_id = Column(GUID(), ForeignKey("pharmacies.pharmacy_id"), nullable=False)
    code_13_ref = Column(String(13), ForeignKey("global_products.code_13_ref"), nullable=False)
    name = Column(String(255))

    __table_args__ = (
        UniqueConstraint("pharmacy_id", "code_13_ref", name="uq_internal_product_per_pharmacy"),
        Index("ix_internal_products_code", "code_13_ref"),
    )

    pharmacy = relationship("Pharmacy", back_populates="products")
    global_product = relationship("GlobalProduct")


# ─── 5. Orders ─────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    pharmacy_id = Column(GUID(), ForeignKey("pharmacies.pharmacy_id"), nullable=False)
    supplier_id = Column(GUID(), ForeignKey("suppliers.supplier_id"), nullable=True)
    sent_date = Column(Date)
    delivery_date = Column(Date)  # NULL until the supplier announces a delivery

    __table_args__ = (
        Index("ix_orders_pharmacy_delivery", "pharmacy_id", "delivery_date"),
        Index("ix_orders_delivery", "delivery_date"),
    )

    pharmacy = relationship("Pharmacy", back_populates="orders")
    lines = relationship("OrderLine", back_populates="order", cascade="all, delete-orphan")


# ─── 6. Order Lines ────────────────────────────────────────────────────────


class OrderLine(Base):
    __tablename__ = "order_lines"

    line_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id = Column(GUID(), ForeignKey("orders.order_id"), nullable=False)
    product_id = Column(GUID(), ForeignKey("internal_products.product_id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    received_quantity = Column(Integer, nullable=False, default=0)  # Often 0 when the feed never reports it

    __table_args__ = (
        Index("ix_order_lines_order", "order_id"),
        Index("ix_order_lines_product", "product_id"),
        CheckConstraint("quantity >= 0", name="ck_order_line_quantity_positive"),
    )

    order = relationship("Order", back_populates="lines")
    product = relationship("InternalProduct")


# ─── 7. Inventory Snapshots ────────────────────────────────────────────────


class InventorySnapshot(Base):
    __tablename__ = "inventory_snapshots"

    snapshot_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    product_id = Column(GUID(), ForeignKey("internal_products.product_id"), nullable=False)
    date = Column(Date, nullable=False)
    stock = Column(Integer, nullable=False)
    weighted_average_price = Column(Float)

    __table_args__ = (
        Index("ix_inventory_snapshots_product_date", "product_id", "date"),
    )


# ─── 8. Daily Sales ────────────────────────────────────────────────────────


class DailySale(Base):
    __tablename__ = "daily_sales"

    sale_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    product_id = Column(GUID(), ForeignKey("internal_products.product_id"), nullable=False)
    date = Column(Date, nullable=False)
    quantity = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_daily_sales_product_date", "product_id", "date"),
    )
