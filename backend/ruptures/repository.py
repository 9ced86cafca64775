"""
Store access for the reconciliation pipeline.

Each function issues one read query and maps rows onto the frozen domain
types in ruptures.types; nothing downstream touches the session.
"""

import uuid
from collections.abc import Iterable

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    DailySale,
    GlobalProduct,
    InternalProduct,
    InventorySnapshot,
    Order,
    OrderLine as OrderLineRow,
)
from ruptures.types import DateWindow, OrderFilters, OrderLine, SalesRecord, StockSnapshot

logger = structlog.get_logger()


async def extract_order_lines(
    db: AsyncSession,
    window: DateWindow,
    filters: OrderFilters,
) -> list[OrderLine]:
    """
    Order lines delivered inside the window, restricted to the filter scope.

    Orders without a delivery date and lines ordering nothing are skipped.
    """
    if filters.matches_nothing:
        logger.info("reception.extract_empty_scope", start=str(window.start), end=str(window.end))
        return []

    query = (
        select(
            OrderLineRow.line_id,
            OrderLineRow.order_id,
            OrderLineRow.product_id,
            OrderLineRow.quantity,
            OrderLineRow.received_quantity,
            InternalProduct.code_13_ref,
            Order.pharmacy_id,
            Order.supplier_id,
            Order.delivery_date,
            GlobalProduct.name.label("product_name"),
        )
        .join(Order, OrderLineRow.order_id == Order.order_id)
        .join(InternalProduct, OrderLineRow.product_id == InternalProduct.product_id)
        .outerjoin(GlobalProduct, InternalProduct.code_13_ref == GlobalProduct.code_13_ref)
        .where(
            Order.delivery_date.is_not(None),
            Order.delivery_date >= window.start,
            Order.delivery_date <= window.end,
            OrderLineRow.quantity > 0,
        )
    )
    if filters.product_codes:
        query = query.where(InternalProduct.code_13_ref.in_(sorted(filters.product_codes)))
    if filters.pharmacy_ids is not None:
        query = query.where(Order.pharmacy_id.in_(sorted(filters.pharmacy_ids, key=str)))

    query = query.order_by(Order.delivery_date, OrderLineRow.line_id)
    result = await db.execute(query)

    lines = [
        OrderLine(
            line_id=row.line_id,
            order_id=row.order_id,
            product_id=row.product_id,
            product_code=row.code_13_ref,
            pharmacy_id=row.pharmacy_id,
            supplier_id=row.supplier_id,
            ordered_quantity=row.quantity or 0,
            received_quantity=row.received_quantity or 0,
            delivery_date=row.delivery_date,
            product_name=row.product_name,
        )
        for row in result.all()
    ]
    logger.info(
        "reception.extract_complete",
        start=str(window.start),
        end=str(window.end),
        lines=len(lines),
        product_filter=len(filters.product_codes),
    )
    return lines


async def fetch_stock_snapshots(
    db: AsyncSession,
    product_ids: Iterable[uuid.UUID],
    window: DateWindow,
) -> list[StockSnapshot]:
    """Daily stock levels of the given products inside the window, oldest first."""
    ids = sorted(set(product_ids), key=str)
    if not ids:
        return []

    result = await db.execute(
        select(InventorySnapshot.product_id, InventorySnapshot.date, InventorySnapshot.stock)
        .where(
            InventorySnapshot.product_id.in_(ids),
            InventorySnapshot.date >= window.start,
            InventorySnapshot.date <= window.end,
        )
        .order_by(InventorySnapshot.product_id, InventorySnapshot.date)
    )
    return [StockSnapshot(product_id=row.product_id, date=row.date, stock=row.stock or 0) for row in result.all()]


async def fetch_daily_sales(
    db: AsyncSession,
    product_ids: Iterable[uuid.UUID],
    window: DateWindow,
) -> list[SalesRecord]:
    """Units sold per product and day inside the window."""
    ids = sorted(set(product_ids), key=str)
    if not ids:
        return []

    result = await db.execute(
        select(
            DailySale.product_id,
            DailySale.date,
            func.sum(DailySale.quantity).label("quantity"),
        )
        .where(
            DailySale.product_id.in_(ids),
            DailySale.date >= window.start,
            DailySale.date <= window.end,
        )
        .group_by(DailySale.product_id, DailySale.date)
    )
    return [SalesRecord(product_id=row.product_id, date=row.date, quantity=row.quantity or 0) for row in result.all()]


async def fetch_latest_prices(
    db: AsyncSession,
    product_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, float]:
    """
    Latest known weighted-average purchase price per product.

    Only snapshots with a positive price count; products never priced are
    absent from the result and valued at 0 by the caller.
    """
    ids = sorted(set(product_ids), key=str)
    if not ids:
        return {}

    ranked = (
        select(
            InventorySnapshot.product_id,
            InventorySnapshot.weighted_average_price,
            func.row_number()
            .over(
                partition_by=InventorySnapshot.product_id,
                order_by=InventorySnapshot.date.desc(),
            )
            .label("rn"),
        )
        .where(
            InventorySnapshot.product_id.in_(ids),
            InventorySnapshot.weighted_average_price > 0,
        )
        .subquery()
    )
    result = await db.execute(select(ranked.c.product_id, ranked.c.weighted_average_price).where(ranked.c.rn == 1))
    return {row.product_id: float(row.weighted_average_price) for row in result.all()}
