"""
Reception tracking — which order lines report a reception, and when the
stock history says goods actually came in.

The order feed often leaves the received quantity at 0 even when goods
arrived, so the reported figure is only trusted when positive. For those
lines, candidate reception events are rebuilt from the inventory feed:

    delta_stock        = stock(day) - stock(previous observed day)
    reception_estimate = delta_stock + units sold that day

Same-day sales hide part of the inbound units behind the stock level, so
adding them back gives the gross quantity received. Days at or below the
noise floor (shrinkage, manual adjustments, returns) are not receptions.
"""

from collections.abc import Iterable

import pandas as pd
import structlog

from core.config import DEFAULT_RECEPTION_NOISE_FLOOR
from ruptures.types import OrderLine, ReceptionEvent, SalesRecord, StockSnapshot

logger = structlog.get_logger()


def split_by_reception(lines: Iterable[OrderLine]) -> tuple[list[OrderLine], list[OrderLine]]:
    """
    Partition order lines into (tracked, untracked).

    tracked:   reported received quantity > 0
    untracked: reported received quantity == 0 (or missing)
    """
    tracked: list[OrderLine] = []
    untracked: list[OrderLine] = []
    for line in lines:
        if line.received_quantity > 0:
            tracked.append(line)
        else:
            untracked.append(line)
    return tracked, untracked


def estimate_reception_events(
    snapshots: Iterable[StockSnapshot],
    sales: Iterable[SalesRecord],
    noise_floor: float = DEFAULT_RECEPTION_NOISE_FLOOR,
) -> list[ReceptionEvent]:
    """
    Derive candidate reception events per product and day.

    The first observed day of each product has no previous level and never
    yields an event. When a product has several snapshots on the same day
    the last one wins.
    """
    stock = pd.DataFrame(
        [(s.product_id, s.date, s.stock) for s in snapshots],
        columns=["product_id", "date", "stock"],
    )
    if stock.empty:
        return []

    stock = stock.drop_duplicates(subset=["product_id", "date"], keep="last")
    stock = stock.sort_values(["product_id", "date"], kind="mergesort").reset_index(drop=True)
    stock["delta_stock"] = stock.groupby("product_id", sort=False)["stock"].diff()
    stock = stock.dropna(subset=["delta_stock"])

    sold = pd.DataFrame(
        [(s.product_id, s.date, s.quantity) for s in sales],
        columns=["product_id", "date", "sold"],
    )
    if not sold.empty:
        sold = sold.groupby(["product_id", "date"], as_index=False, sort=False)["sold"].sum()
        stock = stock.merge(sold, on=["product_id", "date"], how="left")
    else:
        stock["sold"] = 0

    stock["reception_estimate"] = stock["delta_stock"] + pd.to_numeric(stock["sold"], errors="coerce").fillna(0)
    candidates = stock[stock["reception_estimate"] > noise_floor]

    events = [
        ReceptionEvent(product_id=row.product_id, date=row.date, quantity=float(row.reception_estimate))
        for row in candidates.itertuples(index=False)
    ]
    logger.debug(
        "reception.events_estimated",
        products=int(stock["product_id"].nunique()),
        events=len(events),
        noise_floor=noise_floor,
    )
    return events
