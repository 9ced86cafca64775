"""
Order ↔ reception matching.

Pairs each tracked order line with at most one estimated reception event
of the same product, inside [delivery - lookback, delivery + lookahead].

Ranking key, both directions:
  1. |reception_estimate - reported received quantity|   (closest quantity)
  2. |event date - delivery date|                         (closest in time)
  3. earliest event / earliest order line                 (stable tiebreak)

A pair is kept only when it is rank 1 for the order AND rank 1 for the
event. This is a greedy mutual-best filter, not an optimal assignment:
it stops one large delivery from being claimed by several orders and one
order from soaking up unrelated deliveries, at the price of leaving some
true matches unmatched.
"""

import uuid
from collections.abc import Sequence

import pandas as pd
import structlog

from ruptures.types import MatchResult, OrderLine, ReceptionEvent, ReconciliationConfig

logger = structlog.get_logger()

_ORDER_COLUMNS = ["line_idx", "product_id", "received", "delivery_ord"]
_EVENT_COLUMNS = ["event_idx", "product_id", "event_ord", "estimate"]


def match_orders_to_receptions(
    tracked: Sequence[OrderLine],
    events: Sequence[ReceptionEvent],
    config: ReconciliationConfig | None = None,
) -> dict[uuid.UUID, MatchResult]:
    """Return accepted matches keyed by order line id."""
    config = config or ReconciliationConfig()
    if not tracked or not events:
        return {}

    orders = pd.DataFrame(
        [(i, line.product_id, line.received_quantity, line.delivery_date.toordinal()) for i, line in enumerate(tracked)],
        columns=_ORDER_COLUMNS,
    )
    receptions = pd.DataFrame(
        [(i, event.product_id, event.date.toordinal(), event.quantity) for i, event in enumerate(events)],
        columns=_EVENT_COLUMNS,
    )

    pairs = orders.merge(receptions, on="product_id", how="inner")
    if pairs.empty:
        return {}

    pairs["delay_days"] = pairs["event_ord"] - pairs["delivery_ord"]
    in_window = (pairs["delay_days"] >= -config.match_lookback_days) & (
        pairs["delay_days"] <= config.match_lookahead_days
    )
    pairs = pairs[in_window].copy()
    if pairs.empty:
        return {}

    pairs["qty_diff"] = (pairs["estimate"] - pairs["received"]).abs()
    pairs["date_diff"] = pairs["delay_days"].abs()

    best_for_order = pairs.sort_values(
        ["line_idx", "qty_diff", "date_diff", "event_ord", "event_idx"], kind="mergesort"
    ).drop_duplicates(subset="line_idx", keep="first")
    best_for_event = pairs.sort_values(
        ["event_idx", "qty_diff", "date_diff", "delivery_ord", "line_idx"], kind="mergesort"
    ).drop_duplicates(subset="event_idx", keep="first")

    mutual = best_for_order.merge(best_for_event[["line_idx", "event_idx"]], on=["line_idx", "event_idx"], how="inner")

    matches: dict[uuid.UUID, MatchResult] = {}
    for row in mutual.itertuples(index=False):
        line = tracked[int(row.line_idx)]
        matches[line.line_id] = MatchResult(
            line_id=line.line_id,
            event=events[int(row.event_idx)],
            delay_days=int(row.delay_days),
            quantity_difference=float(row.qty_diff),
        )

    logger.info(
        "reception.matching_complete",
        tracked_lines=len(tracked),
        events=len(events),
        candidate_pairs=len(pairs),
        matched=len(matches),
    )
    return matches
