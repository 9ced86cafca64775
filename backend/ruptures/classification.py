"""
Stockout classification — one status per order line.

Tracked (reported received > 0):
  matched,   received >= ordered            → OK
  matched,   received <  ordered, delay >60 → RUPTURE_LONGUE
  matched,   received <  ordered, delay >30 → RUPTURE_COURTE
  matched,   received <  ordered            → RECEPTION_PARTIELLE
  unmatched, received <  ordered            → RUPTURE_NON_DETECTEE
  unmatched, received >= ordered            → OK
Untracked (reported received == 0), by age of the delivery date:
  > 60 days → RUPTURE_TOTALE_LONGUE
  > 30 days → RUPTURE_TOTALE_COURTE
  otherwise → RUPTURE_TOTALE
"""

import uuid
from collections.abc import Iterable, Mapping
from datetime import date

from ruptures.types import ClassifiedLine, MatchResult, OrderLine, ReconciliationConfig, StockoutStatus


def classify_line(
    line: OrderLine,
    match: MatchResult | None,
    today: date,
    config: ReconciliationConfig | None = None,
) -> StockoutStatus:
    config = config or ReconciliationConfig()
    ordered = line.ordered_quantity
    received = line.received_quantity

    if received <= 0:
        age = (today - line.delivery_date).days
        if age > config.long_rupture_days:
            return StockoutStatus.RUPTURE_TOTALE_LONGUE
        if age > config.short_rupture_days:
            return StockoutStatus.RUPTURE_TOTALE_COURTE
        return StockoutStatus.RUPTURE_TOTALE

    if received >= ordered:
        return StockoutStatus.OK
    if match is None:
        return StockoutStatus.RUPTURE_NON_DETECTEE
    if match.delay_days > config.long_rupture_days:
        return StockoutStatus.RUPTURE_LONGUE
    if match.delay_days > config.short_rupture_days:
        return StockoutStatus.RUPTURE_COURTE
    return StockoutStatus.RECEPTION_PARTIELLE


def missing_quantity(line: OrderLine) -> int:
    """Whole order for untracked lines, the shortfall for tracked ones (never negative)."""
    if line.received_quantity <= 0:
        return line.ordered_quantity
    return max(line.ordered_quantity - line.received_quantity, 0)


def classify_lines(
    lines: Iterable[OrderLine],
    matches: Mapping[uuid.UUID, MatchResult],
    today: date,
    config: ReconciliationConfig | None = None,
) -> list[ClassifiedLine]:
    config = config or ReconciliationConfig()
    classified = []
    for line in lines:
        match = matches.get(line.line_id) if line.received_quantity > 0 else None
        classified.append(
            ClassifiedLine(
                line=line,
                status=classify_line(line, match, today, config),
                missing_quantity=missing_quantity(line),
                match=match,
            )
        )
    return classified
