"""
Per-reference rupture table.

For each EAN of the period, one SYNTHESE row covering the whole window,
followed by one DETAIL row per period with activity (sales, orders or
receptions). Periods are days, or calendar months when the window spans
more than 62 days.

Order quantities are bucketed by delivery date. Sales and stock come from
the internal products of the extracted lines, so a reference only shows up
when it has at least one order line in the window.

Stock per period is the last observed level of each internal product in
that period, summed across pharmacies. The SYNTHESE stock averages the
period levels.
"""

import math
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from ruptures.types import SEVERITY_ORDER, ClassifiedLine, DateWindow, SalesRecord, StockoutStatus, StockSnapshot

MONTHLY_GROUPING_THRESHOLD_DAYS = 62

DETAIL = "DETAIL"
SYNTHESE = "SYNTHESE"
SYNTHESE_PERIOD = "TOTAL"
SYNTHESE_LABEL = "Synthèse période"

_MONTHS_FR = (
    "janvier",
    "février",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "août",
    "septembre",
    "octobre",
    "novembre",
    "décembre",
)


def period_granularity(window: DateWindow) -> str:
    """'day' for short windows, 'month' beyond 62 days."""
    if (window.end - window.start).days > MONTHLY_GROUPING_THRESHOLD_DAYS:
        return "month"
    return "day"


def period_start(day: date, granularity: str) -> date:
    return day.replace(day=1) if granularity == "month" else day


def period_labels(start: date, granularity: str) -> tuple[str, str]:
    """(periode, periode_libelle) for a period starting on `start`."""
    if granularity == "month":
        return start.strftime("%Y-%m"), f"{_MONTHS_FR[start.month - 1]} {start.year}"
    return start.isoformat(), start.strftime("%d/%m/%Y")


@dataclass
class _Bucket:
    nb_lignes: int = 0
    sold: int = 0
    ordered: int = 0
    received: int = 0
    missing: int = 0
    missing_amount: float = 0.0
    statuses: Counter = field(default_factory=Counter)
    # internal product -> (snapshot date, stock)
    last_stock: dict[uuid.UUID, tuple[date, int]] = field(default_factory=dict)

    @property
    def has_activity(self) -> bool:
        return self.sold > 0 or self.ordered > 0 or self.received > 0

    @property
    def stock(self) -> int:
        return sum(level for _, level in self.last_stock.values())


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _reception_rate(received: int, ordered: int) -> float:
    # Nothing ordered in the period: nothing is missing either
    if not ordered:
        return 100.0
    return round(received / ordered * 100, 2)


def _row(
    code: str,
    name: str | None,
    periode: str,
    periode_libelle: str,
    type_ligne: str,
    totals: _Bucket,
    stock: int,
    unit_price: float,
) -> dict:
    delta = totals.ordered - totals.received
    worst = next((s for s in SEVERITY_ORDER if totals.statuses[s]), None)
    return {
        "code_ean": code,
        "nom": name,
        "periode": periode,
        "periode_libelle": periode_libelle,
        "type_ligne": type_ligne,
        "nb_lignes": totals.nb_lignes,
        "quantite_vendue": totals.sold,
        "quantite_commandee": totals.ordered,
        "quantite_receptionnee": totals.received,
        "quantite_stock": stock,
        "delta_quantite": delta,
        "quantite_manquante": totals.missing,
        "taux_reception": _reception_rate(totals.received, totals.ordered),
        "prix_achat_moyen": round(unit_price, 2),
        "montant_delta": round(delta * unit_price, 2),
        "montant_manquant_ht": round(totals.missing_amount, 2),
        "statut_principal": worst.value if worst else None,
        "nb_lignes_par_statut": {s.value: totals.statuses[s] for s in StockoutStatus if totals.statuses[s]},
    }


def summarize_products(
    classified: Sequence[ClassifiedLine],
    prices: Mapping[uuid.UUID, float],
    window: DateWindow,
    snapshots: Iterable[StockSnapshot] = (),
    sales: Iterable[SalesRecord] = (),
) -> list[dict]:
    """
    Build the ruptures products table.

    References are sorted by missing amount (highest first, ties by EAN);
    within a reference the SYNTHESE row comes first, then DETAIL rows in
    period order.
    """
    granularity = period_granularity(window)
    codes: dict[uuid.UUID, str] = {}
    names: dict[str, str | None] = {}
    buckets: dict[str, dict[date, _Bucket]] = {}

    for item in classified:
        line = item.line
        codes[line.product_id] = line.product_code
        if names.get(line.product_code) is None:
            names[line.product_code] = line.product_name

        bucket = buckets.setdefault(line.product_code, {}).setdefault(
            period_start(line.delivery_date, granularity), _Bucket()
        )
        bucket.nb_lignes += 1
        bucket.ordered += line.ordered_quantity
        bucket.received += line.received_quantity
        bucket.missing += item.missing_quantity
        bucket.missing_amount += item.missing_quantity * (prices.get(line.product_id) or 0.0)
        bucket.statuses[item.status] += 1

    for sale in sales:
        code = codes.get(sale.product_id)
        if code is None or not window.start <= sale.date <= window.end:
            continue
        buckets[code].setdefault(period_start(sale.date, granularity), _Bucket()).sold += sale.quantity

    for snapshot in snapshots:
        code = codes.get(snapshot.product_id)
        if code is None or not window.start <= snapshot.date <= window.end:
            continue
        bucket = buckets[code].setdefault(period_start(snapshot.date, granularity), _Bucket())
        seen = bucket.last_stock.get(snapshot.product_id)
        if seen is None or snapshot.date >= seen[0]:
            bucket.last_stock[snapshot.product_id] = (snapshot.date, snapshot.stock)

    groups = []
    for code, periods in buckets.items():
        priced = [prices[pid] for pid, c in codes.items() if c == code and prices.get(pid)]
        unit_price = sum(priced) / len(priced) if priced else 0.0

        totals = _Bucket()
        details = []
        for start in sorted(periods):
            bucket = periods[start]
            totals.nb_lignes += bucket.nb_lignes
            totals.sold += bucket.sold
            totals.ordered += bucket.ordered
            totals.received += bucket.received
            totals.missing += bucket.missing
            totals.missing_amount += bucket.missing_amount
            totals.statuses.update(bucket.statuses)
            if bucket.has_activity:
                periode, libelle = period_labels(start, granularity)
                details.append(_row(code, names[code], periode, libelle, DETAIL, bucket, bucket.stock, unit_price))

        average_stock = _round_half_up(sum(b.stock for b in periods.values()) / len(periods))
        synthese = _row(code, names[code], SYNTHESE_PERIOD, SYNTHESE_LABEL, SYNTHESE, totals, average_stock, unit_price)
        groups.append((synthese, details))

    groups.sort(key=lambda group: (-group[0]["montant_manquant_ht"], group[0]["code_ean"]))
    return [row for synthese, details in groups for row in (synthese, *details)]
