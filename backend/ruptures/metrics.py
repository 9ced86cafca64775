"""
Chain-level rollup of classified order lines.

Monetary amounts are HT, valued with the latest weighted-average purchase
price of each per-pharmacy product (0 when never priced). Rates are
percentages rounded to 2 decimals and are 0 when their denominator is 0.
"""

import uuid
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field

from ruptures.types import ClassifiedLine, StockoutStatus

# Fields the dashboard reads from the comparison period
COMPARISON_FIELDS = (
    "quantite_commandee",
    "quantite_receptionnee",
    "montant_commande_ht",
    "montant_receptionne_ht",
    "delta_quantite",
    "delta_montant",
    "nb_references_total",
    "nb_references_rupture",
    "taux_references_rupture",
    "nb_ruptures_totales_courtes",
    "nb_ruptures_totales_longues",
    "nb_ruptures_partielles_courtes",
    "nb_ruptures_partielles_longues",
    "qte_rupture_totale",
    "qte_rupture_partielle",
    "taux_rupture_totale_pct",
)


def _rate(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


@dataclass(frozen=True)
class ReceptionMetrics:
    quantite_commandee: int = 0
    quantite_receptionnee: int = 0
    montant_commande_ht: float = 0.0
    montant_receptionne_ht: float = 0.0
    delta_quantite: int = 0
    delta_montant: float = 0.0
    taux_reception_quantite: float = 0.0
    taux_reception_montant: float = 0.0
    nb_commandes: int = 0
    nb_lignes_commandes: int = 0
    nb_fournisseurs: int = 0
    nb_references_total: int = 0
    nb_references_rupture: int = 0
    taux_references_rupture: float = 0.0
    nb_ruptures_totales_courtes: int = 0
    nb_ruptures_totales_longues: int = 0
    nb_ruptures_partielles_courtes: int = 0
    nb_ruptures_partielles_longues: int = 0
    nb_ruptures_totales_recentes: int = 0
    nb_receptions_partielles: int = 0
    nb_ruptures_non_detectees: int = 0
    nb_lignes_ok: int = 0
    qte_rupture_totale: int = 0
    qte_rupture_partielle: int = 0
    montant_rupture_ht: float = 0.0
    taux_rupture_totale_pct: float = 0.0
    delai_moyen_reception_jours: float | None = None
    nb_lignes_par_statut: dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in StockoutStatus})

    def as_dict(self) -> dict:
        return asdict(self)

    def comparison_subset(self) -> dict:
        values = self.as_dict()
        return {name: values[name] for name in COMPARISON_FIELDS}


def aggregate_metrics(
    classified: Sequence[ClassifiedLine],
    prices: Mapping[uuid.UUID, float],
) -> ReceptionMetrics:
    """Roll classified lines of one period up into the KPI set."""
    if not classified:
        return ReceptionMetrics()

    ordered_qty = 0
    received_qty = 0
    ordered_amount = 0.0
    received_amount = 0.0
    missing_amount = 0.0
    total_missing = 0
    partial_missing = 0
    delays: list[int] = []
    statuses: Counter = Counter()
    orders: set[uuid.UUID] = set()
    suppliers: set[uuid.UUID] = set()
    references: set[str] = set()
    rupture_references: set[str] = set()

    for item in classified:
        line = item.line
        price = prices.get(line.product_id) or 0.0

        ordered_qty += line.ordered_quantity
        received_qty += line.received_quantity
        ordered_amount += line.ordered_quantity * price
        received_amount += line.received_quantity * price
        missing_amount += item.missing_quantity * price

        statuses[item.status] += 1
        orders.add(line.order_id)
        if line.supplier_id is not None:
            suppliers.add(line.supplier_id)
        references.add(line.product_code)

        if item.status.is_rupture:
            rupture_references.add(line.product_code)
        if item.status.is_total:
            total_missing += item.missing_quantity
        else:
            partial_missing += item.missing_quantity
        if item.match is not None:
            delays.append(item.match.delay_days)

    nb_lines = len(classified)
    totales_courtes = statuses[StockoutStatus.RUPTURE_TOTALE_COURTE]
    totales_longues = statuses[StockoutStatus.RUPTURE_TOTALE_LONGUE]

    return ReceptionMetrics(
        quantite_commandee=ordered_qty,
        quantite_receptionnee=received_qty,
        montant_commande_ht=round(ordered_amount, 2),
        montant_receptionne_ht=round(received_amount, 2),
        delta_quantite=ordered_qty - received_qty,
        delta_montant=round(ordered_amount - received_amount, 2),
        taux_reception_quantite=_rate(received_qty, ordered_qty),
        taux_reception_montant=_rate(received_amount, ordered_amount),
        nb_commandes=len(orders),
        nb_lignes_commandes=nb_lines,
        nb_fournisseurs=len(suppliers),
        nb_references_total=len(references),
        nb_references_rupture=len(rupture_references),
        taux_references_rupture=_rate(len(rupture_references), len(references)),
        nb_ruptures_totales_courtes=totales_courtes,
        nb_ruptures_totales_longues=totales_longues,
        nb_ruptures_partielles_courtes=statuses[StockoutStatus.RUPTURE_COURTE],
        nb_ruptures_partielles_longues=statuses[StockoutStatus.RUPTURE_LONGUE],
        nb_ruptures_totales_recentes=statuses[StockoutStatus.RUPTURE_TOTALE],
        nb_receptions_partielles=statuses[StockoutStatus.RECEPTION_PARTIELLE],
        nb_ruptures_non_detectees=statuses[StockoutStatus.RUPTURE_NON_DETECTEE],
        nb_lignes_ok=statuses[StockoutStatus.OK],
        qte_rupture_totale=total_missing,
        qte_rupture_partielle=partial_missing,
        montant_rupture_ht=round(missing_amount, 2),
        taux_rupture_totale_pct=_rate(totales_courtes + totales_longues, nb_lines),
        delai_moyen_reception_jours=round(sum(delays) / len(delays), 1) if delays else None,
        nb_lignes_par_statut={status.value: statuses[status] for status in StockoutStatus},
    )
