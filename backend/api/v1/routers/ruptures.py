"""
Ruptures Router — Order / reception reconciliation KPIs.

  POST /api/v1/ruptures/order-reception-metrics  chain KPIs (+ comparison period)
  POST /api/v1/ruptures/products                 per-reference rupture table

Both endpoints honor the caller's pharmacy scope: admins see the whole
chain, other users only their own pharmacy.
"""

import time
from datetime import date
from typing import Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import SQLAlchemyError

from api.deps import get_current_user, get_reconciliation_config, get_session_factory
from core.config import get_settings
from core.security import UserContext, resolve_pharmacy_scope
from ruptures.pipeline import ReceptionRequest, SessionFactory, build_reception_report, build_rupture_products
from ruptures.types import DateWindow, OrderFilters, ReconciliationConfig

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/ruptures", tags=["ruptures"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class DateRangeIn(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self):
        if self.start > self.end:
            raise ValueError("dateRange.start must be on or before dateRange.end")
        return self

    def to_window(self) -> DateWindow:
        return DateWindow(self.start, self.end)


class OrderReceptionRequest(BaseModel):
    date_range: DateRangeIn = Field(..., alias="dateRange")
    comparison_date_range: DateRangeIn | None = Field(None, alias="comparisonDateRange")
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    laboratory_codes: list[str] = Field(default_factory=list, alias="laboratoryCodes")
    category_codes: list[str] = Field(default_factory=list, alias="categoryCodes")
    pharmacy_ids: list[UUID] = Field(default_factory=list, alias="pharmacyIds")

    model_config = {"populate_by_name": True}


class ComparisonMetrics(BaseModel):
    quantite_commandee: int
    quantite_receptionnee: int
    montant_commande_ht: float
    montant_receptionne_ht: float
    delta_quantite: int
    delta_montant: float
    nb_references_total: int
    nb_references_rupture: int
    taux_references_rupture: float
    nb_ruptures_totales_courtes: int
    nb_ruptures_totales_longues: int
    nb_ruptures_partielles_courtes: int
    nb_ruptures_partielles_longues: int
    qte_rupture_totale: int
    qte_rupture_partielle: int
    taux_rupture_totale_pct: float


class OrderReceptionMetricsResponse(ComparisonMetrics):
    taux_reception_quantite: float
    taux_reception_montant: float
    nb_commandes: int
    nb_lignes_commandes: int
    nb_fournisseurs: int
    nb_ruptures_totales_recentes: int
    nb_receptions_partielles: int
    nb_ruptures_non_detectees: int
    nb_lignes_ok: int
    montant_rupture_ht: float
    delai_moyen_reception_jours: float | None
    nb_lignes_par_statut: dict[str, int]
    comparison: ComparisonMetrics | None = None
    queryTime: int
    cached: bool = False


class RuptureProductRow(BaseModel):
    code_ean: str
    nom: str | None
    periode: str
    periode_libelle: str
    type_ligne: Literal["DETAIL", "SYNTHESE"]
    nb_lignes: int
    quantite_vendue: int
    quantite_commandee: int
    quantite_receptionnee: int
    quantite_stock: int
    delta_quantite: int
    quantite_manquante: int
    taux_reception: float
    prix_achat_moyen: float
    montant_delta: float
    montant_manquant_ht: float
    statut_principal: str | None
    nb_lignes_par_statut: dict[str, int]


class RuptureProductsResponse(BaseModel):
    rupturesData: list[RuptureProductRow]
    count: int
    dateRange: DateRangeIn
    queryTime: int
    cached: bool = False


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _build_request(body: OrderReceptionRequest, user: UserContext) -> ReceptionRequest:
    try:
        pharmacy_scope = resolve_pharmacy_scope(user, body.pharmacy_ids)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    filters = OrderFilters.build(
        product_codes=body.product_codes,
        laboratory_codes=body.laboratory_codes,
        category_codes=body.category_codes,
        pharmacy_ids=pharmacy_scope,
    )
    comparison = body.comparison_date_range.to_window() if body.comparison_date_range else None
    return ReceptionRequest(window=body.date_range.to_window(), filters=filters, comparison_window=comparison)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post(
    "/order-reception-metrics",
    response_model=OrderReceptionMetricsResponse,
    response_model_exclude_unset=True,
)
async def get_order_reception_metrics(
    body: OrderReceptionRequest,
    user: UserContext = Depends(get_current_user),
    session_factory: SessionFactory = Depends(get_session_factory),
    config: ReconciliationConfig = Depends(get_reconciliation_config),
):
    """
    Ordered vs received quantities and amounts, stockout classification
    counts and rates for the date range. With comparisonDateRange, the
    same pipeline runs over that range and is returned under `comparison`.
    """
    started = time.perf_counter()
    request = _build_request(body, user)
    logger.info(
        "reception.metrics_requested",
        user=user.user_id,
        start=str(request.window.start),
        end=str(request.window.end),
        has_comparison=request.comparison_window is not None,
        product_codes=len(request.filters.product_codes),
    )

    try:
        report = await build_reception_report(
            session_factory,
            request,
            config=config,
            parallel=get_settings().parallel_periods,
        )
    except SQLAlchemyError as exc:
        logger.error("reception.store_error", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reception metrics unavailable",
        ) from exc

    report["queryTime"] = _elapsed_ms(started)
    report["cached"] = False
    logger.info("reception.metrics_completed", query_time_ms=report["queryTime"])
    return OrderReceptionMetricsResponse(**report)


@router.post("/products", response_model=RuptureProductsResponse)
async def get_rupture_products(
    body: OrderReceptionRequest,
    user: UserContext = Depends(get_current_user),
    session_factory: SessionFactory = Depends(get_session_factory),
    config: ReconciliationConfig = Depends(get_reconciliation_config),
):
    """
    Per-reference sales, stock, ordered, received and missing quantities.

    Each reference gets a SYNTHESE row for the whole range, then DETAIL rows
    per day (per month beyond 62 days). References with the highest missing
    amount come first.
    """
    started = time.perf_counter()
    request = _build_request(body, user)

    try:
        rows = await build_rupture_products(session_factory, request, config=config)
    except SQLAlchemyError as exc:
        logger.error("reception.store_error", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rupture products unavailable",
        ) from exc

    return RuptureProductsResponse(
        rupturesData=rows,
        count=len(rows),
        dateRange=body.date_range,
        queryTime=_elapsed_ms(started),
    )
