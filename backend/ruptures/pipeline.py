"""
Order-to-reception reconciliation pipeline.

One period runs strictly in sequence:
  extract → split → estimate receptions → match → classify → aggregate

The current and comparison periods share nothing, so they run as sibling
tasks, each on its own session. If either fails, the other is cancelled
and the error propagates as a single failure: a report mixing a complete
and a broken period would skew every rate.
"""

import asyncio
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ruptures.classification import classify_lines
from ruptures.matching import match_orders_to_receptions
from ruptures.metrics import ReceptionMetrics, aggregate_metrics
from ruptures.products import summarize_products
from ruptures.reception import estimate_reception_events, split_by_reception
from ruptures.repository import extract_order_lines, fetch_daily_sales, fetch_latest_prices, fetch_stock_snapshots
from ruptures.types import DateWindow, OrderFilters, PeriodResult, ReconciliationConfig

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class ReceptionRequest:
    window: DateWindow
    filters: OrderFilters
    comparison_window: DateWindow | None = None


async def compute_period(
    db: AsyncSession,
    window: DateWindow,
    filters: OrderFilters,
    config: ReconciliationConfig,
    today: date,
) -> PeriodResult:
    """Classify every order line delivered in the window."""
    started = time.perf_counter()
    logger.info("reception.period_start", start=str(window.start), end=str(window.end))

    lines = await extract_order_lines(db, window, filters)
    tracked, untracked = split_by_reception(lines)

    # Series cover every extracted product: matching only uses the tracked
    # ones, the products table reports sales and stock for all of them
    stock_window = window.padded(config.window_padding_days)
    products = {line.product_id for line in lines}
    snapshots = await fetch_stock_snapshots(db, products, stock_window)
    sales = await fetch_daily_sales(db, products, stock_window)

    events = estimate_reception_events(snapshots, sales, config.noise_floor)
    matches = match_orders_to_receptions(tracked, events, config)
    classified = classify_lines(lines, matches, today, config)
    prices = await fetch_latest_prices(db, products)

    logger.info(
        "reception.period_complete",
        start=str(window.start),
        end=str(window.end),
        lines=len(lines),
        tracked=len(tracked),
        untracked=len(untracked),
        events=len(events),
        matched=len(matches),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return PeriodResult(window=window, lines=classified, prices=prices, snapshots=snapshots, sales=sales)


async def _run_period(
    session_factory: SessionFactory,
    window: DateWindow,
    filters: OrderFilters,
    config: ReconciliationConfig,
    today: date,
) -> PeriodResult:
    async with session_factory() as db:
        return await compute_period(db, window, filters, config, today)


async def compute_metrics(
    session_factory: SessionFactory,
    window: DateWindow,
    filters: OrderFilters,
    config: ReconciliationConfig | None = None,
    today: date | None = None,
) -> ReceptionMetrics:
    """Metrics of a single period. Current and comparison periods both go through here."""
    config = config or ReconciliationConfig()
    period = await _run_period(session_factory, window, filters, config, today or date.today())
    return aggregate_metrics(period.lines, period.prices)


async def _run_periods(
    session_factory: SessionFactory,
    windows: list[DateWindow],
    filters: OrderFilters,
    config: ReconciliationConfig,
    today: date,
    parallel: bool,
) -> list[ReceptionMetrics]:
    if not parallel or len(windows) == 1:
        return [await compute_metrics(session_factory, w, filters, config, today) for w in windows]

    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(compute_metrics(session_factory, w, filters, config, today)) for w in windows]
    except ExceptionGroup as group:
        # Surface the first failure as-is; siblings are already cancelled
        raise group.exceptions[0] from group
    return [task.result() for task in tasks]


async def build_reception_report(
    session_factory: SessionFactory,
    request: ReceptionRequest,
    config: ReconciliationConfig | None = None,
    today: date | None = None,
    parallel: bool = True,
) -> dict:
    """
    KPI report for the request window, plus a `comparison` block when a
    comparison window is given. Both periods use the same filters.
    """
    config = config or ReconciliationConfig()
    today = today or date.today()
    windows = [request.window]
    if request.comparison_window is not None:
        windows.append(request.comparison_window)

    periods = await _run_periods(session_factory, windows, request.filters, config, today, parallel)

    report = periods[0].as_dict()
    if len(periods) > 1:
        report["comparison"] = periods[1].comparison_subset()
    return report


async def build_rupture_products(
    session_factory: SessionFactory,
    request: ReceptionRequest,
    config: ReconciliationConfig | None = None,
    today: date | None = None,
) -> list[dict]:
    """Per-reference rupture table (SYNTHESE + DETAIL rows) for the request window; comparison window ignored."""
    config = config or ReconciliationConfig()
    period = await _run_period(session_factory, request.window, request.filters, config, today or date.today())
    return summarize_products(period.lines, period.prices, period.window, period.snapshots, period.sales)
