#!/usr/bin/env python3
"""
Reception Report — Run the order/reception reconciliation from the command line.

Usage:
  python scripts/run_reception_report.py --start 2024-01-01 --end 2024-03-31
  python scripts/run_reception_report.py --start 2024-04-01 --end 2024-04-30 \\
      --compare-start 2023-04-01 --compare-end 2023-04-30 --pharmacy <uuid>
  python scripts/run_reception_report.py --start 2024-01-01 --end 2024-03-31 --products

Prints the same JSON the API returns, without auth scoping (admin view).
"""

import argparse
import asyncio
import json
import os
import sys
import uuid
from datetime import date

# Add backend to path so imports work
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from core.config import get_settings
from db.session import create_session_factory
from ruptures.pipeline import ReceptionRequest, build_reception_report, build_rupture_products
from ruptures.types import DateWindow, OrderFilters, ReconciliationConfig

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Order / reception reconciliation report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--start", type=date.fromisoformat, required=True, help="Window start (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, required=True, help="Window end (YYYY-MM-DD)")
    parser.add_argument("--compare-start", type=date.fromisoformat, default=None, help="Comparison window start")
    parser.add_argument("--compare-end", type=date.fromisoformat, default=None, help="Comparison window end")
    parser.add_argument(
        "--product",
        action="append",
        default=[],
        help="EAN-13 code to include (repeatable, default: all products)",
    )
    parser.add_argument(
        "--pharmacy",
        type=uuid.UUID,
        action="append",
        default=[],
        help="Pharmacy id to include (repeatable, default: all pharmacies)",
    )
    parser.add_argument("--today", type=date.fromisoformat, default=None, help="Reference day for ages (default: today)")
    parser.add_argument("--products", action="store_true", help="Print the per-reference table instead of KPIs")
    parser.add_argument("--sequential", action="store_true", help="Run current and comparison periods one after the other")
    return parser


def parse_request(args: argparse.Namespace) -> ReceptionRequest:
    if (args.compare_start is None) != (args.compare_end is None):
        raise ValueError("--compare-start and --compare-end go together")

    comparison = DateWindow(args.compare_start, args.compare_end) if args.compare_start else None
    return ReceptionRequest(
        window=DateWindow(args.start, args.end),
        filters=OrderFilters.build(
            product_codes=args.product,
            pharmacy_ids=frozenset(args.pharmacy) if args.pharmacy else None,
        ),
        comparison_window=comparison,
    )


async def run(args: argparse.Namespace) -> dict | list:
    settings = get_settings()
    config = ReconciliationConfig.from_settings(settings)
    request = parse_request(args)

    engine, session_factory = create_session_factory(settings.database_url)
    try:
        if args.products:
            return await build_rupture_products(session_factory, request, config=config, today=args.today)
        return await build_reception_report(
            session_factory,
            request,
            config=config,
            today=args.today,
            parallel=settings.parallel_periods and not args.sequential,
        )
    finally:
        await engine.dispose()


def main():
    args = build_parser().parse_args()
    try:
        result = asyncio.run(run(args))
    except ValueError as exc:
        logger.error("reception.cli_invalid_arguments", error=str(exc))
        return 2

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
