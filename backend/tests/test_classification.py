"""
Tests for stockout classification.

Covers:
  - every row of the status table, with thresholds on both sides
  - one status per line, for any mix of inputs
  - missing quantity per line
"""

import uuid
from datetime import date, timedelta

import pytest

from ruptures.classification import classify_line, classify_lines, missing_quantity
from ruptures.types import MatchResult, OrderLine, ReceptionEvent, ReconciliationConfig, StockoutStatus

TODAY = date(2024, 6, 30)


def _line(ordered: int, received: int, age_days: int = 10) -> OrderLine:
    return OrderLine(
        line_id=uuid.uuid4(),
        order_id=uuid.uuid4(),
        product_id=uuid.uuid4(),
        product_code="3400930000001",
        pharmacy_id=uuid.uuid4(),
        supplier_id=None,
        ordered_quantity=ordered,
        received_quantity=received,
        delivery_date=TODAY - timedelta(days=age_days),
    )


def _match(line: OrderLine, delay_days: int, quantity: float | None = None) -> MatchResult:
    quantity = line.received_quantity if quantity is None else quantity
    event = ReceptionEvent(line.product_id, line.delivery_date + timedelta(days=delay_days), quantity)
    return MatchResult(
        line_id=line.line_id,
        event=event,
        delay_days=delay_days,
        quantity_difference=abs(quantity - line.received_quantity),
    )


# ── Untracked lines (nothing reported received) ──────────────────────────


class TestUntrackedLines:
    @pytest.mark.parametrize(
        "age, expected",
        [
            (0, StockoutStatus.RUPTURE_TOTALE),
            (30, StockoutStatus.RUPTURE_TOTALE),
            (31, StockoutStatus.RUPTURE_TOTALE_COURTE),
            (60, StockoutStatus.RUPTURE_TOTALE_COURTE),
            (61, StockoutStatus.RUPTURE_TOTALE_LONGUE),
            (365, StockoutStatus.RUPTURE_TOTALE_LONGUE),
        ],
    )
    def test_status_by_age(self, age, expected):
        assert classify_line(_line(100, 0, age_days=age), None, TODAY) == expected

    def test_delivery_in_the_future_is_recent(self):
        assert classify_line(_line(10, 0, age_days=-3), None, TODAY) == StockoutStatus.RUPTURE_TOTALE

    def test_match_is_ignored_when_nothing_was_reported(self):
        line = _line(100, 0, age_days=70)
        assert classify_line(line, _match(line, 2, quantity=100), TODAY) == StockoutStatus.RUPTURE_TOTALE_LONGUE

    def test_age_is_relative_to_injected_today(self):
        line = _line(10, 0, age_days=20)
        later = TODAY + timedelta(days=50)
        assert classify_line(line, None, later) == StockoutStatus.RUPTURE_TOTALE_LONGUE


# ── Tracked lines ────────────────────────────────────────────────────────


class TestTrackedLines:
    def test_fully_received_and_matched_is_ok(self):
        line = _line(50, 50)
        assert classify_line(line, _match(line, 10), TODAY) == StockoutStatus.OK

    def test_fully_received_and_unmatched_is_ok(self):
        assert classify_line(_line(20, 20), None, TODAY) == StockoutStatus.OK

    def test_over_received_is_ok(self):
        line = _line(20, 24)
        assert classify_line(line, _match(line, 5), TODAY) == StockoutStatus.OK

    def test_partial_unmatched_is_undetected_rupture(self):
        assert classify_line(_line(50, 10), None, TODAY) == StockoutStatus.RUPTURE_NON_DETECTEE

    @pytest.mark.parametrize(
        "delay, expected",
        [
            (-5, StockoutStatus.RECEPTION_PARTIELLE),
            (0, StockoutStatus.RECEPTION_PARTIELLE),
            (30, StockoutStatus.RECEPTION_PARTIELLE),
            (31, StockoutStatus.RUPTURE_COURTE),
            (60, StockoutStatus.RUPTURE_COURTE),
            (61, StockoutStatus.RUPTURE_LONGUE),
            (90, StockoutStatus.RUPTURE_LONGUE),
        ],
    )
    def test_partial_matched_status_by_delay(self, delay, expected):
        line = _line(80, 40)
        assert classify_line(line, _match(line, delay), TODAY) == expected

    def test_delay_not_age_drives_partial_status(self):
        # Delivered long ago, but the reception showed up within a week
        line = _line(80, 40, age_days=200)
        assert classify_line(line, _match(line, 6), TODAY) == StockoutStatus.RECEPTION_PARTIELLE


class TestCustomThresholds:
    def test_thresholds_come_from_config(self):
        config = ReconciliationConfig(short_rupture_days=7, long_rupture_days=14)
        line = _line(80, 40)

        assert classify_line(line, _match(line, 8), TODAY, config) == StockoutStatus.RUPTURE_COURTE
        assert classify_line(line, _match(line, 15), TODAY, config) == StockoutStatus.RUPTURE_LONGUE
        assert classify_line(_line(5, 0, age_days=10), None, TODAY, config) == StockoutStatus.RUPTURE_TOTALE_COURTE


# ── Missing quantity ─────────────────────────────────────────────────────


class TestMissingQuantity:
    def test_untracked_line_misses_whole_order(self):
        assert missing_quantity(_line(100, 0)) == 100

    def test_tracked_line_misses_shortfall(self):
        assert missing_quantity(_line(80, 30)) == 50

    def test_never_negative(self):
        assert missing_quantity(_line(20, 25)) == 0


# ── Batch classification ─────────────────────────────────────────────────


class TestClassifyLines:
    def test_one_status_per_line_in_input_order(self):
        lines = [
            _line(100, 0, age_days=70),
            _line(50, 50),
            _line(80, 40),
            _line(80, 40),
            _line(10, 0, age_days=40),
            _line(10, 0, age_days=3),
        ]
        matches = {
            lines[1].line_id: _match(lines[1], 10),
            lines[2].line_id: _match(lines[2], 45),
        }

        classified = classify_lines(lines, matches, TODAY)

        assert [c.line.line_id for c in classified] == [l.line_id for l in lines]
        assert [c.status for c in classified] == [
            StockoutStatus.RUPTURE_TOTALE_LONGUE,
            StockoutStatus.OK,
            StockoutStatus.RUPTURE_COURTE,
            StockoutStatus.RUPTURE_NON_DETECTEE,
            StockoutStatus.RUPTURE_TOTALE_COURTE,
            StockoutStatus.RUPTURE_TOTALE,
        ]
        assert [c.missing_quantity for c in classified] == [100, 0, 40, 40, 10, 10]

    def test_match_is_attached_to_tracked_lines_only(self):
        tracked = _line(80, 40)
        untracked = _line(80, 0)
        matches = {
            tracked.line_id: _match(tracked, 12),
            untracked.line_id: _match(untracked, 12, quantity=80),
        }

        by_id = {c.line.line_id: c for c in classify_lines([tracked, untracked], matches, TODAY)}

        assert by_id[tracked.line_id].match is matches[tracked.line_id]
        assert by_id[untracked.line_id].match is None

    def test_every_line_gets_a_known_status(self):
        lines = [_line(o, r, age_days=a) for o in (1, 40) for r in (0, 1, 40, 60) for a in (0, 31, 61)]
        matches = {l.line_id: _match(l, 35) for l in lines[::2] if l.received_quantity > 0}

        classified = classify_lines(lines, matches, TODAY)

        assert len(classified) == len(lines)
        assert all(isinstance(c.status, StockoutStatus) for c in classified)
        assert all(c.missing_quantity >= 0 for c in classified)

    def test_empty(self):
        assert classify_lines([], {}, TODAY) == []
