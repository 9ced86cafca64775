"""
Reconciliation domain types.

Everything here lives for one request: order lines are read from the
store, reception events / matches / statuses are derived and thrown away
once the metrics are returned.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from core.config import DEFAULT_RECEPTION_NOISE_FLOOR, Settings

# ── Request inputs ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DateWindow:
    """Inclusive [start, end] analysis window."""

    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Invalid date range: start {self.start} is after end {self.end}")

    def padded(self, days: int) -> "DateWindow":
        return DateWindow(self.start - timedelta(days=days), self.end + timedelta(days=days))


@dataclass(frozen=True)
class OrderFilters:
    """
    Scope of an extraction.

    product_codes: EAN-13 codes (products, laboratories and categories already
    expanded to codes by the filter layer). Empty = every product.
    pharmacy_ids: None = every pharmacy; an empty set matches nothing
    (a restricted user asking for someone else's pharmacy).
    """

    product_codes: frozenset[str] = frozenset()
    pharmacy_ids: frozenset[uuid.UUID] | None = None

    @classmethod
    def build(
        cls,
        product_codes: list[str] | None = None,
        laboratory_codes: list[str] | None = None,
        category_codes: list[str] | None = None,
        pharmacy_ids: frozenset[uuid.UUID] | None = None,
    ) -> "OrderFilters":
        merged = set(product_codes or []) | set(laboratory_codes or []) | set(category_codes or [])
        return cls(product_codes=frozenset(merged), pharmacy_ids=pharmacy_ids)

    @property
    def matches_nothing(self) -> bool:
        return self.pharmacy_ids is not None and not self.pharmacy_ids


@dataclass(frozen=True)
class ReconciliationConfig:
    """Tunable thresholds of the reconciliation pipeline."""

    noise_floor: float = DEFAULT_RECEPTION_NOISE_FLOOR
    window_padding_days: int = 30
    match_lookback_days: int = 5
    match_lookahead_days: int = 90
    short_rupture_days: int = 30
    long_rupture_days: int = 60

    def __post_init__(self):
        if self.short_rupture_days >= self.long_rupture_days:
            raise ValueError(
                f"short_rupture_days ({self.short_rupture_days}) must be lower than "
                f"long_rupture_days ({self.long_rupture_days})"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconciliationConfig":
        return cls(
            noise_floor=settings.reception_noise_floor,
            window_padding_days=settings.stock_window_padding_days,
            match_lookback_days=settings.match_lookback_days,
            match_lookahead_days=settings.match_lookahead_days,
            short_rupture_days=settings.short_rupture_days,
            long_rupture_days=settings.long_rupture_days,
        )


# ── Store facts ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OrderLine:
    line_id: uuid.UUID
    order_id: uuid.UUID
    product_id: uuid.UUID  # per-pharmacy product
    product_code: str  # EAN-13
    pharmacy_id: uuid.UUID
    supplier_id: uuid.UUID | None
    ordered_quantity: int
    received_quantity: int
    delivery_date: date
    product_name: str | None = None


@dataclass(frozen=True)
class StockSnapshot:
    product_id: uuid.UUID
    date: date
    stock: int


@dataclass(frozen=True)
class SalesRecord:
    product_id: uuid.UUID
    date: date
    quantity: int


# ── Derived ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ReceptionEvent:
    """Estimated inbound units for a product on a day (stock rise + same-day sales)."""

    product_id: uuid.UUID
    date: date
    quantity: float


@dataclass(frozen=True)
class MatchResult:
    line_id: uuid.UUID
    event: ReceptionEvent
    delay_days: int
    quantity_difference: float


class StockoutStatus(str, Enum):
    """Exactly one per order line."""

    OK = "OK"
    RECEPTION_PARTIELLE = "RECEPTION_PARTIELLE"
    RUPTURE_COURTE = "RUPTURE_COURTE"
    RUPTURE_LONGUE = "RUPTURE_LONGUE"
    RUPTURE_NON_DETECTEE = "RUPTURE_NON_DETECTEE"
    RUPTURE_TOTALE = "RUPTURE_TOTALE"
    RUPTURE_TOTALE_COURTE = "RUPTURE_TOTALE_COURTE"
    RUPTURE_TOTALE_LONGUE = "RUPTURE_TOTALE_LONGUE"

    @property
    def is_rupture(self) -> bool:
        return self is not StockoutStatus.OK

    @property
    def is_total(self) -> bool:
        return self in TOTAL_RUPTURES


TOTAL_RUPTURES = frozenset(
    {
        StockoutStatus.RUPTURE_TOTALE,
        StockoutStatus.RUPTURE_TOTALE_COURTE,
        StockoutStatus.RUPTURE_TOTALE_LONGUE,
    }
)

# Worst first; used to pick the headline status of a product
SEVERITY_ORDER: tuple[StockoutStatus, ...] = (
    StockoutStatus.RUPTURE_TOTALE_LONGUE,
    StockoutStatus.RUPTURE_TOTALE_COURTE,
    StockoutStatus.RUPTURE_TOTALE,
    StockoutStatus.RUPTURE_LONGUE,
    StockoutStatus.RUPTURE_COURTE,
    StockoutStatus.RUPTURE_NON_DETECTEE,
    StockoutStatus.RECEPTION_PARTIELLE,
    StockoutStatus.OK,
)


@dataclass(frozen=True)
class ClassifiedLine:
    line: OrderLine
    status: StockoutStatus
    missing_quantity: int
    match: MatchResult | None = None

    @property
    def tracked(self) -> bool:
        return self.line.received_quantity > 0


@dataclass
class PeriodResult:
    """Classified lines of one period, plus the prices and stock / sales series read for them."""

    window: DateWindow
    lines: list[ClassifiedLine] = field(default_factory=list)
    prices: dict[uuid.UUID, float] = field(default_factory=dict)
    snapshots: list[StockSnapshot] = field(default_factory=list)
    sales: list[SalesRecord] = field(default_factory=list)
