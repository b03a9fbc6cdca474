"""
Aggregations behind the admin dashboard and analytics screens.
All functions are pure; the screens fetch rows through db.crud and pass them in.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from db.models import Category, Order, Product, Profile, Referral

Period = Literal["week", "month", "all"]

ALL_TIME_START = datetime(2020, 1, 1)


@dataclass(frozen=True)
class PeriodBounds:
    start: datetime
    prev_start: Optional[datetime]
    prev_end: Optional[datetime]


@dataclass(frozen=True)
class DayRevenue:
    label: str  # e.g. "Mon"
    day: str  # yyyy-mm-dd
    revenue: Decimal
    orders: int


@dataclass(frozen=True)
class AnalyticsSummary:
    total_revenue: Decimal
    total_orders: int
    total_customers: int
    total_products: int
    revenue_growth: float  # percent
    order_growth: float  # percent
    avg_order_value: Decimal
    orders_by_status: List[Tuple[str, int]]
    revenue_by_day: List[DayRevenue]
    customers_by_type: List[Tuple[str, int]]
    top_categories: List[Tuple[str, int]]


@dataclass(frozen=True)
class DashboardStats:
    total_products: int
    total_customers: int
    total_orders: int
    pending_orders: int
    total_revenue: Decimal
    total_referrals: int
    pending_referrals: int
    total_wallet_balance: Decimal


def _day_start(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _start_of_week(dt: datetime) -> datetime:
    # weeks start on Sunday
    return _day_start(dt) - timedelta(days=(dt.weekday() + 1) % 7)


def _start_of_month(dt: datetime) -> datetime:
    return _day_start(dt).replace(day=1)


def _end_of_month(dt: datetime) -> datetime:
    first_next = (_start_of_month(dt) + timedelta(days=32)).replace(day=1)
    return first_next - timedelta(microseconds=1)


def period_bounds(period: Period, now: datetime) -> PeriodBounds:
    """Start of the current window plus the comparison window before it."""
    if period == "week":
        prev = now - timedelta(days=7)
        prev_start = _start_of_week(prev)
        return PeriodBounds(
            start=_start_of_week(now),
            prev_start=prev_start,
            prev_end=prev_start + timedelta(days=7) - timedelta(microseconds=1),
        )
    if period == "month":
        prev = now - timedelta(days=30)
        return PeriodBounds(
            start=_start_of_month(now),
            prev_start=_start_of_month(prev),
            prev_end=_end_of_month(prev),
        )
    return PeriodBounds(start=ALL_TIME_START, prev_start=None, prev_end=None)


def growth_percent(current: Decimal | int, previous: Decimal | int) -> float:
    """Percentage change; 0 when there is nothing to compare against."""
    if previous <= 0:
        return 0.0
    return float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100)


def _revenue(orders: Iterable[Order]) -> Decimal:
    return sum((Decimal(o.final_amount or 0) for o in orders), Decimal(0))


def _counts(values: Iterable[str]) -> List[Tuple[str, int]]:
    return [(k.capitalize(), v) for k, v in Counter(values).items()]


def revenue_by_day(
    orders: Sequence[Order], now: datetime, days: int = 7
) -> List[DayRevenue]:
    result: List[DayRevenue] = []
    for back in range(days - 1, -1, -1):
        day = (now - timedelta(days=back)).date()
        day_orders = [o for o in orders if o.created_at.date() == day]
        result.append(
            DayRevenue(
                label=day.strftime("%a"),
                day=day.isoformat(),
                revenue=_revenue(day_orders),
                orders=len(day_orders),
            )
        )
    return result


def top_categories(
    products: Sequence[Product], categories: Sequence[Category], k: int = 5
) -> List[Tuple[str, int]]:
    names: Dict[int, str] = {c.id: c.name for c in categories}
    counter = Counter(
        names[p.category_id] for p in products if p.category_id in names
    )
    ranked = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    return ranked[:k]


def summarize_orders(
    orders: Sequence[Order],
    prev_orders: Sequence[Order],
    profiles: Sequence[Profile],
    products: Sequence[Product],
    categories: Sequence[Category],
    now: datetime,
) -> AnalyticsSummary:
    total_revenue = _revenue(orders)
    prev_revenue = _revenue(prev_orders)
    avg = total_revenue / len(orders) if orders else Decimal(0)
    return AnalyticsSummary(
        total_revenue=total_revenue,
        total_orders=len(orders),
        total_customers=len(profiles),
        total_products=len(products),
        revenue_growth=growth_percent(total_revenue, prev_revenue),
        order_growth=growth_percent(len(orders), len(prev_orders)),
        avg_order_value=avg,
        orders_by_status=_counts(o.status or "pending" for o in orders),
        revenue_by_day=revenue_by_day(orders, now),
        customers_by_type=_counts(p.user_type for p in profiles),
        top_categories=top_categories(products, categories),
    )


def dashboard_stats(
    product_count: int,
    profiles: Sequence[Profile],
    orders: Sequence[Order],
    referrals: Sequence[Referral],
) -> DashboardStats:
    return DashboardStats(
        total_products=product_count,
        total_customers=len(profiles),
        total_orders=len(orders),
        pending_orders=sum(1 for o in orders if o.status == "pending"),
        total_revenue=_revenue(orders),
        total_referrals=len(referrals),
        pending_referrals=sum(1 for r in referrals if not r.is_claimed),
        total_wallet_balance=sum(
            (Decimal(p.wallet_balance or 0) for p in profiles), Decimal(0)
        ),
    )
