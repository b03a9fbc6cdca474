import asyncio
from datetime import datetime
from typing import List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, MarkdownViewer, Select

import db.crud as crud
from core.analytics import (
    AnalyticsSummary,
    DashboardStats,
    dashboard_stats,
    period_bounds,
    summarize_orders,
)
from utils.pure import format_currency, format_percent, generate_markdown_table
from views.base_screen import BaseScreen

PERIODS = [("This week", "week"), ("This month", "month"), ("All time", "all")]


def _bar(value, top, width: int = 24) -> str:
    if top <= 0:
        return ""
    return "█" * max(int(width * value / top), 1 if value > 0 else 0)


def _count_table(title: str, rows: List[Tuple[str, int]]) -> str:
    body = generate_markdown_table(["", "Count"], [list(r) for r in rows], ["l", "r"])
    return f"#### {title}\n\n" + (body or "_No data._") + "\n\n"


def render_dashboard(
    stats: DashboardStats, summary: AnalyticsSummary, label: str
) -> str:
    md = "### Store Overview\n\n" + generate_markdown_table(
        None,
        [
            ["Metric", "Value"],
            ["Products", stats.total_products],
            ["Customers", stats.total_customers],
            ["Orders", f"{stats.total_orders} ({stats.pending_orders} pending)"],
            ["Revenue", format_currency(stats.total_revenue)],
            [
                "Referrals",
                f"{stats.total_referrals} ({stats.pending_referrals} pending)",
            ],
            ["Wallet balances", format_currency(stats.total_wallet_balance)],
        ],
        ["l", "r"],
    )

    md += f"\n\n### Analytics: {label}\n\n" + generate_markdown_table(
        None,
        [
            ["Metric", "Value", "Growth"],
            [
                "Revenue",
                format_currency(summary.total_revenue),
                format_percent(summary.revenue_growth),
            ],
            ["Orders", summary.total_orders, format_percent(summary.order_growth)],
            ["Average order", format_currency(summary.avg_order_value), ""],
        ],
        ["l", "r", "r"],
    )

    top = max((d.revenue for d in summary.revenue_by_day), default=0)
    day_rows = [
        [
            f"{d.label} {d.day}",
            d.orders,
            format_currency(d.revenue),
            _bar(d.revenue, top),
        ]
        for d in summary.revenue_by_day
    ]
    md += "\n\n#### Revenue, last 7 days\n\n" + generate_markdown_table(
        ["Day", "Orders", "Revenue", ""], day_rows, ["l", "r", "r", "l"]
    )
    md += "\n\n"
    md += _count_table("Orders by status", summary.orders_by_status)
    md += _count_table("Customers by type", summary.customers_by_type)
    md += _count_table("Top categories (products)", summary.top_categories)
    return md


class AdminDashboardScreen(BaseScreen):
    """
    Admin landing page: store totals plus period analytics.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-controls"):
                yield Select(
                    PERIODS, value="week", allow_blank=False, id="select-period"
                )
                yield Button("Refresh", id="btn-refresh")
            yield MarkdownViewer(id="md-dashboard", show_table_of_contents=False)

    @on(ScreenResume)
    @on(Select.Changed, "#select-period")
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        period = self.query_one("#select-period", Select).value
        now = datetime.now()
        bounds = period_bounds(period, now)

        product_count, profiles, all_orders, referrals, products, categories = (
            await asyncio.gather(
                crud.count_products(),
                crud.list_profiles(),
                crud.list_all_orders(),
                crud.list_all_referrals(),
                crud.list_products(),
                crud.list_categories(),
            )
        )
        orders = await crud.list_all_orders(since=bounds.start)
        prev_orders = []
        if bounds.prev_start is not None:
            prev_orders = await crud.list_all_orders(
                since=bounds.prev_start, until=bounds.prev_end
            )

        stats = dashboard_stats(product_count, profiles, all_orders, referrals)
        summary = summarize_orders(
            orders, prev_orders, profiles, products, categories, now
        )
        label = dict((v, k) for k, v in PERIODS)[period]
        await self.query_one(MarkdownViewer).document.update(
            render_dashboard(stats, summary, label)
        )
