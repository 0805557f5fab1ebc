from __future__ import annotations

import csv
import io
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from psycopg import Connection

from .domain import OrderStatus
from .ledger import ZERO, round_money, to_money
from .receipts import format_currency
from .repositories.expense_repo import ExpenseRepository
from .repositories.order_repo import OrderRepository
from .repositories.payment_repo import PaymentRepository
from .repositories.shop_repo import ShopRepository


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return round_money(part / whole * 100, Decimal("0.1"))


def _total(rows: Iterable[dict], key: str = "amount") -> Decimal:
    return sum((to_money(r.get(key)) for r in rows), ZERO)


@dataclass(frozen=True)
class KpiMetrics:
    total_revenue: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    active_orders: int
    completed_orders: int
    pending_closure: int
    avg_order_value: Decimal


def kpi_metrics(orders: list[dict], payments: list[dict], expenses: list[dict]) -> KpiMetrics:
    revenue = _total(payments)
    spent = _total(expenses)
    statuses = [int(o.get("status") or 0) for o in orders]
    avg = round_money(revenue / len(orders)) if orders else ZERO
    return KpiMetrics(
        total_revenue=revenue,
        total_expenses=spent,
        net_profit=revenue - spent,
        active_orders=sum(1 for s in statuses if s < OrderStatus.CLOSED),
        completed_orders=sum(1 for s in statuses if s == OrderStatus.CLOSED),
        pending_closure=sum(1 for s in statuses if s == OrderStatus.COLLECTED),
        avg_order_value=avg,
    )


def daily_revenue(payments: list[dict]) -> list[tuple[str, Decimal]]:
    """Revenue per calendar day, oldest first, labelled like ``Jan 5``."""
    by_day: dict = {}
    for p in payments:
        ts = p.get("recorded_at")
        if not isinstance(ts, datetime):
            continue
        day = ts.date()
        by_day[day] = by_day.get(day, ZERO) + to_money(p.get("amount"))
    return [(f"{d:%b} {d.day}", by_day[d]) for d in sorted(by_day)]


def product_mix(orders: list[dict]) -> "OrderedDict[str, Decimal]":
    mix: OrderedDict[str, Decimal] = OrderedDict()
    for o in orders:
        garment = o.get("garment_type") or "Unknown"
        mix[garment] = mix.get(garment, ZERO) + to_money(o.get("price"))
    return mix


@dataclass(frozen=True)
class ProductStat:
    name: str
    count: int
    revenue: Decimal
    percentage: Decimal


def top_products(orders: list[dict], limit: int = 5) -> list[ProductStat]:
    counts: dict[str, int] = {}
    for o in orders:
        garment = o.get("garment_type") or "Unknown"
        counts[garment] = counts.get(garment, 0) + 1
    mix = product_mix(orders)
    total = sum(mix.values(), ZERO)
    stats = [ProductStat(name, counts[name], revenue, _pct(revenue, total)) for name, revenue in mix.items()]
    stats.sort(key=lambda s: s.revenue, reverse=True)
    return stats[:limit]


@dataclass(frozen=True)
class ShopPerformance:
    shop_id: int
    name: str
    revenue: Decimal
    expense: Decimal
    profit: Decimal
    efficiency: Decimal


def shop_performance(shops: list, orders: list[dict], expenses: list[dict], limit: int = 10) -> list[ShopPerformance]:
    """Per-shop booked revenue (order prices) against expenses, by revenue."""
    rows = []
    for shop in shops:
        revenue = _total((o for o in orders if o.get("shop_id") == shop.id), "price")
        expense = _total(e for e in expenses if e.get("shop_id") == shop.id)
        rows.append(
            ShopPerformance(
                shop_id=shop.id,
                name=shop.name,
                revenue=revenue,
                expense=expense,
                profit=revenue - expense,
                efficiency=_pct(revenue - expense, revenue),
            )
        )
    rows.sort(key=lambda r: r.revenue, reverse=True)
    return rows[:limit]


def shop_rankings(performance: list[ShopPerformance]) -> list[ShopPerformance]:
    return sorted(performance, key=lambda r: r.efficiency, reverse=True)


def expenses_by_category(expenses: list[dict], limit: int = 8) -> list[tuple[str, Decimal]]:
    totals: dict[str, Decimal] = {}
    for e in expenses:
        category = e.get("category") or "Uncategorized"
        totals[category] = totals.get(category, ZERO) + to_money(e.get("amount"))
    return sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:limit]


@dataclass(frozen=True)
class Insights:
    top_product: str
    top_product_share: Decimal
    net_profit: Decimal
    profit_margin: Decimal
    expense_ratio: Decimal
    total_expenses: Decimal
    total_orders: int
    active_orders: int

    @property
    def healthy(self) -> bool:
        return self.profit_margin > 20


def insights(orders: list[dict], metrics: KpiMetrics) -> Insights:
    mix = product_mix(orders)
    top = max(mix, key=mix.get) if mix else "None"
    return Insights(
        top_product=top,
        top_product_share=_pct(mix.get(top, ZERO), metrics.total_revenue).quantize(Decimal("1")),
        net_profit=metrics.net_profit,
        profit_margin=_pct(metrics.net_profit, metrics.total_revenue),
        expense_ratio=_pct(metrics.total_expenses, metrics.total_revenue),
        total_expenses=metrics.total_expenses,
        total_orders=len(orders),
        active_orders=metrics.active_orders,
    )


@dataclass
class Dashboard:
    metrics: KpiMetrics
    revenue_by_day: list[tuple[str, Decimal]]
    mix: "OrderedDict[str, Decimal]"
    products: list[ProductStat]
    performance: list[ShopPerformance]
    rankings: list[ShopPerformance]
    expense_categories: list[tuple[str, Decimal]]
    expense_audit: list = field(default_factory=list)
    insights: Insights | None = None
    generated_at: datetime = field(default_factory=datetime.now)


def load_dashboard(
    conn: Connection,
    *,
    shop_repo: ShopRepository,
    order_repo: OrderRepository,
    payment_repo: PaymentRepository,
    expense_repo: ExpenseRepository,
    shop_id: int | None = None,
) -> Dashboard:
    orders = order_repo.analytics_rows(conn, shop_id)
    payments = payment_repo.analytics_rows(conn, shop_id)
    expenses = expense_repo.analytics_rows(conn, shop_id)
    all_orders = orders if shop_id is None else order_repo.analytics_rows(conn)
    all_expenses = expenses if shop_id is None else expense_repo.analytics_rows(conn)

    metrics = kpi_metrics(orders, payments, expenses)
    performance = shop_performance(shop_repo.list(conn), all_orders, all_expenses)
    return Dashboard(
        metrics=metrics,
        revenue_by_day=daily_revenue(payments),
        mix=product_mix(orders),
        products=top_products(orders),
        performance=performance,
        rankings=shop_rankings(performance),
        expense_categories=expenses_by_category(expenses),
        expense_audit=expense_repo.list_recent(conn, limit=100, shop_id=shop_id),
        insights=insights(orders, metrics),
    )


def export_dashboard_csv(dashboard: Dashboard, title: str, symbol: str | None = None, shop_names: dict | None = None) -> str:
    money = lambda v: format_currency(v, symbol)  # noqa: E731
    shop_names = shop_names or {}
    buf = io.StringIO()
    w = csv.writer(buf)

    w.writerow([f"{title} - FINANCIAL OVERVIEW EXPORT"])
    w.writerow([f"Generated: {dashboard.generated_at:%Y-%m-%d %H:%M}"])
    w.writerow([])

    m = dashboard.metrics
    w.writerow(["KEY PERFORMANCE INDICATORS"])
    w.writerow(["Total Revenue", money(m.total_revenue)])
    w.writerow(["Total Expenses", money(m.total_expenses)])
    w.writerow(["Net Profit", money(m.net_profit)])
    w.writerow(["Active Orders", m.active_orders])
    w.writerow(["Avg Order Value", money(m.avg_order_value)])
    w.writerow([])

    w.writerow(["TOP PRODUCTS BY REVENUE"])
    w.writerow(["Product", "Count", "Revenue"])
    for p in dashboard.products:
        w.writerow([p.name, p.count, money(p.revenue)])
    w.writerow([])

    w.writerow(["LIVE SHOP RANKING"])
    w.writerow(["Rank", "Shop", "Revenue", "Profit"])
    for rank, s in enumerate(dashboard.rankings, start=1):
        w.writerow([rank, s.name, money(s.revenue), money(s.profit)])
    w.writerow([])

    w.writerow(["EXPENSE AUDIT LOG"])
    w.writerow(["Date", "Shop", "Category", "Amount", "Details"])
    for e in dashboard.expense_audit:
        when = f"{e.incurred_at:%Y-%m-%d}" if e.incurred_at else "N/A"
        shop = shop_names.get(e.shop_id, f"Shop #{e.shop_id}")
        w.writerow([when, shop, e.category, money(e.amount), e.item_name or e.notes or "-"])

    return buf.getvalue()
