"""Order ledger: total paid and balance due for one order.

Every screen that shows money for an order (list, details, quick pay,
receipts, owner review) goes through ``ledger_for_order`` so the figures
always agree. Nothing here raises; bad numbers count as zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Iterable, Mapping

ZERO = Decimal("0")
CENTS = Decimal("0.01")
# amounts past 10**100 are treated like unparseable input
MAX_EXPONENT = 100


@dataclass(frozen=True)
class Ledger:
    total_paid: Decimal
    balance: Decimal

    @property
    def paid_in_full(self) -> bool:
        return self.balance <= 0


def _usable(d: Decimal) -> bool:
    return d.is_finite() and d.adjusted() <= MAX_EXPONENT


def to_money(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        try:
            d = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return ZERO
    else:
        return ZERO
    return d if _usable(d) else ZERO


def round_money(value: Any, exp: Decimal = CENTS) -> Decimal:
    """Round half up to the place of ``exp``.

    Precision is widened to fit the whole amount, so very large figures round
    instead of tripping the default 28-digit context.
    """
    d = to_money(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, d.adjusted() - exp.as_tuple().exponent + 2)
        return d.quantize(exp, rounding=ROUND_HALF_UP)


def compute_ledger(price: Any, existing_paid: Any, paying_now: Any = 0, has_persisted_id: bool = False) -> Ledger:
    price = to_money(price)
    existing = to_money(existing_paid)
    now = to_money(paying_now)

    # A saved order whose stored total already covers the in-flight payment
    # has had that payment written; adding it again would count it twice.
    if has_persisted_id and existing >= now and existing > 0:
        total_paid = existing
    else:
        total_paid = existing + now

    return Ledger(total_paid=total_paid, balance=price - total_paid)


def _amount_of(payment: Any) -> Any:
    if isinstance(payment, Mapping):
        return payment.get("amount")
    return getattr(payment, "amount", None)


def sum_payments(payments: Iterable[Any] | None) -> Decimal:
    if not payments:
        return ZERO
    return sum((to_money(_amount_of(p)) for p in payments), ZERO)


def _field(order: Any, name: str) -> Any:
    if isinstance(order, Mapping):
        return order.get(name)
    return getattr(order, name, None)


def ledger_for_order(order: Any, payments: Iterable[Any] | None = None, paying_now: Any = 0) -> Ledger:
    if payments is not None:
        existing = sum_payments(payments)
    else:
        existing = to_money(_field(order, "amount_paid"))

    return compute_ledger(
        _field(order, "price"),
        existing,
        paying_now,
        has_persisted_id=_field(order, "id") not in (None, ""),
    )
