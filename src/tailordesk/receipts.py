"""Receipt rendering for one order.

The text form is what gets copied or sent over WhatsApp/SMS, the display
form is the printable card shown in the browser. Both are built from the same
``Ledger`` so they can never disagree on a figure.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping
from urllib.parse import quote

from markupsafe import Markup

from .config import BrandingConfig
from .ledger import Ledger, round_money, to_money

DEFAULT_SHOP_NAME = "FASHION HOUSE"
DEFAULT_CURRENCY = "Ksh"
SEPARATOR = "-" * 32
LABEL_WIDTH = 14


def format_currency(amount: Any, symbol: str | None = None) -> str:
    value = round_money(amount)
    return f"{symbol or DEFAULT_CURRENCY} {value:,.2f}"


def short_order_id(order_id: Any, length: int = 8) -> str:
    if order_id is None:
        return ""
    return str(order_id)[:length].upper()


def tail_order_id(order_id: Any, length: int = 6) -> str:
    if order_id is None:
        return ""
    return str(order_id)[-length:]


def _get(order: Any, name: str) -> Any:
    if isinstance(order, Mapping):
        return order.get(name)
    return getattr(order, name, None)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _brand(branding: BrandingConfig | None) -> tuple[str, str, str]:
    if branding is None:
        return DEFAULT_SHOP_NAME, "", DEFAULT_CURRENCY
    name = (branding.shop_display_name or DEFAULT_SHOP_NAME).upper()
    return name, branding.shop_phone or "", branding.currency_symbol or DEFAULT_CURRENCY


def receipt_date(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{now.month}/{now.day}/{now.year}"


def _line(label: str, value: str) -> str:
    return f"{label:<{LABEL_WIDTH}}{value}"


def render_receipt_text(
    order: Any,
    ledger: Ledger,
    paying_now: Any = 0,
    branding: BrandingConfig | None = None,
    now: datetime | None = None,
) -> str:
    shop_name, shop_phone, symbol = _brand(branding)
    paying_now = to_money(paying_now)
    money = lambda amount: format_currency(amount, symbol)  # noqa: E731

    lines = [shop_name]
    if shop_phone:
        lines.append(_line("Phone:", shop_phone))
    lines.append(SEPARATOR)
    lines.append(_line("Date:", receipt_date(now)))
    lines.append(_line("Order:", f"#{short_order_id(_get(order, 'id'))}"))
    lines.append(_line("Customer:", _text(_get(order, "customer_name")) or "Unknown"))
    customer_phone = _text(_get(order, "customer_phone"))
    if customer_phone:
        lines.append(_line("Phone:", customer_phone))
    garment = _text(_get(order, "garment_type"))
    if garment:
        lines.append(_line("Garment:", garment))
    lines.append("")
    lines.append(_line("Total Cost:", money(_get(order, "price"))))
    if paying_now > 0:
        lines.append(_line("Paid Now:", money(paying_now)))
    lines.append(_line("Total Paid:", money(ledger.total_paid)))
    if not ledger.paid_in_full:
        lines.append(_line("Balance Due:", money(ledger.balance)))
    lines.append(SEPARATOR)
    lines.append("PAID IN FULL" if ledger.paid_in_full else "Balance Due")
    lines.append("")
    lines.append("Thank you for your business!")
    return "\n".join(lines)


def render_share_message(
    order: Any,
    ledger: Ledger,
    branding: BrandingConfig | None = None,
    now: datetime | None = None,
) -> str:
    shop_name, _, symbol = _brand(branding)
    return (
        f"*{shop_name}*\n"
        f"Receipt #{short_order_id(_get(order, 'id'))}\n"
        f"Date: {receipt_date(now)}\n\n"
        f"Item: {_text(_get(order, 'garment_type'))}\n"
        f"Customer: {_text(_get(order, 'customer_name'))}\n\n"
        f"*Total: {format_currency(_get(order, 'price'), symbol)}*\n"
        f"*Paid:  {format_currency(ledger.total_paid, symbol)}*\n"
        f"*Bal:   {format_currency(ledger.balance, symbol)}*\n\n"
        "Thank you!"
    )


def digits_only(phone: Any) -> str:
    return re.sub(r"\D", "", _text(phone))


def whatsapp_link(text: str, phone: Any = None) -> str:
    return f"https://wa.me/{digits_only(phone)}?text={quote(text)}"


def sms_link(text: str, phone: Any, ios: bool = False) -> str:
    sep = "&" if ios else "?"
    return f"sms:{digits_only(phone)}{sep}body={quote(text)}"


@dataclass(frozen=True)
class ReceiptDisplay:
    shop_name: str
    shop_phone: str
    date: str
    order_number: str
    customer_name: str
    customer_phone: str
    garment_type: str
    total_cost: str
    paid_now: str | None
    total_paid: str
    balance_due: str | None
    paid_in_full: bool
    html: Markup


_CARD = Markup(
    '<div class="receipt-card">'
    '<div class="receipt-head"><h2>{shop_name}</h2>{shop_phone}</div>'
    '<div class="receipt-meta">'
    '<div><p class="receipt-label">Date</p><p>{date}</p></div>'
    '<div class="right"><p class="receipt-label">Order No.</p><p>#{order_number}</p></div>'
    "</div>"
    '<div class="receipt-client"><p class="receipt-label">Client Details</p>'
    "<dl><dt>Name:</dt><dd>{customer_name}</dd>"
    "<dt>Phone:</dt><dd>{customer_phone}</dd>"
    "<dt>Garment:</dt><dd>{garment_type}</dd></dl></div>"
    '<table class="receipt-figures">'
    '<tr><td>Total Amount</td><td class="amount total">{total_cost}</td></tr>'
    "{paid_now_row}{settlement_rows}"
    "</table>"
    '<p class="receipt-thanks">Thank you for your business.</p>'
    "</div>"
)


def _client_phone(order: Any) -> str:
    for name in ("phone_number", "customer_phone"):
        value = _text(_get(order, name))
        if value:
            return value
    return "N/A"


def render_receipt_display(
    order: Any,
    ledger: Ledger,
    paying_now: Any = 0,
    branding: BrandingConfig | None = None,
    now: datetime | None = None,
) -> ReceiptDisplay:
    shop_name, shop_phone, symbol = _brand(branding)
    paying_now = to_money(paying_now)

    total_cost = format_currency(_get(order, "price"), symbol)
    paid_now = format_currency(paying_now, symbol) if paying_now > 0 else None
    total_paid = format_currency(ledger.total_paid, symbol)
    balance_due = None if ledger.paid_in_full else format_currency(ledger.balance, symbol)

    paid_now_row = Markup("")
    if paid_now:
        paid_now_row = Markup('<tr><td>Paid Now</td><td class="amount">{}</td></tr>').format(paid_now)

    if ledger.paid_in_full:
        settlement = Markup('<tr><td colspan="2" class="center"><span class="badge-paid">PAID IN FULL</span></td></tr>')
    else:
        settlement = Markup(
            '<tr><td>Total Paid</td><td class="amount">{}</td></tr>'
            '<tr class="divider"><td colspan="2"></td></tr>'
            '<tr class="balance-due"><td>Balance Due</td><td class="amount warning">{}</td></tr>'
        ).format(total_paid, balance_due)

    fields = dict(
        shop_name=shop_name,
        date=receipt_date(now),
        order_number=short_order_id(_get(order, "id")),
        customer_name=_text(_get(order, "customer_name")) or "Unknown",
        customer_phone=_client_phone(order),
        garment_type=_text(_get(order, "garment_type")),
    )
    html = _CARD.format(
        shop_phone=Markup('<p class="receipt-phone">{}</p>').format(shop_phone) if shop_phone else Markup(""),
        total_cost=total_cost,
        paid_now_row=paid_now_row,
        settlement_rows=settlement,
        **fields,
    )

    return ReceiptDisplay(
        shop_phone=shop_phone,
        total_cost=total_cost,
        paid_now=paid_now,
        total_paid=total_paid,
        balance_due=balance_due,
        paid_in_full=ledger.paid_in_full,
        html=html,
        **fields,
    )
