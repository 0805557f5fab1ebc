from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from psycopg import Connection

from ..auth import PermissionDenied, RequestContext, require_owner, require_shop
from ..catalog import GARMENT_CATALOG, clean_measurements
from ..config import BrandingConfig
from ..domain import DueState, Order, OrderStatus, Payment, Shop, due_state, is_urgent
from ..errors import NotFoundError, ValidationError
from ..ledger import Ledger, ledger_for_order, to_money
from ..receipts import (
    ReceiptDisplay,
    format_currency,
    render_receipt_display,
    render_receipt_text,
    render_share_message,
    sms_link,
    whatsapp_link,
)
from ..repositories.order_repo import ADMIN_LIST_MODES, SHOP_LIST_MODES, OrderRepository
from ..repositories.payment_repo import PaymentRepository
from ..repositories.shop_repo import ShopRepository
from ..repositories.worker_repo import WorkerRepository

log = logging.getLogger(__name__)


@dataclass
class OrderInput:
    customer_name: str
    customer_phone: str
    garment_type: str
    price: Any
    due_date: date | str | None
    worker_id: str | None = None
    squad: list[str] = field(default_factory=list)
    measurements: dict = field(default_factory=dict)
    customer_preferences: str = ""
    deposit: Any = 0
    status: int | str | None = None


@dataclass(frozen=True)
class OrderRow:
    order: Order
    ledger: Ledger
    lead_name: str
    squad_size: int
    due: DueState
    shop_name: str = ""


@dataclass(frozen=True)
class OrderDetails:
    order: Order
    payments: list[Payment]
    ledger: Ledger
    lead_name: str
    squad_names: list[str]
    due: DueState


@dataclass(frozen=True)
class Receipt:
    order: Order
    ledger: Ledger
    paying_now: Decimal
    text: str
    display: ReceiptDisplay
    share_message: str
    whatsapp_url: str
    sms_url: str


def parse_due_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid due date: {value!r} (expected YYYY-MM-DD)") from None


def _price(value: Any, what: str) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"{what} cannot be negative.")
    return amount


class OrderService:
    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        worker_repo: WorkerRepository,
        shop_repo: ShopRepository,
        branding: BrandingConfig | None = None,
    ) -> None:
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.worker_repo = worker_repo
        self.shop_repo = shop_repo
        self.branding = branding or BrandingConfig()

    # -- helpers -----------------------------------------------------------

    def _load(self, conn: Connection, ctx: RequestContext, order_id: str) -> Order:
        order = self.order_repo.get(conn, order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")
        if not ctx.is_owner and order.shop_id != ctx.shop_id:
            raise PermissionDenied("This order belongs to another shop.")
        return order

    def _validate(self, data: OrderInput) -> dict:
        name = (data.customer_name or "").strip()
        if not name:
            raise ValidationError("Customer name cannot be empty.")
        garment = (data.garment_type or "").strip()
        if garment not in GARMENT_CATALOG:
            raise ValidationError(f"Unknown garment type: {garment!r}")

        squad = [w for w in dict.fromkeys(data.squad or []) if w]
        lead = (data.worker_id or "").strip() or None
        if lead in squad:
            squad.remove(lead)

        return dict(
            customer_name=name,
            customer_phone=(data.customer_phone or "").strip(),
            garment_type=garment,
            price=_price(data.price, "Price"),
            due_date=parse_due_date(data.due_date),
            worker_id=lead,
            squad=squad,
            measurements=clean_measurements(garment, data.measurements or {}),
            customer_preferences=(data.customer_preferences or "").strip(),
        )

    # -- manager flows -----------------------------------------------------

    def _check_workers(self, conn: Connection, shop_id: int, fields: dict) -> None:
        assigned = ([fields["worker_id"]] if fields["worker_id"] else []) + fields["squad"]
        if not assigned:
            return
        known = {w.id for w in self.worker_repo.list_for_shop(conn, shop_id)}
        if any(w not in known for w in assigned):
            raise ValidationError("Assigned workers must belong to the order's shop.")

    def create_order(self, conn: Connection, ctx: RequestContext, data: OrderInput, *, shop_id: int | None = None) -> str:
        """Managers always create in their own shop; owners pick one."""
        if not ctx.is_owner:
            shop_id = require_shop(ctx)
        else:
            shop_id = shop_id if shop_id is not None else ctx.shop_id
            if shop_id is None:
                raise ValidationError("Choose a shop for this order.")
            if self.shop_repo.get(conn, shop_id) is None:
                raise NotFoundError(f"Shop not found: {shop_id}")
        fields = self._validate(data)
        self._check_workers(conn, shop_id, fields)
        deposit = _price(data.deposit, "Deposit")

        order_id = self.order_repo.create(
            conn,
            shop_id=shop_id,
            manager_id=ctx.user_id,
            status=OrderStatus.ASSIGNED,
            **fields,
        )
        if deposit > 0:
            self.payment_repo.create(conn, order_id=order_id, amount=deposit, manager_id=ctx.user_id, notes="Deposit")

        log.info("order created order_id=%s shop_id=%s deposit=%s", order_id, shop_id, deposit)
        return order_id

    def record_payment(
        self,
        conn: Connection,
        ctx: RequestContext,
        order_id: str,
        amount: Any,
        notes: str | None = None,
    ) -> tuple[int, Ledger]:
        order = self._load(conn, ctx, order_id)
        payments = self.payment_repo.list_for_order(conn, order_id)
        before = ledger_for_order(order, payments)

        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0.")
        if amount > before.balance:
            raise ValidationError(f"Amount cannot exceed balance of {format_currency(before.balance, self.branding.currency_symbol)}.")

        payment_id = self.payment_repo.create(
            conn,
            order_id=order_id,
            amount=amount,
            manager_id=ctx.user_id,
            notes=(notes or "").strip() or None,
        )
        persisted = payments + [Payment(id=payment_id, order_id=order_id, amount=amount)]
        after = ledger_for_order(order, persisted, paying_now=amount)

        log.info("payment recorded order_id=%s amount=%s balance=%s", order_id, amount, after.balance)
        return payment_id, after

    def update_status(self, conn: Connection, ctx: RequestContext, order_id: str, status: Any) -> OrderStatus:
        self._load(conn, ctx, order_id)
        try:
            new_status = OrderStatus.parse(status)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self.order_repo.set_status(conn, order_id=order_id, status=new_status)
        log.info("status updated order_id=%s status=%s", order_id, new_status.label)
        return new_status

    def order_details(self, conn: Connection, ctx: RequestContext, order_id: str, today: date | None = None) -> OrderDetails:
        order = self._load(conn, ctx, order_id)
        payments = self.payment_repo.list_for_order(conn, order_id)

        ids = ([order.worker_id] if order.worker_id else []) + order.squad
        names = self.worker_repo.get_names(conn, ids)
        lead_name = names.get(order.worker_id, "Unassigned") if order.worker_id else "Unassigned"
        squad_names = [names[w] for w in order.squad if w in names]

        return OrderDetails(
            order=order,
            payments=payments,
            ledger=ledger_for_order(order, payments),
            lead_name=lead_name,
            squad_names=squad_names,
            due=due_state(order.due_date, order.status, today or date.today()),
        )

    def _rows(self, conn: Connection, orders: list[Order], today: date, shops: dict[int, str] | None = None) -> list[OrderRow]:
        payments = self.payment_repo.list_for_orders(conn, [o.id for o in orders])
        names = self.worker_repo.get_names(conn, list({o.worker_id for o in orders if o.worker_id}))
        rows = []
        for o in orders:
            rows.append(
                OrderRow(
                    order=o,
                    ledger=ledger_for_order(o, payments.get(o.id, [])),
                    lead_name=names.get(o.worker_id, "Unassigned") if o.worker_id else "Unassigned",
                    squad_size=len(o.squad),
                    due=due_state(o.due_date, o.status, today),
                    shop_name=(shops or {}).get(o.shop_id, ""),
                )
            )
        return rows

    def list_orders(
        self,
        conn: Connection,
        ctx: RequestContext,
        *,
        mode: str = "open",
        status: Any = None,
        worker_id: str | None = None,
        today: date | None = None,
    ) -> list[OrderRow]:
        shop_id = require_shop(ctx)
        if mode not in SHOP_LIST_MODES:
            raise ValidationError(f"Unknown list mode: {mode!r}")
        status_code = None
        if status not in (None, ""):
            try:
                status_code = OrderStatus.parse(status)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        today = today or date.today()
        orders = self.order_repo.list_for_shop(conn, shop_id, mode=mode, status=status_code, worker_id=worker_id or None)
        if mode == "urgent":
            orders = [o for o in orders if is_urgent(o, today)]
        return self._rows(conn, orders, today)

    def worker_assignments(self, conn: Connection, ctx: RequestContext, worker_id: str, today: date | None = None):
        shop_id = require_shop(ctx)
        worker = self.worker_repo.get(conn, worker_id)
        if worker is None or worker.shop_id != shop_id:
            raise NotFoundError(f"Worker not found: {worker_id}")
        orders = self.order_repo.list_for_worker(conn, worker_id, shop_id)
        return worker, self._rows(conn, orders, today or date.today())

    # -- receipts ----------------------------------------------------------

    def receipt(
        self,
        conn: Connection,
        ctx: RequestContext,
        order_id: str,
        paying_now: Any = 0,
        now: datetime | None = None,
    ) -> Receipt:
        order = self._load(conn, ctx, order_id)
        payments = self.payment_repo.list_for_order(conn, order_id)
        return self.build_receipt(order, payments, paying_now=paying_now, now=now)

    def build_receipt(self, order: Order, payments: list[Payment], paying_now: Any = 0, now: datetime | None = None) -> Receipt:
        now = now or datetime.now()
        paying_now = to_money(paying_now)
        ledger = ledger_for_order(order, payments, paying_now=paying_now)

        text = render_receipt_text(order, ledger, paying_now, self.branding, now)
        return Receipt(
            order=order,
            ledger=ledger,
            paying_now=paying_now,
            text=text,
            display=render_receipt_display(order, ledger, paying_now, self.branding, now),
            share_message=render_share_message(order, ledger, self.branding, now),
            whatsapp_url=whatsapp_link(text, order.customer_phone),
            sms_url=sms_link(text, order.customer_phone),
        )

    # -- owner flows -------------------------------------------------------

    def _shop_names(self, conn: Connection) -> dict[int, str]:
        return {s.id: s.name for s in self.shop_repo.list(conn)}

    def list_admin_orders(
        self,
        conn: Connection,
        ctx: RequestContext,
        *,
        mode: str = "current",
        shop_id: int | None = None,
        today: date | None = None,
    ) -> list[OrderRow]:
        require_owner(ctx)
        if mode not in ADMIN_LIST_MODES:
            raise ValidationError(f"Unknown list mode: {mode!r}")
        orders = self.order_repo.list_all(conn, mode=mode, shop_id=shop_id)
        return self._rows(conn, orders, today or date.today(), self._shop_names(conn))

    def pending_closure(self, conn: Connection, ctx: RequestContext, shop_id: int | None = None) -> list[OrderRow]:
        require_owner(ctx)
        orders = self.order_repo.list_pending_closure(conn, shop_id)
        return self._rows(conn, orders, date.today(), self._shop_names(conn))

    def review(self, conn: Connection, ctx: RequestContext, order_id: str) -> tuple[OrderDetails, Shop | None]:
        require_owner(ctx)
        details = self.order_details(conn, ctx, order_id)
        shop = self.shop_repo.get(conn, details.order.shop_id) if details.order.shop_id is not None else None
        return details, shop

    def finalize_order(self, conn: Connection, ctx: RequestContext, order_id: str, *, force: bool = False) -> Ledger:
        require_owner(ctx)
        order = self._load(conn, ctx, order_id)
        ledger = ledger_for_order(order, self.payment_repo.list_for_order(conn, order_id))
        if not ledger.paid_in_full and not force:
            raise ValidationError("Order has unpaid balance. Confirm to close anyway.")
        self.order_repo.set_status(conn, order_id=order_id, status=OrderStatus.CLOSED)
        log.info("order finalized order_id=%s balance=%s forced=%s", order_id, ledger.balance, force)
        return ledger

    def edit_order(self, conn: Connection, ctx: RequestContext, order_id: str, data: OrderInput) -> None:
        require_owner(ctx)
        order = self._load(conn, ctx, order_id)
        fields = self._validate(data)
        self._check_workers(conn, order.shop_id, fields)
        try:
            status = OrderStatus.parse(data.status if data.status not in (None, "") else OrderStatus.ASSIGNED)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self.order_repo.update(conn, order_id=order_id, status=status, **fields)
        log.info("order edited order_id=%s", order_id)
