from __future__ import annotations

import getpass
import logging

from .auth import AuthError, IdentityClient, PermissionDenied, RequestContext, resolve_context
from .catalog import format_measurements
from .config import AppConfig
from .db import Db
from .domain import OrderStatus
from .errors import NotFoundError, ValidationError
from .receipts import format_currency, short_order_id
from .reports import load_dashboard
from .services.expense_service import EXPENSE_CATEGORIES
from .services.registry import Repos, Services, build_services

log = logging.getLogger(__name__)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def sign_in(db: Db, identity: IdentityClient, repos: Repos) -> RequestContext:
    email = _prompt("email: ")
    password = getpass.getpass("password: ")
    session = identity.sign_in(email, password)
    with db.session() as conn:
        return resolve_context(conn, session.user_id, profile_repo=repos.profiles, worker_repo=repos.workers)


def run_cli(db: Db, identity: IdentityClient, cfg: AppConfig, repos: Repos | None = None) -> None:
    repos = repos or Repos()
    svc = build_services(repos, identity, cfg.branding)
    symbol = cfg.branding.currency_symbol

    ctx = sign_in(db, identity, repos)
    print(f"Signed in as {ctx.full_name} ({ctx.role.value})")

    while True:
        print(f"\n=== {cfg.name} CLI ===")
        print("1) List open orders")
        print("2) Order details + receipt")
        print("3) Record payment")
        print("4) Update status")
        print("5) List workers")
        print("6) Add expense")
        print("7) Analytics summary")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                with db.session() as conn:
                    rows = svc.orders.list_orders(conn, ctx, mode="open")
                for r in rows:
                    o = r.order
                    print(
                        f"#{short_order_id(o.id)} {o.customer_name} {o.garment_type} "
                        f"[{o.status_label}] lead={r.lead_name} due={r.due.caption} "
                        f"balance={format_currency(r.ledger.balance, symbol)}"
                    )

            elif choice == "2":
                order_id = _prompt("order id: ")
                with db.session() as conn:
                    details = svc.orders.order_details(conn, ctx, order_id)
                    receipt = svc.orders.receipt(conn, ctx, order_id)
                print(f"Lead: {details.lead_name}  Squad: {', '.join(details.squad_names) or '-'}")
                print(f"Status: {details.order.status_label}  Due: {details.due.caption}")
                for line in format_measurements(details.order.measurements):
                    print(f"  {line}")
                print()
                print(receipt.text)

            elif choice == "3":
                order_id = _prompt("order id: ")
                amount = _prompt("amount: ")
                notes = _prompt("notes (optional): ") or None
                # payment row and receipt come from the same transaction
                with db.transaction() as conn:
                    payment_id, _ = svc.orders.record_payment(conn, ctx, order_id, amount, notes)
                    receipt = svc.orders.receipt(conn, ctx, order_id, paying_now=amount)
                print(f"Recorded payment #{payment_id}\n")
                print(receipt.text)

            elif choice == "4":
                order_id = _prompt("order id: ")
                for s in OrderStatus:
                    print(f"  {int(s)}) {s.label}")
                status = _prompt("new status: ")
                with db.transaction() as conn:
                    new_status = svc.orders.update_status(conn, ctx, order_id, status)
                print(f"Status is now {new_status.label}")

            elif choice == "5":
                with db.session() as conn:
                    loads = svc.shops.workers(conn, ctx)
                for w in loads:
                    state = "available" if w.available else f"{w.pending} active"
                    print(f"{w.worker.id} {w.worker.name} phone={w.worker.phone_number or '-'} {state}")

            elif choice == "6":
                print("Categories: " + ", ".join(EXPENSE_CATEGORIES))
                category = _prompt("category: ")
                item = _prompt("item (optional): ")
                amount = _prompt("amount: ")
                notes = _prompt("notes (optional): ")
                with db.transaction() as conn:
                    expense_id = svc.expenses.add_expense(conn, ctx, item_name=item, amount=amount, category=category, notes=notes)
                print(f"Saved expense #{expense_id}")

            elif choice == "7":
                print_summary(db, svc, ctx, symbol)

            else:
                print("Unknown choice.")

        except ValidationError as e:
            print(f"[INPUT ERROR] {e}")
        except (NotFoundError, PermissionDenied) as e:
            print(f"[ACCESS ERROR] {e}")
        except AuthError as e:
            print(f"[AUTH ERROR] {e}")
        except Exception as e:
            log.exception("menu action failed choice=%s", choice)
            print(f"[ERROR] {type(e).__name__}: {e}")


def print_summary(db: Db, svc: Services, ctx: RequestContext, symbol: str) -> None:
    shop_id = None if ctx.is_owner else ctx.shop_id
    repos = svc.repos
    with db.session() as conn:
        dash = load_dashboard(
            conn,
            shop_repo=repos.shops,
            order_repo=repos.orders,
            payment_repo=repos.payments,
            expense_repo=repos.expenses,
            shop_id=shop_id,
        )
    m = dash.metrics
    print(f"Revenue:  {format_currency(m.total_revenue, symbol)}")
    print(f"Expenses: {format_currency(m.total_expenses, symbol)}")
    print(f"Profit:   {format_currency(m.net_profit, symbol)}")
    print(f"Active orders: {m.active_orders}  pending closure: {m.pending_closure}")
    print("Top products:")
    for p in dash.products:
        print(f"  {p.name} x{p.count} {format_currency(p.revenue, symbol)} ({p.percentage}%)")
