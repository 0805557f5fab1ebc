from __future__ import annotations

import logging
from datetime import date
from functools import wraps

from flask import Flask, Response, flash, g, redirect, render_template, request, session, url_for

from tailordesk.auth import AuthError, IdentityClient, PermissionDenied, resolve_context
from tailordesk.catalog import GARMENT_CATALOG, components_for, format_measurements, garment_types, measurements_from_form
from tailordesk.config import AppConfig, ConfigError, load_config
from tailordesk.db import Db, DbError
from tailordesk.domain import OrderStatus
from tailordesk.errors import NotFoundError, ValidationError
from tailordesk.logging_config import configure_logging
from tailordesk.receipts import format_currency, short_order_id, tail_order_id
from tailordesk.reports import export_dashboard_csv, load_dashboard
from tailordesk.services.expense_service import EXPENSE_CATEGORIES
from tailordesk.services.order_service import OrderInput
from tailordesk.services.registry import Repos, build_services

log = logging.getLogger(__name__)

# user-facing failures; anything else is logged and shown generically
EXPECTED_ERRORS = (ValidationError, NotFoundError, PermissionDenied, AuthError)


def create_app(cfg: AppConfig, db=None, identity=None, repos: Repos | None = None) -> Flask:
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app.secret_key = cfg.secret_key

    db = db or Db(cfg.db)
    identity = identity or IdentityClient(cfg.auth)
    repos = repos or Repos()
    svc = build_services(repos, identity, cfg.branding)
    symbol = cfg.branding.currency_symbol

    @app.template_filter("money")
    def money_filter(value):
        return format_currency(value, symbol)

    @app.template_filter("short_id")
    def short_id_filter(value):
        return short_order_id(value)

    @app.context_processor
    def inject_globals():
        return {
            "app_name": cfg.name,
            "branding": cfg.branding,
            "ctx": g.get("ctx"),
            "statuses": list(OrderStatus),
        }

    def fail(e: Exception) -> None:
        if isinstance(e, EXPECTED_ERRORS):
            flash(str(e), "warning")
        elif isinstance(e, DbError):
            flash(f"DB error: {e}", "danger")
        else:
            log.exception("request failed path=%s", request.path)
            flash(f"Error: {e}", "danger")

    # -- request lifecycle -------------------------------------------------

    @app.before_request
    def load_context():
        if request.endpoint == "static":
            return None
        if cfg.suspended:
            return render_template("locked.html", billing=cfg.billing), 503

        g.ctx = None
        user_id = session.get("user_id")
        if user_id:
            try:
                with db.session() as conn:
                    g.ctx = resolve_context(conn, user_id, profile_repo=repos.profiles, worker_repo=repos.workers)
            except AuthError as e:
                session.clear()
                flash(str(e), "danger")
            except DbError as e:
                flash(f"DB error: {e}", "danger")
                return render_template("login.html"), 503

        if g.ctx is None and request.endpoint not in ("login", None):
            return redirect(url_for("login"))
        return None

    def owner_only(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if not g.ctx.is_owner:
                flash("Owner access required.", "warning")
                return redirect(url_for("index"))
            return view(*args, **kwargs)

        return wrapper

    def manager_only(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if g.ctx.is_owner:
                return redirect(url_for("owner_dashboard"))
            return view(*args, **kwargs)

        return wrapper

    # -- auth --------------------------------------------------------------

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "POST":
            email = request.form.get("email", "").strip()
            password = request.form.get("password", "")
            try:
                auth = identity.sign_in(email, password)
                with db.session() as conn:
                    resolve_context(conn, auth.user_id, profile_repo=repos.profiles, worker_repo=repos.workers)
            except (AuthError, DbError) as e:
                flash(f"Login failed: {e}", "danger")
                return render_template("login.html", email=email)

            session.clear()
            session["user_id"] = auth.user_id
            session["access_token"] = auth.access_token
            return redirect(url_for("index"))

        if g.get("ctx"):
            return redirect(url_for("index"))
        return render_template("login.html")

    @app.route("/logout", methods=["POST"])
    def logout():
        token = session.get("access_token")
        if token:
            try:
                identity.sign_out(token)
            except AuthError as e:
                log.warning("sign out failed: %s", e)
        session.clear()
        flash("Signed out", "success")
        return redirect(url_for("login"))

    @app.route("/")
    def index():
        if g.ctx.is_owner:
            return redirect(url_for("owner_dashboard"))
        return redirect(url_for("manager_dashboard"))

    # -- manager pages -----------------------------------------------------

    @app.route("/manager")
    @manager_only
    def manager_dashboard():
        mode = request.args.get("mode", "open")
        status = request.args.get("status") or None
        worker_id = request.args.get("worker") or None
        try:
            with db.session() as conn:
                rows = svc.orders.list_orders(conn, g.ctx, mode=mode, status=status, worker_id=worker_id)
                workers = repos.workers.list_for_shop(conn, g.ctx.shop_id)
        except Exception as e:
            fail(e)
            rows, workers = [], []
        return render_template(
            "manager_dashboard.html",
            rows=rows,
            workers=workers,
            mode=mode,
            status=status,
            worker_id=worker_id,
        )

    def _order_input(form) -> OrderInput:
        garment = form.get("garment_type", "").strip()
        return OrderInput(
            customer_name=form.get("customer_name", ""),
            customer_phone=form.get("customer_phone", ""),
            garment_type=garment,
            price=form.get("price", "0"),
            due_date=form.get("due_date", ""),
            worker_id=form.get("worker_id") or None,
            squad=form.getlist("squad"),
            measurements=measurements_from_form(garment, form),
            customer_preferences=form.get("customer_preferences", ""),
            deposit=form.get("deposit", "0"),
            status=form.get("status") or None,
        )

    def _form_workers(shop_id):
        if shop_id is None:
            return []
        with db.session() as conn:
            return repos.workers.list_for_shop(conn, shop_id)

    @app.route("/manager/orders/new", methods=["GET", "POST"])
    @manager_only
    def orders_new():
        garment = request.values.get("garment_type") or garment_types()[0]
        if request.method == "POST":
            try:
                with db.transaction() as conn:
                    order_id = svc.orders.create_order(conn, g.ctx, _order_input(request.form))
                flash(f"Order #{short_order_id(order_id)} created", "success")
                return redirect(url_for("order_details", order_id=order_id))
            except Exception as e:
                fail(e)

        try:
            workers = _form_workers(g.ctx.shop_id)
        except DbError as e:
            fail(e)
            workers = []
        return render_template(
            "order_form.html",
            order=None,
            form=request.values,
            form_action=url_for("orders_new"),
            garments=list(GARMENT_CATALOG),
            garment=garment,
            components=components_for(garment),
            workers=workers,
            today=date.today().isoformat(),
        )

    @app.route("/manager/orders/<order_id>")
    @manager_only
    def order_details(order_id):
        try:
            with db.session() as conn:
                details = svc.orders.order_details(conn, g.ctx, order_id)
        except Exception as e:
            fail(e)
            return redirect(url_for("manager_dashboard"))
        return render_template(
            "order_details.html",
            d=details,
            measurements=format_measurements(details.order.measurements),
            tail_id=tail_order_id(details.order.id),
        )

    @app.route("/manager/orders/<order_id>/pay", methods=["POST"])
    @manager_only
    def order_pay(order_id):
        amount = request.form.get("amount", "")
        try:
            with db.transaction() as conn:
                payment_id, ledger = svc.orders.record_payment(conn, g.ctx, order_id, amount, request.form.get("notes"))
            flash(f"Payment #{payment_id} recorded. Balance: {format_currency(ledger.balance, symbol)}", "success")
            return redirect(url_for("order_receipt", order_id=order_id, paid=amount))
        except Exception as e:
            fail(e)
            return redirect(url_for("order_details", order_id=order_id))

    @app.route("/manager/orders/<order_id>/status", methods=["POST"])
    @manager_only
    def order_status(order_id):
        try:
            with db.transaction() as conn:
                new_status = svc.orders.update_status(conn, g.ctx, order_id, request.form.get("status"))
            flash(f"Status updated to {new_status.label}", "success")
        except Exception as e:
            fail(e)
        return redirect(url_for("order_details", order_id=order_id))

    @app.route("/orders/<order_id>/receipt")
    def order_receipt(order_id):
        try:
            with db.session() as conn:
                receipt = svc.orders.receipt(conn, g.ctx, order_id, paying_now=request.args.get("paid", 0))
        except Exception as e:
            fail(e)
            return redirect(url_for("index"))
        return render_template("receipt.html", receipt=receipt)

    @app.route("/manager/workers", methods=["GET", "POST"])
    @manager_only
    def workers_list():
        if request.method == "POST":
            try:
                with db.transaction() as conn:
                    svc.shops.add_worker(
                        conn,
                        g.ctx,
                        name=request.form.get("name", ""),
                        phone_number=request.form.get("phone_number"),
                    )
                flash("Worker added", "success")
                return redirect(url_for("workers_list"))
            except Exception as e:
                fail(e)

        try:
            with db.session() as conn:
                loads = svc.shops.workers(conn, g.ctx)
        except Exception as e:
            fail(e)
            loads = []
        return render_template("workers.html", loads=loads)

    @app.route("/workers/<worker_id>/delete", methods=["POST"])
    def worker_delete(worker_id):
        try:
            with db.transaction() as conn:
                svc.shops.delete_worker(conn, g.ctx, worker_id)
            flash("Worker removed", "success")
        except Exception as e:
            fail(e)
        if g.ctx.is_owner:
            return redirect(url_for("owner_manage"))
        return redirect(url_for("workers_list"))

    @app.route("/manager/workers/<worker_id>")
    @manager_only
    def worker_assignments(worker_id):
        try:
            with db.session() as conn:
                worker, rows = svc.orders.worker_assignments(conn, g.ctx, worker_id)
        except Exception as e:
            fail(e)
            return redirect(url_for("workers_list"))
        return render_template("worker_assignments.html", worker=worker, rows=rows)

    @app.route("/manager/expenses", methods=["GET", "POST"])
    @manager_only
    def expenses():
        if request.method == "POST":
            try:
                with db.transaction() as conn:
                    svc.expenses.add_expense(
                        conn,
                        g.ctx,
                        item_name=request.form.get("item_name"),
                        amount=request.form.get("amount", "0"),
                        category=request.form.get("category", ""),
                        notes=request.form.get("notes"),
                    )
                flash("Expense saved", "success")
                return redirect(url_for("expenses"))
            except Exception as e:
                fail(e)

        try:
            with db.session() as conn:
                rows = svc.expenses.list_expenses(conn, g.ctx)
        except Exception as e:
            fail(e)
            rows = []
        return render_template("expenses.html", expenses=rows, categories=EXPENSE_CATEGORIES)

    # -- owner pages -------------------------------------------------------

    def _dashboard(conn, shop_id=None):
        return load_dashboard(
            conn,
            shop_repo=repos.shops,
            order_repo=repos.orders,
            payment_repo=repos.payments,
            expense_repo=repos.expenses,
            shop_id=shop_id,
        )

    @app.route("/owner")
    @owner_only
    def owner_dashboard():
        try:
            with db.session() as conn:
                dash = _dashboard(conn)
                pending = svc.orders.pending_closure(conn, g.ctx)
        except Exception as e:
            fail(e)
            return render_template("owner_dashboard.html", dash=None, pending=[], rows=[], show_shop=True)
        return render_template("owner_dashboard.html", dash=dash, pending=pending, rows=pending, show_shop=True)

    @app.route("/owner/orders")
    @owner_only
    def owner_orders():
        mode = request.args.get("mode", "current")
        shop_id = request.args.get("shop", type=int)
        try:
            with db.session() as conn:
                rows = svc.orders.list_admin_orders(conn, g.ctx, mode=mode, shop_id=shop_id)
                shops = repos.shops.list(conn)
        except Exception as e:
            fail(e)
            rows, shops = [], []
        return render_template(
            "owner_orders.html",
            rows=rows,
            shops=shops,
            mode=mode,
            shop_id=shop_id,
            show_shop=True,
        )

    @app.route("/owner/orders/new", methods=["GET", "POST"])
    @owner_only
    def owner_orders_new():
        shop_id = request.values.get("shop_id", type=int)
        garment = request.values.get("garment_type") or garment_types()[0]
        if request.method == "POST":
            try:
                with db.transaction() as conn:
                    order_id = svc.orders.create_order(conn, g.ctx, _order_input(request.form), shop_id=shop_id)
                flash(f"Order #{short_order_id(order_id)} created", "success")
                return redirect(url_for("order_review", order_id=order_id))
            except Exception as e:
                fail(e)

        try:
            with db.session() as conn:
                shops = repos.shops.list(conn)
            workers = _form_workers(shop_id)
        except DbError as e:
            fail(e)
            shops, workers = [], []
        return render_template(
            "order_form.html",
            order=None,
            form=request.values,
            form_action=url_for("owner_orders_new"),
            shops=shops,
            shop_id=shop_id,
            garments=list(GARMENT_CATALOG),
            garment=garment,
            components=components_for(garment),
            workers=workers,
            today=date.today().isoformat(),
        )

    @app.route("/owner/orders/<order_id>/review")
    @owner_only
    def order_review(order_id):
        try:
            with db.session() as conn:
                details, shop = svc.orders.review(conn, g.ctx, order_id)
        except Exception as e:
            fail(e)
            return redirect(url_for("owner_dashboard"))
        return render_template(
            "order_review.html",
            d=details,
            shop=shop,
            measurements=format_measurements(details.order.measurements),
        )

    @app.route("/owner/orders/<order_id>/close", methods=["POST"])
    @owner_only
    def order_close(order_id):
        force = request.form.get("force") == "on"
        try:
            with db.transaction() as conn:
                svc.orders.finalize_order(conn, g.ctx, order_id, force=force)
            flash(f"Order #{short_order_id(order_id)} closed", "success")
            return redirect(url_for("owner_dashboard"))
        except Exception as e:
            fail(e)
            return redirect(url_for("order_review", order_id=order_id))

    @app.route("/owner/orders/<order_id>/edit", methods=["GET", "POST"])
    @owner_only
    def order_edit(order_id):
        if request.method == "POST":
            try:
                with db.transaction() as conn:
                    svc.orders.edit_order(conn, g.ctx, order_id, _order_input(request.form))
                flash("Order updated", "success")
                return redirect(url_for("order_review", order_id=order_id))
            except Exception as e:
                fail(e)

        try:
            with db.session() as conn:
                details = svc.orders.order_details(conn, g.ctx, order_id)
            workers = _form_workers(details.order.shop_id)
        except Exception as e:
            fail(e)
            return redirect(url_for("owner_orders"))
        garment = request.values.get("garment_type") or details.order.garment_type
        return render_template(
            "order_form.html",
            order=details.order,
            form=request.values,
            form_action=url_for("order_edit", order_id=order_id),
            garments=list(GARMENT_CATALOG),
            garment=garment,
            components=components_for(garment),
            workers=workers,
            today=date.today().isoformat(),
        )

    @app.route("/owner/manage")
    @owner_only
    def owner_manage():
        try:
            with db.session() as conn:
                cards = svc.shops.command_center(conn, g.ctx)
        except Exception as e:
            fail(e)
            cards = []
        return render_template("owner_manage.html", cards=cards)

    @app.route("/owner/shops", methods=["POST"])
    @owner_only
    def shop_create():
        try:
            svc.shops.create_shop_with_manager(
                db,
                g.ctx,
                shop_name=request.form.get("shop_name", ""),
                manager_name=request.form.get("manager_name", ""),
                email=request.form.get("email", ""),
                password=request.form.get("password", ""),
            )
            flash("Shop and manager created", "success")
        except Exception as e:
            fail(e)
        return redirect(url_for("owner_manage"))

    @app.route("/owner/shops/<int:shop_id>/delete", methods=["POST"])
    @owner_only
    def shop_delete(shop_id):
        try:
            with db.transaction() as conn:
                svc.shops.delete_shop(conn, g.ctx, shop_id)
            flash("Shop deleted", "success")
        except Exception as e:
            fail(e)
        return redirect(url_for("owner_manage"))

    @app.route("/owner/managers/<user_id>/delete", methods=["POST"])
    @owner_only
    def manager_delete(user_id):
        try:
            with db.transaction() as conn:
                svc.shops.remove_manager(conn, g.ctx, user_id)
            flash("Manager removed", "success")
        except Exception as e:
            fail(e)
        return redirect(url_for("owner_manage"))

    @app.route("/owner/managers/<user_id>/password", methods=["POST"])
    @owner_only
    def manager_password(user_id):
        try:
            svc.shops.reset_password(g.ctx, user_id, request.form.get("password", ""))
            flash("Password updated", "success")
        except Exception as e:
            fail(e)
        return redirect(url_for("owner_manage"))

    @app.route("/owner/finance")
    @owner_only
    def owner_finance():
        shop_id = request.args.get("shop", type=int)
        try:
            with db.session() as conn:
                dash = _dashboard(conn, shop_id)
                shops = repos.shops.list(conn)
        except Exception as e:
            fail(e)
            return redirect(url_for("owner_dashboard"))
        return render_template(
            "owner_finance.html",
            dash=dash,
            shops=shops,
            shop_names={s.id: s.name for s in shops},
            shop_id=shop_id,
        )

    @app.route("/owner/finance/export.csv")
    @owner_only
    def owner_finance_export():
        shop_id = request.args.get("shop", type=int)
        try:
            with db.session() as conn:
                dash = _dashboard(conn, shop_id)
                names = {s.id: s.name for s in repos.shops.list(conn)}
        except Exception as e:
            fail(e)
            return redirect(url_for("owner_finance"))
        body = export_dashboard_csv(dash, cfg.branding.shop_display_name, symbol, names)
        filename = f"financial_report_{date.today().isoformat()}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return app


if __name__ == "__main__":
    try:
        cfg = load_config("config.toml")
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        raise SystemExit(2)
    configure_logging(cfg.log_level)
    create_app(cfg).run(debug=True, host="127.0.0.1", port=5000)
