from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg import Connection

from ..auth import AuthError, IdentityClient, RequestContext, require_owner, require_shop
from ..db import Db
from ..domain import Role, Shop, UserProfile, Worker
from ..errors import NotFoundError, ValidationError
from ..repositories.expense_repo import ExpenseRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.payment_repo import PaymentRepository
from ..repositories.profile_repo import ProfileRepository
from ..repositories.shop_repo import ShopRepository
from ..repositories.worker_repo import WorkerRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShopCard:
    shop: Shop
    manager: UserProfile | None
    manager_email: str
    workers: list[Worker]


@dataclass(frozen=True)
class WorkerLoad:
    worker: Worker
    pending: int

    @property
    def available(self) -> bool:
        return self.pending == 0


class ShopService:
    def __init__(
        self,
        *,
        shop_repo: ShopRepository,
        profile_repo: ProfileRepository,
        worker_repo: WorkerRepository,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        expense_repo: ExpenseRepository,
        identity: IdentityClient,
    ) -> None:
        self.shop_repo = shop_repo
        self.profile_repo = profile_repo
        self.worker_repo = worker_repo
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.expense_repo = expense_repo
        self.identity = identity

    def create_shop_with_manager(
        self,
        db: Db,
        ctx: RequestContext,
        *,
        shop_name: str,
        manager_name: str,
        email: str,
        password: str,
    ) -> tuple[int, str]:
        """The login is created first; if the rows do not commit it is removed again."""
        require_owner(ctx)
        shop_name, manager_name, email = shop_name.strip(), manager_name.strip(), email.strip()
        if not (shop_name and manager_name and email and password):
            raise ValidationError("All fields are required.")

        user_id = self.identity.create_user(email, password)
        try:
            with db.transaction() as conn:
                shop_id = self.shop_repo.create(conn, name=shop_name)
                self.profile_repo.create(conn, user_id=user_id, full_name=manager_name, role=Role.MANAGER, shop_id=shop_id)
        except Exception:
            log.error("shop creation failed, removing auth user_id=%s", user_id)
            try:
                self.identity.delete_user(user_id)
            except AuthError as e:
                log.error("orphan auth user_id=%s left behind: %s", user_id, e)
            raise

        log.info("shop created shop_id=%s manager_id=%s", shop_id, user_id)
        return shop_id, user_id

    def command_center(self, conn: Connection, ctx: RequestContext) -> list[ShopCard]:
        require_owner(ctx)
        shops = self.shop_repo.list(conn)
        managers = {p.shop_id: p for p in self.profile_repo.list_managers(conn)}
        workers = self.worker_repo.list_all(conn)
        try:
            emails = self.identity.list_users()
        except AuthError as e:
            log.warning("could not list auth users: %s", e)
            emails = {}

        cards = []
        for shop in shops:
            manager = managers.get(shop.id)
            cards.append(
                ShopCard(
                    shop=shop,
                    manager=manager,
                    manager_email=emails.get(manager.id, "Email not found") if manager else "",
                    workers=[w for w in workers if w.shop_id == shop.id],
                )
            )
        return cards

    def delete_shop(self, conn: Connection, ctx: RequestContext, shop_id: int) -> None:
        """Remove a shop with its orders, payments, expenses, workers and manager."""
        require_owner(ctx)
        shop = self.shop_repo.get(conn, shop_id)
        if shop is None:
            raise NotFoundError(f"Shop not found: {shop_id}")

        manager = self.profile_repo.get_manager_for_shop(conn, shop_id)
        order_ids = self.order_repo.ids_for_shop(conn, shop_id)
        self.payment_repo.delete_for_orders(conn, order_ids)
        self.order_repo.delete_for_shop(conn, shop_id)
        self.expense_repo.delete_for_shop(conn, shop_id)
        self.worker_repo.delete_for_shop(conn, shop_id)
        if manager:
            self.profile_repo.delete(conn, manager.id)
        self.shop_repo.delete(conn, shop_id)

        if manager:
            try:
                self.identity.delete_user(manager.id)
            except AuthError as e:
                log.warning("auth user for manager_id=%s not removed: %s", manager.id, e)

        log.info("shop deleted shop_id=%s orders=%d", shop_id, len(order_ids))

    def remove_manager(self, conn: Connection, ctx: RequestContext, user_id: str) -> None:
        require_owner(ctx)
        profile = self.profile_repo.get(conn, user_id)
        if profile is None or profile.role != Role.MANAGER:
            raise NotFoundError(f"Manager not found: {user_id}")
        # row first: a failed login removal rolls it back
        self.profile_repo.delete(conn, user_id)
        self.identity.delete_user(user_id)
        log.info("manager removed user_id=%s", user_id)

    def reset_password(self, ctx: RequestContext, user_id: str, password: str) -> None:
        require_owner(ctx)
        self.identity.update_password(user_id, password)
        log.info("password reset user_id=%s", user_id)

    def add_worker(self, conn: Connection, ctx: RequestContext, *, name: str, phone_number: str | None) -> str:
        shop_id = require_shop(ctx)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter worker name.")
        worker_id = self.worker_repo.create(conn, shop_id=shop_id, name=name, phone_number=(phone_number or "").strip() or None)
        log.info("worker added worker_id=%s shop_id=%s", worker_id, shop_id)
        return worker_id

    def workers(self, conn: Connection, ctx: RequestContext) -> list[WorkerLoad]:
        shop_id = require_shop(ctx)
        counts = self.order_repo.active_counts_by_worker(conn, shop_id)
        return [WorkerLoad(w, counts.get(w.id, 0)) for w in self.worker_repo.list_for_shop(conn, shop_id)]

    def delete_worker(self, conn: Connection, ctx: RequestContext, worker_id: str) -> None:
        worker = self.worker_repo.get(conn, worker_id)
        if worker is None:
            raise NotFoundError(f"Worker not found: {worker_id}")
        if not ctx.is_owner and worker.shop_id != ctx.shop_id:
            raise NotFoundError(f"Worker not found: {worker_id}")
        if self.order_repo.count_active_for_worker(conn, worker_id) > 0:
            raise ValidationError("Cannot delete worker with active assignments. Reassign orders first.")
        self.worker_repo.delete(conn, worker_id)
        log.info("worker deleted worker_id=%s", worker_id)
