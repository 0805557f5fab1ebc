"""
Shared fixtures for the TailorDesk test suite.

Provides:
- In-memory repositories with the same methods as the psycopg ones
- A fake Db whose session()/transaction() yield a dummy connection
- A fake identity client standing in for the hosted auth API
- Ready-made owner and manager request contexts

No database or network access is needed.
"""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from tailordesk.auth import MIN_PASSWORD_LENGTH, AuthError, AuthSession, RequestContext
from tailordesk.config import AppConfig, AuthConfig, BrandingConfig, DbConfig
from tailordesk.db import DbError
from tailordesk.domain import Expense, Order, OrderStatus, Payment, Role, Shop, UserProfile, Worker
from tailordesk.services.registry import Repos, build_services


@dataclass
class Store:
    shops: dict = field(default_factory=dict)
    profiles: dict = field(default_factory=dict)
    workers: dict = field(default_factory=dict)
    orders: dict = field(default_factory=dict)
    payments: list = field(default_factory=list)
    expenses: list = field(default_factory=list)
    now: datetime = datetime(2026, 3, 10, 9, 0)
    seq: int = 0

    def next_id(self) -> int:
        self.seq += 1
        return self.seq

    def tick(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


class FakeConn:
    pass


class FakeDb:
    def __init__(self) -> None:
        self.conn = FakeConn()
        self.commits = 0
        self.rollbacks = 0
        self.fail_commit = False

    @contextmanager
    def session(self):
        yield self.conn

    @contextmanager
    def transaction(self):
        try:
            yield self.conn
        except Exception:
            self.rollbacks += 1
            raise
        if self.fail_commit:
            self.rollbacks += 1
            raise DbError("commit failed")
        self.commits += 1


class FakeShopRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, name):
        shop_id = self.store.next_id()
        self.store.shops[shop_id] = Shop(id=shop_id, name=name, created_at=self.store.tick())
        return shop_id

    def get(self, conn, shop_id):
        return self.store.shops.get(shop_id)

    def list(self, conn):
        return sorted(self.store.shops.values(), key=lambda s: s.name)

    def delete(self, conn, shop_id):
        self.store.shops.pop(shop_id, None)


class FakeProfileRepository:
    def __init__(self, store: Store) -> None:
        self.store = store
        self.fail_on_create = False

    def create(self, conn, *, user_id, full_name, role, shop_id):
        if self.fail_on_create:
            raise RuntimeError("insert failed")
        self.store.profiles[user_id] = UserProfile(id=user_id, full_name=full_name, role=Role(role), shop_id=shop_id)

    def get(self, conn, user_id):
        return self.store.profiles.get(user_id)

    def list_managers(self, conn):
        return [p for p in self.store.profiles.values() if p.role == Role.MANAGER]

    def get_manager_for_shop(self, conn, shop_id):
        for p in self.list_managers(conn):
            if p.shop_id == shop_id:
                return p
        return None

    def delete(self, conn, user_id):
        self.store.profiles.pop(user_id, None)


class FakeWorkerRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, shop_id, name, phone_number):
        worker_id = str(uuid.uuid4())
        self.store.workers[worker_id] = Worker(id=worker_id, shop_id=shop_id, name=name, phone_number=phone_number)
        return worker_id

    def get(self, conn, worker_id):
        return self.store.workers.get(worker_id)

    def list_for_shop(self, conn, shop_id):
        return sorted((w for w in self.store.workers.values() if w.shop_id == shop_id), key=lambda w: w.name)

    def list_all(self, conn):
        return sorted(self.store.workers.values(), key=lambda w: w.name)

    def get_names(self, conn, worker_ids):
        return {w: self.store.workers[w].name for w in worker_ids if w in self.store.workers}

    def delete(self, conn, worker_id):
        self.store.workers.pop(worker_id, None)

    def delete_for_shop(self, conn, shop_id):
        for w in [w for w in self.store.workers.values() if w.shop_id == shop_id]:
            del self.store.workers[w.id]


def _due_key(order: Order):
    return (order.due_date is None, order.due_date or date.max)


class FakeOrderRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, shop_id, manager_id, status=OrderStatus.ASSIGNED, squad, measurements, **fields):
        order_id = str(uuid.uuid4())
        now = self.store.tick()
        self.store.orders[order_id] = Order(
            id=order_id,
            shop_id=shop_id,
            manager_id=manager_id,
            status=int(status),
            squad=list(squad),
            measurements=dict(measurements),
            created_at=now,
            updated_at=now,
            **fields,
        )
        return order_id

    def get(self, conn, order_id):
        return self.store.orders.get(order_id)

    def update(self, conn, *, order_id, status, squad, measurements, **fields):
        order = self.store.orders[order_id]
        self.store.orders[order_id] = replace(
            order,
            status=int(status),
            squad=list(squad),
            measurements=dict(measurements),
            updated_at=self.store.tick(),
            **fields,
        )

    def set_status(self, conn, *, order_id, status):
        order = self.store.orders[order_id]
        self.store.orders[order_id] = replace(order, status=int(status), updated_at=self.store.tick())

    def list_for_shop(self, conn, shop_id, *, mode="open", status=None, worker_id=None):
        out = [o for o in self.store.orders.values() if o.shop_id == shop_id]
        if mode in ("open", "urgent"):
            out = [o for o in out if o.status != OrderStatus.CLOSED]
        if status is not None and mode != "urgent":
            out = [o for o in out if o.status == int(status)]
        if worker_id:
            out = [o for o in out if o.involves(worker_id)]
        return sorted(out, key=_due_key)

    def list_for_worker(self, conn, worker_id, shop_id):
        out = [
            o
            for o in self.store.orders.values()
            if o.worker_id == worker_id and o.shop_id == shop_id and o.status != OrderStatus.CLOSED
        ]
        return sorted(out, key=_due_key)

    def list_all(self, conn, *, mode="current", shop_id=None, limit=500):
        out = list(self.store.orders.values())
        if mode == "current":
            out = [o for o in out if o.status != OrderStatus.CLOSED]
        if shop_id is not None:
            out = [o for o in out if o.shop_id == shop_id]
        return sorted(out, key=lambda o: o.created_at, reverse=True)[:limit]

    def list_pending_closure(self, conn, shop_id=None):
        out = [o for o in self.store.orders.values() if o.status == OrderStatus.COLLECTED]
        if shop_id is not None:
            out = [o for o in out if o.shop_id == shop_id]
        return sorted(out, key=lambda o: o.created_at, reverse=True)

    def count_active_for_worker(self, conn, worker_id):
        return sum(1 for o in self.store.orders.values() if o.worker_id == worker_id and o.status != OrderStatus.CLOSED)

    def active_counts_by_worker(self, conn, shop_id):
        counts: dict = {}
        for o in self.store.orders.values():
            if o.shop_id == shop_id and o.worker_id and o.status != OrderStatus.CLOSED:
                counts[o.worker_id] = counts.get(o.worker_id, 0) + 1
        return counts

    def ids_for_shop(self, conn, shop_id):
        return [o.id for o in self.store.orders.values() if o.shop_id == shop_id]

    def delete_for_shop(self, conn, shop_id):
        for order_id in self.ids_for_shop(conn, shop_id):
            del self.store.orders[order_id]

    def analytics_rows(self, conn, shop_id=None):
        return [
            {
                "id": o.id,
                "shop_id": o.shop_id,
                "garment_type": o.garment_type,
                "price": o.price,
                "status": o.status,
                "created_at": o.created_at,
            }
            for o in self.store.orders.values()
            if shop_id is None or o.shop_id == shop_id
        ]


class FakePaymentRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, order_id, amount, manager_id=None, notes=None):
        payment_id = self.store.next_id()
        self.store.payments.append(
            Payment(
                id=payment_id,
                order_id=order_id,
                amount=Decimal(amount),
                recorded_at=self.store.tick(),
                manager_id=manager_id,
                notes=notes,
            )
        )
        return payment_id

    def list_for_order(self, conn, order_id):
        rows = [p for p in self.store.payments if p.order_id == order_id]
        return sorted(rows, key=lambda p: p.recorded_at, reverse=True)

    def list_for_orders(self, conn, order_ids):
        by_order = {oid: [] for oid in order_ids}
        for p in self.store.payments:
            if p.order_id in by_order:
                by_order[p.order_id].append(p)
        return by_order

    def delete_for_orders(self, conn, order_ids):
        ids = set(order_ids)
        self.store.payments = [p for p in self.store.payments if p.order_id not in ids]

    def analytics_rows(self, conn, shop_id=None):
        rows = []
        for p in self.store.payments:
            order = self.store.orders.get(p.order_id)
            if order is None or (shop_id is not None and order.shop_id != shop_id):
                continue
            rows.append({"amount": p.amount, "recorded_at": p.recorded_at, "shop_id": order.shop_id})
        return sorted(rows, key=lambda r: r["recorded_at"])


class FakeExpenseRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, shop_id, manager_id, item_name, amount, category, notes):
        expense_id = self.store.next_id()
        self.store.expenses.append(
            Expense(
                id=expense_id,
                shop_id=shop_id,
                item_name=item_name,
                amount=Decimal(amount),
                category=category,
                notes=notes,
                manager_id=manager_id,
                incurred_at=self.store.tick(),
            )
        )
        return expense_id

    def list_for_shop(self, conn, shop_id):
        rows = [e for e in self.store.expenses if e.shop_id == shop_id]
        return sorted(rows, key=lambda e: e.incurred_at, reverse=True)

    def list_recent(self, conn, limit=100, shop_id=None):
        rows = [e for e in self.store.expenses if shop_id is None or e.shop_id == shop_id]
        return sorted(rows, key=lambda e: e.incurred_at, reverse=True)[:limit]

    def analytics_rows(self, conn, shop_id=None):
        return [
            {"shop_id": e.shop_id, "category": e.category, "amount": e.amount}
            for e in self.store.expenses
            if shop_id is None or e.shop_id == shop_id
        ]

    def delete_for_shop(self, conn, shop_id):
        self.store.expenses = [e for e in self.store.expenses if e.shop_id != shop_id]


class FakeIdentity:
    """Stand-in for IdentityClient keeping accounts in a dict."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}
        self.deleted: list[str] = []
        self.signed_out: list[str] = []

    def add(self, email, password, user_id=None):
        user_id = user_id or str(uuid.uuid4())
        self.users[user_id] = {"email": email, "password": password}
        return user_id

    def sign_in(self, email, password):
        for user_id, u in self.users.items():
            if u["email"] == email and u["password"] == password:
                return AuthSession(user_id=user_id, email=email, access_token=f"token-{user_id}")
        raise AuthError("Invalid login credentials")

    def sign_out(self, access_token):
        self.signed_out.append(access_token)

    def create_user(self, email, password):
        if any(u["email"] == email for u in self.users.values()):
            raise AuthError("A user with this email address has already been registered")
        return self.add(email, password)

    def update_password(self, user_id, password):
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        if user_id not in self.users:
            raise AuthError("User not found")
        self.users[user_id]["password"] = password

    def delete_user(self, user_id):
        self.deleted.append(user_id)
        self.users.pop(user_id, None)

    def list_users(self):
        return {uid: u["email"] for uid, u in self.users.items()}


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def repos(store):
    return Repos(
        shops=FakeShopRepository(store),
        profiles=FakeProfileRepository(store),
        workers=FakeWorkerRepository(store),
        orders=FakeOrderRepository(store),
        payments=FakePaymentRepository(store),
        expenses=FakeExpenseRepository(store),
    )


@pytest.fixture
def db():
    return FakeDb()


@pytest.fixture
def conn(db):
    return db.conn


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def branding():
    return BrandingConfig(shop_display_name="Kamau Tailors", shop_phone="0700 111 222", currency_symbol="Ksh")


@pytest.fixture
def services(repos, identity, branding):
    return build_services(repos, identity, branding)


@pytest.fixture
def shop_id(repos, conn):
    return repos.shops.create(conn, name="Westlands")


@pytest.fixture
def other_shop_id(repos, conn):
    return repos.shops.create(conn, name="Kilimani")


@pytest.fixture
def owner_ctx(store, identity):
    user_id = identity.add("owner@example.com", "owner-pass")
    store.profiles[user_id] = UserProfile(id=user_id, full_name="Grace Owner", role=Role.OWNER, shop_id=None)
    return RequestContext(user_id=user_id, full_name="Grace Owner", role=Role.OWNER, shop_id=None)


@pytest.fixture
def manager_ctx(store, identity, shop_id):
    user_id = identity.add("manager@example.com", "manager-pass")
    store.profiles[user_id] = UserProfile(id=user_id, full_name="Peter Manager", role=Role.MANAGER, shop_id=shop_id)
    return RequestContext(user_id=user_id, full_name="Peter Manager", role=Role.MANAGER, shop_id=shop_id)


@pytest.fixture
def workers(repos, conn, shop_id):
    return [
        repos.workers.create(conn, shop_id=shop_id, name="Amina", phone_number="0711000001"),
        repos.workers.create(conn, shop_id=shop_id, name="Brian", phone_number=None),
        repos.workers.create(conn, shop_id=shop_id, name="Chebet", phone_number="0711000003"),
    ]


@pytest.fixture
def app_config():
    return AppConfig(
        name="TailorDesk",
        log_level="INFO",
        system_status="ACTIVE",
        secret_key="test-secret",
        db=DbConfig(host="localhost", port=5432, name="tailordesk", user="tailor", password="secret"),
        auth=AuthConfig(url="https://auth.example.com", anon_key="anon", service_role_key="service"),
        branding=BrandingConfig(shop_display_name="Kamau Tailors", currency_symbol="Ksh"),
    )
