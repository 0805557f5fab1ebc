from __future__ import annotations

from dataclasses import dataclass, field

from ..auth import IdentityClient
from ..config import BrandingConfig
from ..repositories.expense_repo import ExpenseRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.payment_repo import PaymentRepository
from ..repositories.profile_repo import ProfileRepository
from ..repositories.shop_repo import ShopRepository
from ..repositories.worker_repo import WorkerRepository
from .expense_service import ExpenseService
from .order_service import OrderService
from .shop_service import ShopService


@dataclass
class Repos:
    shops: ShopRepository = field(default_factory=ShopRepository)
    profiles: ProfileRepository = field(default_factory=ProfileRepository)
    workers: WorkerRepository = field(default_factory=WorkerRepository)
    orders: OrderRepository = field(default_factory=OrderRepository)
    payments: PaymentRepository = field(default_factory=PaymentRepository)
    expenses: ExpenseRepository = field(default_factory=ExpenseRepository)


@dataclass
class Services:
    repos: Repos
    orders: OrderService
    shops: ShopService
    expenses: ExpenseService


def build_services(repos: Repos, identity: IdentityClient, branding: BrandingConfig | None = None) -> Services:
    return Services(
        repos=repos,
        orders=OrderService(
            order_repo=repos.orders,
            payment_repo=repos.payments,
            worker_repo=repos.workers,
            shop_repo=repos.shops,
            branding=branding,
        ),
        shops=ShopService(
            shop_repo=repos.shops,
            profile_repo=repos.profiles,
            worker_repo=repos.workers,
            order_repo=repos.orders,
            payment_repo=repos.payments,
            expense_repo=repos.expenses,
            identity=identity,
        ),
        expenses=ExpenseService(expense_repo=repos.expenses),
    )
