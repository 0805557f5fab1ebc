from __future__ import annotations

import logging
from typing import Any

from psycopg import Connection

from ..auth import RequestContext, require_shop
from ..domain import Expense
from ..errors import ValidationError
from ..ledger import to_money
from ..repositories.expense_repo import ExpenseRepository

log = logging.getLogger(__name__)

EXPENSE_CATEGORIES = (
    "Salaries",
    "Rent",
    "Utilities",
    "Materials",
    "Supplies",
    "Equipment",
    "Maintenance",
    "Marketing",
    "Transport",
    "Other",
)


class ExpenseService:
    def __init__(self, *, expense_repo: ExpenseRepository) -> None:
        self.expense_repo = expense_repo

    def add_expense(
        self,
        conn: Connection,
        ctx: RequestContext,
        *,
        item_name: str | None,
        amount: Any,
        category: str,
        notes: str | None = None,
    ) -> int:
        shop_id = require_shop(ctx)
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Expense amount cannot be negative.")
        category = (category or "").strip()
        if not category:
            raise ValidationError("Expense category is required.")

        expense_id = self.expense_repo.create(
            conn,
            shop_id=shop_id,
            manager_id=ctx.user_id,
            item_name=(item_name or "").strip() or "General",
            amount=amount,
            category=category,
            notes=(notes or "").strip(),
        )
        log.info("expense added expense_id=%s amount=%s category=%s", expense_id, amount, category)
        return expense_id

    def list_expenses(self, conn: Connection, ctx: RequestContext) -> list[Expense]:
        return self.expense_repo.list_for_shop(conn, require_shop(ctx))
