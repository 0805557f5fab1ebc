from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..db import rows_as_dicts
from ..domain import Expense


def expense_from_row(row: dict) -> Expense:
    return Expense(
        id=row.get("id"),
        shop_id=row["shop_id"],
        item_name=row.get("item_name") or "General",
        amount=Decimal(row.get("amount") or 0),
        category=row.get("category") or "Uncategorized",
        notes=row.get("notes") or "",
        manager_id=str(row["manager_id"]) if row.get("manager_id") else None,
        incurred_at=row.get("incurred_at"),
    )


class ExpenseRepository:
    def create(
        self,
        conn: Connection,
        *,
        shop_id: int,
        manager_id: str | None,
        item_name: str,
        amount: Decimal,
        category: str,
        notes: str,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO expenses(shop_id, manager_id, item_name, amount, category, notes)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (shop_id, manager_id, item_name, amount, category, notes),
        )
        return int(cur.fetchone()[0])

    def list_for_shop(self, conn: Connection, shop_id: int) -> list[Expense]:
        cur = conn.execute(
            """
            SELECT id, shop_id, manager_id, item_name, amount, category, notes, incurred_at
            FROM expenses
            WHERE shop_id = %s
            ORDER BY incurred_at DESC;
            """,
            (shop_id,),
        )
        return [expense_from_row(r) for r in rows_as_dicts(cur)]

    def list_recent(self, conn: Connection, limit: int = 100, shop_id: int | None = None) -> list[Expense]:
        where = ""
        params: list = []
        if shop_id is not None:
            where = "WHERE shop_id = %s"
            params.append(shop_id)
        params.append(limit)
        cur = conn.execute(
            f"""
            SELECT id, shop_id, manager_id, item_name, amount, category, notes, incurred_at
            FROM expenses
            {where}
            ORDER BY incurred_at DESC
            LIMIT %s;
            """,
            params,
        )
        return [expense_from_row(r) for r in rows_as_dicts(cur)]

    def analytics_rows(self, conn: Connection, shop_id: int | None = None) -> list[dict]:
        sql = "SELECT shop_id, category, amount FROM expenses"
        params: tuple = ()
        if shop_id is not None:
            sql += " WHERE shop_id = %s"
            params = (shop_id,)
        cur = conn.execute(sql + ";", params)
        return rows_as_dicts(cur)

    def delete_for_shop(self, conn: Connection, shop_id: int) -> None:
        conn.execute("DELETE FROM expenses WHERE shop_id = %s;", (shop_id,))
