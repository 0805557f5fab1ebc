from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..db import rows_as_dicts
from ..domain import Payment


def payment_from_row(row: dict) -> Payment:
    return Payment(
        id=row.get("id"),
        order_id=str(row["order_id"]),
        amount=Decimal(row.get("amount") or 0),
        recorded_at=row.get("recorded_at"),
        manager_id=str(row["manager_id"]) if row.get("manager_id") else None,
        notes=row.get("notes"),
    )


class PaymentRepository:
    def create(
        self,
        conn: Connection,
        *,
        order_id: str,
        amount: Decimal,
        manager_id: str | None = None,
        notes: str | None = None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO payments(order_id, amount, manager_id, notes)
            VALUES (%s, %s, %s, %s)
            RETURNING id;
            """,
            (order_id, amount, manager_id, notes),
        )
        return int(cur.fetchone()[0])

    def list_for_order(self, conn: Connection, order_id: str) -> list[Payment]:
        cur = conn.execute(
            """
            SELECT id, order_id, amount, recorded_at, manager_id, notes
            FROM payments
            WHERE order_id = %s
            ORDER BY recorded_at DESC;
            """,
            (order_id,),
        )
        return [payment_from_row(r) for r in rows_as_dicts(cur)]

    def list_for_orders(self, conn: Connection, order_ids: list[str]) -> dict[str, list[Payment]]:
        by_order: dict[str, list[Payment]] = {oid: [] for oid in order_ids}
        if not order_ids:
            return by_order
        cur = conn.execute(
            """
            SELECT id, order_id, amount, recorded_at, manager_id, notes
            FROM payments
            WHERE order_id = ANY(%s::uuid[]);
            """,
            (list(order_ids),),
        )
        for r in rows_as_dicts(cur):
            p = payment_from_row(r)
            by_order.setdefault(p.order_id, []).append(p)
        return by_order

    def delete_for_orders(self, conn: Connection, order_ids: list[str]) -> None:
        if not order_ids:
            return
        conn.execute("DELETE FROM payments WHERE order_id = ANY(%s::uuid[]);", (list(order_ids),))

    def analytics_rows(self, conn: Connection, shop_id: int | None = None) -> list[dict]:
        sql = """
            SELECT p.amount, p.recorded_at, o.shop_id
            FROM payments p
            JOIN orders o ON o.id = p.order_id
        """
        params: tuple = ()
        if shop_id is not None:
            sql += " WHERE o.shop_id = %s"
            params = (shop_id,)
        cur = conn.execute(sql + " ORDER BY p.recorded_at;", params)
        return rows_as_dicts(cur)
