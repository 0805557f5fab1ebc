from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..db import row_as_dict, rows_as_dicts
from ..domain import Order, OrderStatus, parse_measurements, parse_squad

ORDER_COLUMNS = """
    id, shop_id, manager_id, customer_name, customer_phone, garment_type, price,
    due_date, status, worker_id, additional_workers, measurements_details,
    customer_preferences, created_at, updated_at
"""

SHOP_LIST_MODES = ("open", "all", "urgent")
ADMIN_LIST_MODES = ("current", "all")


def order_from_row(row: dict) -> Order:
    return Order(
        id=str(row["id"]) if row.get("id") is not None else None,
        shop_id=row.get("shop_id"),
        manager_id=str(row["manager_id"]) if row.get("manager_id") else None,
        customer_name=row.get("customer_name") or "",
        customer_phone=row.get("customer_phone") or "",
        garment_type=row.get("garment_type") or "",
        price=Decimal(row.get("price") or 0),
        due_date=row.get("due_date"),
        status=int(row.get("status") or OrderStatus.ASSIGNED),
        worker_id=str(row["worker_id"]) if row.get("worker_id") else None,
        squad=parse_squad(row.get("additional_workers")),
        measurements=parse_measurements(row.get("measurements_details")),
        customer_preferences=row.get("customer_preferences") or "",
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class OrderRepository:
    def create(
        self,
        conn: Connection,
        *,
        shop_id: int,
        manager_id: str | None,
        customer_name: str,
        customer_phone: str,
        garment_type: str,
        price: Decimal,
        due_date: date | None,
        worker_id: str | None,
        squad: list[str],
        measurements: dict,
        customer_preferences: str,
        status: int = OrderStatus.ASSIGNED,
    ) -> str:
        cur = conn.execute(
            """
            INSERT INTO orders(shop_id, manager_id, customer_name, customer_phone, garment_type, price,
                               due_date, status, worker_id, additional_workers, measurements_details,
                               customer_preferences)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                shop_id,
                manager_id,
                customer_name,
                customer_phone,
                garment_type,
                price,
                due_date,
                int(status),
                worker_id,
                Jsonb(list(squad)),
                Jsonb(measurements),
                customer_preferences,
            ),
        )
        return str(cur.fetchone()[0])

    def get(self, conn: Connection, order_id: str) -> Order | None:
        cur = conn.execute(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = %s;", (order_id,))
        row = row_as_dict(cur)
        return order_from_row(row) if row else None

    def update(
        self,
        conn: Connection,
        *,
        order_id: str,
        customer_name: str,
        customer_phone: str,
        garment_type: str,
        price: Decimal,
        due_date: date | None,
        status: int,
        worker_id: str | None,
        squad: list[str],
        measurements: dict,
        customer_preferences: str,
    ) -> None:
        conn.execute(
            """
            UPDATE orders SET
              customer_name = %s, customer_phone = %s, garment_type = %s, price = %s,
              due_date = %s, status = %s, worker_id = %s, additional_workers = %s,
              measurements_details = %s, customer_preferences = %s, updated_at = now()
            WHERE id = %s;
            """,
            (
                customer_name,
                customer_phone,
                garment_type,
                price,
                due_date,
                int(status),
                worker_id,
                Jsonb(list(squad)),
                Jsonb(measurements),
                customer_preferences,
                order_id,
            ),
        )

    def set_status(self, conn: Connection, *, order_id: str, status: int) -> None:
        conn.execute(
            "UPDATE orders SET status = %s, updated_at = now() WHERE id = %s;",
            (int(status), order_id),
        )

    def list_for_shop(
        self,
        conn: Connection,
        shop_id: int,
        *,
        mode: str = "open",
        status: int | None = None,
        worker_id: str | None = None,
    ) -> list[Order]:
        where = ["shop_id = %s"]
        params: list = [shop_id]
        if mode in ("open", "urgent"):
            where.append("status <> %s")
            params.append(int(OrderStatus.CLOSED))
        if status is not None and mode != "urgent":
            where.append("status = %s")
            params.append(int(status))
        if worker_id:
            # lead worker, or a member of the squad
            where.append("(worker_id = %s OR additional_workers @> %s::jsonb)")
            params.extend([worker_id, json.dumps([worker_id])])

        cur = conn.execute(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {' AND '.join(where)} ORDER BY due_date ASC NULLS LAST;",
            params,
        )
        return [order_from_row(r) for r in rows_as_dicts(cur)]

    def list_for_worker(self, conn: Connection, worker_id: str, shop_id: int) -> list[Order]:
        cur = conn.execute(
            f"""
            SELECT {ORDER_COLUMNS} FROM orders
            WHERE worker_id = %s AND shop_id = %s AND status <> %s
            ORDER BY due_date ASC NULLS LAST;
            """,
            (worker_id, shop_id, int(OrderStatus.CLOSED)),
        )
        return [order_from_row(r) for r in rows_as_dicts(cur)]

    def list_all(self, conn: Connection, *, mode: str = "current", shop_id: int | None = None, limit: int = 500) -> list[Order]:
        where = ["TRUE"]
        params: list = []
        if mode == "current":
            where.append("status <> %s")
            params.append(int(OrderStatus.CLOSED))
        if shop_id is not None:
            where.append("shop_id = %s")
            params.append(shop_id)
        params.append(limit)
        cur = conn.execute(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {' AND '.join(where)} ORDER BY created_at DESC LIMIT %s;",
            params,
        )
        return [order_from_row(r) for r in rows_as_dicts(cur)]

    def list_pending_closure(self, conn: Connection, shop_id: int | None = None) -> list[Order]:
        where = "status = %s"
        params: list = [int(OrderStatus.COLLECTED)]
        if shop_id is not None:
            where += " AND shop_id = %s"
            params.append(shop_id)
        cur = conn.execute(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {where} ORDER BY created_at DESC;",
            params,
        )
        return [order_from_row(r) for r in rows_as_dicts(cur)]

    def count_active_for_worker(self, conn: Connection, worker_id: str) -> int:
        cur = conn.execute(
            "SELECT COUNT(*) FROM orders WHERE worker_id = %s AND status <> %s;",
            (worker_id, int(OrderStatus.CLOSED)),
        )
        return int(cur.fetchone()[0])

    def active_counts_by_worker(self, conn: Connection, shop_id: int) -> dict[str, int]:
        cur = conn.execute(
            """
            SELECT worker_id, COUNT(*) AS pending
            FROM orders
            WHERE shop_id = %s AND status <> %s AND worker_id IS NOT NULL
            GROUP BY worker_id;
            """,
            (shop_id, int(OrderStatus.CLOSED)),
        )
        return {str(r["worker_id"]): int(r["pending"]) for r in rows_as_dicts(cur)}

    def ids_for_shop(self, conn: Connection, shop_id: int) -> list[str]:
        cur = conn.execute("SELECT id FROM orders WHERE shop_id = %s;", (shop_id,))
        return [str(r[0]) for r in cur.fetchall()]

    def delete_for_shop(self, conn: Connection, shop_id: int) -> None:
        conn.execute("DELETE FROM orders WHERE shop_id = %s;", (shop_id,))

    def analytics_rows(self, conn: Connection, shop_id: int | None = None) -> list[dict]:
        sql = "SELECT id, shop_id, garment_type, price, status, created_at FROM orders"
        params: tuple = ()
        if shop_id is not None:
            sql += " WHERE shop_id = %s"
            params = (shop_id,)
        cur = conn.execute(sql + ";", params)
        return rows_as_dicts(cur)
