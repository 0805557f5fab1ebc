from __future__ import annotations

from psycopg import Connection

from ..db import row_as_dict, rows_as_dicts
from ..domain import Worker


def worker_from_row(row: dict) -> Worker:
    return Worker(
        id=str(row["id"]),
        shop_id=row["shop_id"],
        name=row["name"],
        phone_number=row.get("phone_number"),
        created_at=row.get("created_at"),
    )


class WorkerRepository:
    def create(self, conn: Connection, *, shop_id: int, name: str, phone_number: str | None) -> str:
        cur = conn.execute(
            """
            INSERT INTO workers(shop_id, name, phone_number)
            VALUES (%s, %s, %s)
            RETURNING id;
            """,
            (shop_id, name, phone_number),
        )
        return str(cur.fetchone()[0])

    def get(self, conn: Connection, worker_id: str) -> Worker | None:
        cur = conn.execute(
            "SELECT id, shop_id, name, phone_number, created_at FROM workers WHERE id = %s;",
            (worker_id,),
        )
        row = row_as_dict(cur)
        return worker_from_row(row) if row else None

    def list_for_shop(self, conn: Connection, shop_id: int) -> list[Worker]:
        cur = conn.execute(
            """
            SELECT id, shop_id, name, phone_number, created_at
            FROM workers
            WHERE shop_id = %s
            ORDER BY name;
            """,
            (shop_id,),
        )
        return [worker_from_row(r) for r in rows_as_dicts(cur)]

    def list_all(self, conn: Connection) -> list[Worker]:
        cur = conn.execute("SELECT id, shop_id, name, phone_number, created_at FROM workers ORDER BY name;")
        return [worker_from_row(r) for r in rows_as_dicts(cur)]

    def get_names(self, conn: Connection, worker_ids: list[str]) -> dict[str, str]:
        if not worker_ids:
            return {}
        cur = conn.execute(
            "SELECT id, name FROM workers WHERE id = ANY(%s::uuid[]);",
            (list(worker_ids),),
        )
        return {str(r["id"]): r["name"] for r in rows_as_dicts(cur)}

    def delete(self, conn: Connection, worker_id: str) -> None:
        conn.execute("DELETE FROM workers WHERE id = %s;", (worker_id,))

    def delete_for_shop(self, conn: Connection, shop_id: int) -> None:
        conn.execute("DELETE FROM workers WHERE shop_id = %s;", (shop_id,))
