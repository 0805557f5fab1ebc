from __future__ import annotations

from psycopg import Connection

from ..db import row_as_dict, rows_as_dicts
from ..domain import Shop


class ShopRepository:
    def create(self, conn: Connection, *, name: str) -> int:
        cur = conn.execute("INSERT INTO shops(name) VALUES (%s) RETURNING id;", (name,))
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, shop_id: int) -> Shop | None:
        cur = conn.execute("SELECT id, name, created_at FROM shops WHERE id = %s;", (shop_id,))
        row = row_as_dict(cur)
        return Shop(**row) if row else None

    def list(self, conn: Connection) -> list[Shop]:
        cur = conn.execute("SELECT id, name, created_at FROM shops ORDER BY name;")
        return [Shop(**r) for r in rows_as_dicts(cur)]

    def delete(self, conn: Connection, shop_id: int) -> None:
        conn.execute("DELETE FROM shops WHERE id = %s;", (shop_id,))
