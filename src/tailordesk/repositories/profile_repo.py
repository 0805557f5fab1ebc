from __future__ import annotations

from psycopg import Connection

from ..db import row_as_dict, rows_as_dicts
from ..domain import Role, UserProfile


def profile_from_row(row: dict) -> UserProfile:
    return UserProfile(
        id=str(row["id"]),
        full_name=row["full_name"],
        role=Role(row["role"]),
        shop_id=row.get("shop_id"),
        created_at=row.get("created_at"),
    )


class ProfileRepository:
    def create(self, conn: Connection, *, user_id: str, full_name: str, role: Role, shop_id: int | None) -> None:
        conn.execute(
            """
            INSERT INTO user_profiles(id, full_name, role, shop_id)
            VALUES (%s, %s, %s, %s);
            """,
            (user_id, full_name, Role(role).value, shop_id),
        )

    def get(self, conn: Connection, user_id: str) -> UserProfile | None:
        cur = conn.execute(
            "SELECT id, full_name, role, shop_id, created_at FROM user_profiles WHERE id = %s;",
            (user_id,),
        )
        row = row_as_dict(cur)
        return profile_from_row(row) if row else None

    def list_managers(self, conn: Connection) -> list[UserProfile]:
        cur = conn.execute(
            "SELECT id, full_name, role, shop_id, created_at FROM user_profiles WHERE role = %s;",
            (Role.MANAGER.value,),
        )
        return [profile_from_row(r) for r in rows_as_dicts(cur)]

    def get_manager_for_shop(self, conn: Connection, shop_id: int) -> UserProfile | None:
        cur = conn.execute(
            """
            SELECT id, full_name, role, shop_id, created_at
            FROM user_profiles
            WHERE shop_id = %s AND role = %s
            LIMIT 1;
            """,
            (shop_id, Role.MANAGER.value),
        )
        row = row_as_dict(cur)
        return profile_from_row(row) if row else None

    def delete(self, conn: Connection, user_id: str) -> None:
        conn.execute("DELETE FROM user_profiles WHERE id = %s;", (user_id,))
