from collections.abc import Iterable

from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import UserRecord
from docseal.database.repositories.base import BaseUserRepository


class UserRepository(BaseUserRepository):
    """Read-only lookups on the users table."""

    def find_by_ids(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, name, email FROM users WHERE id = ANY(%s)",
                    (ids,),
                )
                rows = cur.fetchall()

        return {
            row["id"]: UserRecord(id=row["id"], name=row["name"], email=row["email"])
            for row in rows
        }
