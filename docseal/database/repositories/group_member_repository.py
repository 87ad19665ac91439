from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import GroupMemberRecord
from docseal.database.repositories.base import BaseGroupMemberRepository


class GroupMemberRepository(BaseGroupMemberRepository):
    """Read-only lookups on the group_members table."""

    def find_by_group_and_user(self, group_id: int, user_id: str) -> GroupMemberRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT group_id, user_id, role
                    FROM group_members
                    WHERE group_id = %s AND user_id = %s
                    """,
                    (group_id, user_id),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return GroupMemberRecord(group_id=row["group_id"], user_id=row["user_id"], role=row["role"])
