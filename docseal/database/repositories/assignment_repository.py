from collections.abc import Iterable

from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import SignerAssignmentRecord
from docseal.database.repositories.base import BaseSignerAssignmentRepository


class SignerAssignmentRepository(BaseSignerAssignmentRepository):
    """Database operations for the group_signer_assignments table."""

    def create_assignments(self, document_id: str, user_ids: Iterable[str]) -> int:
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return 0

        created = 0
        with get_connection() as conn:
            with conn.cursor() as cur:
                for user_id in user_ids:
                    cur.execute(
                        """
                        INSERT INTO group_signer_assignments (document_id, user_id, status)
                        VALUES (%s, %s, 'pending')
                        ON CONFLICT (document_id, user_id) DO NOTHING
                        """,
                        (document_id, user_id),
                    )
                    created += cur.rowcount
            conn.commit()

        return created

    def find_pending(self, document_id: str, user_id: str) -> SignerAssignmentRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, user_id, status, signature_id
                    FROM group_signer_assignments
                    WHERE document_id = %s AND user_id = %s AND status = 'pending'
                    """,
                    (document_id, user_id),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return SignerAssignmentRecord(**row)

    def find_all_by_document_id(self, document_id: str) -> list[SignerAssignmentRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, user_id, status, signature_id
                    FROM group_signer_assignments
                    WHERE document_id = %s
                    ORDER BY created_at, user_id
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()

        return [SignerAssignmentRecord(**row) for row in rows]

    def count_pending(self, document_id: str) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*)
                    FROM group_signer_assignments
                    WHERE document_id = %s AND status = 'pending'
                    """,
                    (document_id,),
                )
                row = cur.fetchone()

        return int(row[0]) if row else 0

    def reset_signers(self, document_id: str) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE group_signer_assignments
                    SET status = 'pending', signature_id = NULL
                    WHERE document_id = %s
                    """,
                    (document_id,),
                )
                reset = cur.rowcount
            conn.commit()

        return reset
