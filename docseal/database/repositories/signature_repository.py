from datetime import datetime
from typing import Any

from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import SignatureRecord
from docseal.database.repositories.base import BaseSignatureRepository

_SIGNATURE_COLUMNS = """
    id, document_version_id, signer_id, status, page_number, position_x,
    position_y, width, height, image_ref, ip_address, user_agent, signed_at,
    created_at
"""


def _to_record(row: dict[str, Any]) -> SignatureRecord:
    return SignatureRecord(
        id=row["id"],
        document_version_id=row["document_version_id"],
        signer_id=row["signer_id"],
        status=row["status"],
        page_number=row["page_number"],
        position_x=row["position_x"],
        position_y=row["position_y"],
        width=row["width"],
        height=row["height"],
        image_ref=row["image_ref"],
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        signed_at=row["signed_at"],
        created_at=row["created_at"],
    )


class SignatureRepository(BaseSignatureRepository):
    """Database operations for the signatures table."""

    def find_by_id(self, signature_id: str) -> SignatureRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_SIGNATURE_COLUMNS} FROM signatures WHERE id = %s",
                    (signature_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def find_by_signer_and_version(
        self, signer_id: str, version_id: str
    ) -> SignatureRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SIGNATURE_COLUMNS}
                    FROM signatures
                    WHERE signer_id = %s AND document_version_id = %s
                    ORDER BY (status = 'draft') DESC, created_at DESC
                    LIMIT 1
                    """,
                    (signer_id, version_id),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def find_all_by_version_id(self, version_id: str) -> list[SignatureRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SIGNATURE_COLUMNS}
                    FROM signatures
                    WHERE document_version_id = %s
                    ORDER BY created_at, id
                    """,
                    (version_id,),
                )
                rows = cur.fetchall()

        return [_to_record(row) for row in rows]

    def create(self, signature: SignatureRecord) -> SignatureRecord:
        """Insert a signature row.

        A draft for a (signer, version) pair that already has one is folded
        into the existing row, which keeps its original id.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO signatures
                        (id, document_version_id, signer_id, status, page_number,
                         position_x, position_y, width, height, image_ref,
                         ip_address, user_agent, signed_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (signer_id, document_version_id) WHERE status = 'draft'
                    DO UPDATE SET
                        page_number = EXCLUDED.page_number,
                        position_x = EXCLUDED.position_x,
                        position_y = EXCLUDED.position_y,
                        width = EXCLUDED.width,
                        height = EXCLUDED.height,
                        image_ref = EXCLUDED.image_ref
                    RETURNING {_SIGNATURE_COLUMNS}
                    """,
                    (
                        signature.id,
                        signature.document_version_id,
                        signature.signer_id,
                        signature.status,
                        signature.page_number,
                        signature.position_x,
                        signature.position_y,
                        signature.width,
                        signature.height,
                        signature.image_ref,
                        signature.ip_address,
                        signature.user_agent,
                        signature.signed_at,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        return _to_record(row)

    def update_draft(
        self,
        signature_id: str,
        *,
        page_number: int,
        position_x: float,
        position_y: float,
        width: float,
        height: float,
        image_ref: str | None = None,
    ) -> SignatureRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE signatures
                    SET page_number = %s,
                        position_x = %s,
                        position_y = %s,
                        width = %s,
                        height = %s,
                        image_ref = COALESCE(%s, image_ref)
                    WHERE id = %s AND status = 'draft'
                    RETURNING {_SIGNATURE_COLUMNS}
                    """,
                    (
                        page_number,
                        position_x,
                        position_y,
                        width,
                        height,
                        image_ref,
                        signature_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            return None
        return _to_record(row)

    def finalize_with_assignment(
        self,
        signature_id: str,
        document_id: str,
        *,
        ip_address: str | None,
        user_agent: str | None,
        signed_at: datetime,
    ) -> SignatureRecord | None:
        """Promote a draft and tick the signer's pending assignment together.

        Both rows change in one transaction. If the signature is not a draft
        or the assignment is not pending, the transaction is rolled back and
        None is returned.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE signatures
                    SET status = 'final',
                        ip_address = %s,
                        user_agent = %s,
                        signed_at = %s
                    WHERE id = %s AND status = 'draft'
                    RETURNING {_SIGNATURE_COLUMNS}
                    """,
                    (ip_address, user_agent, signed_at, signature_id),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    return None

                cur.execute(
                    """
                    UPDATE group_signer_assignments
                    SET status = 'signed', signature_id = %s
                    WHERE document_id = %s AND user_id = %s AND status = 'pending'
                    """,
                    (signature_id, document_id, row["signer_id"]),
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    return None
            conn.commit()

        return _to_record(row)

    def delete_draft(self, signature_id: str) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM signatures WHERE id = %s AND status = 'draft'",
                    (signature_id,),
                )
                deleted = cur.rowcount > 0
            conn.commit()

        return deleted

    def delete_by_version(self, version_id: str) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM signatures WHERE document_version_id = %s",
                    (version_id,),
                )
                deleted = cur.rowcount
            conn.commit()

        return deleted
