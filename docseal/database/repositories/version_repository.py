from typing import Any

from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import DocumentVersionRecord, PinAttemptState
from docseal.database.repositories.base import BaseVersionRepository
from docseal.exceptions import NotFoundError

_VERSION_COLUMNS = """
    id, document_id, uploader_id, storage_ref, source_hash, signed_hash,
    access_code, retry_count, locked_until, parent_version_id, created_at
"""


def _to_record(row: dict[str, Any]) -> DocumentVersionRecord:
    return DocumentVersionRecord(
        id=row["id"],
        document_id=row["document_id"],
        uploader_id=row["uploader_id"],
        storage_ref=row["storage_ref"],
        source_hash=row["source_hash"],
        signed_hash=row["signed_hash"],
        access_code=row["access_code"],
        retry_count=row["retry_count"],
        locked_until=row["locked_until"],
        parent_version_id=row["parent_version_id"],
        created_at=row["created_at"],
    )


class VersionRepository(BaseVersionRepository):
    """Database operations for the document_versions table.

    signed_hash is only ever written by create(); there is no update path for
    it, and the schema trigger rejects one.
    """

    def find_by_id(self, version_id: str) -> DocumentVersionRecord:
        """Find a version by ID.

        Raises:
            NotFoundError: if no version with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_VERSION_COLUMNS} FROM document_versions WHERE id = %s",
                    (version_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Version {version_id} not found")
        return _to_record(row)

    def find_all_by_document_id(self, document_id: str) -> list[DocumentVersionRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_VERSION_COLUMNS}
                    FROM document_versions
                    WHERE document_id = %s
                    ORDER BY created_at, id
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()

        return [_to_record(row) for row in rows]

    def find_by_uploader_and_source_hash(
        self, uploader_id: str, source_hash: str
    ) -> DocumentVersionRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_VERSION_COLUMNS}
                    FROM document_versions
                    WHERE uploader_id = %s AND source_hash = %s
                    LIMIT 1
                    """,
                    (uploader_id, source_hash),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def create(self, version: DocumentVersionRecord) -> DocumentVersionRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO document_versions
                        (id, document_id, uploader_id, storage_ref, source_hash,
                         signed_hash, access_code, parent_version_id)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_VERSION_COLUMNS}
                    """,
                    (
                        version.id,
                        version.document_id,
                        version.uploader_id,
                        version.storage_ref,
                        version.source_hash,
                        version.signed_hash,
                        version.access_code,
                        version.parent_version_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        return _to_record(row)

    def register_failed_attempt(
        self,
        version_id: str,
        *,
        max_attempts: int,
        lockout_minutes: int,
    ) -> PinAttemptState | None:
        """Count a wrong PIN in one conditional UPDATE.

        A version whose lockout has expired starts a fresh cycle at 1, so the
        counter never exceeds max_attempts.

        Returns:
            The new counter state, or None when the version is time-locked.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE document_versions
                    SET retry_count = CASE
                            WHEN locked_until IS NOT NULL THEN 1
                            ELSE LEAST(retry_count + 1, %(max)s)
                        END,
                        locked_until = CASE
                            WHEN locked_until IS NULL AND retry_count + 1 >= %(max)s
                                THEN NOW() + make_interval(mins => %(mins)s)
                            WHEN locked_until IS NOT NULL AND 1 >= %(max)s
                                THEN NOW() + make_interval(mins => %(mins)s)
                            ELSE NULL
                        END
                    WHERE id = %(id)s
                      AND (locked_until IS NULL OR locked_until <= NOW())
                    RETURNING retry_count, locked_until
                    """,
                    {"max": max_attempts, "mins": lockout_minutes, "id": version_id},
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            return None
        return PinAttemptState(retry_count=row["retry_count"], locked_until=row["locked_until"])

    def reset_attempts(self, version_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE document_versions
                SET retry_count = 0, locked_until = NULL
                WHERE id = %s
                  AND (retry_count > 0 OR locked_until IS NOT NULL)
                """,
                (version_id,),
            )
            conn.commit()
