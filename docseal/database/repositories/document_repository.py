from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import DocumentRecord, DocumentVersionRecord, SignatureRecord
from docseal.database.repositories.base import BaseDocumentRepository
from docseal.exceptions import NotFoundError

_DOCUMENT_COLUMNS = """
    id, title, status, owner_id, current_version_id, group_id,
    signed_file_ref, finalizing, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        title=row["title"],
        status=row["status"],
        owner_id=row["owner_id"],
        current_version_id=row["current_version_id"],
        group_id=row["group_id"],
        signed_file_ref=row["signed_file_ref"],
        finalizing=row["finalizing"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def write_signed_version(
    cur: psycopg.Cursor[Any],
    version: DocumentVersionRecord,
    signatures: Sequence[SignatureRecord],
    *,
    status: str,
    signed_file_ref: str,
) -> tuple[DocumentRecord, datetime]:
    """Insert a sealed version and its final signatures, then move the pointer.

    Runs on the caller's cursor so the caller owns the transaction. Returns the
    updated document and the version's created_at.

    Raises:
        NotFoundError: if the document does not exist.
    """
    cur.execute(
        """
        INSERT INTO document_versions
            (id, document_id, uploader_id, storage_ref, source_hash,
             signed_hash, parent_version_id)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING created_at
        """,
        (
            version.id,
            version.document_id,
            version.uploader_id,
            version.storage_ref,
            version.source_hash,
            version.signed_hash,
            version.parent_version_id,
        ),
    )
    created_at = cur.fetchone()["created_at"]

    for signature in signatures:
        cur.execute(
            """
            INSERT INTO signatures
                (id, document_version_id, signer_id, status, page_number,
                 position_x, position_y, width, height, image_ref,
                 ip_address, user_agent, signed_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                signature.id,
                version.id,
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

    cur.execute(
        f"""
        UPDATE documents
        SET current_version_id = %s,
            status = %s,
            signed_file_ref = %s,
            updated_at = NOW()
        WHERE id = %s
        RETURNING {_DOCUMENT_COLUMNS}
        """,
        (version.id, status, signed_file_ref, version.document_id),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError(f"Document {version.document_id} not found")
    return _to_record(row), created_at


class DocumentRepository(BaseDocumentRepository):
    """Database operations for the documents table."""

    def find_by_id(self, document_id: str) -> DocumentRecord:
        """Find a document by ID.

        Raises:
            NotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Document {document_id} not found")
        return _to_record(row)

    def create_with_first_version(
        self,
        document: DocumentRecord,
        version: DocumentVersionRecord,
    ) -> DocumentRecord:
        """Insert the document, its original version and the pointer in one transaction."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO documents (id, title, status, owner_id, group_id)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        document.id,
                        document.title,
                        document.status,
                        document.owner_id,
                        document.group_id,
                    ),
                )
                cur.execute(
                    """
                    INSERT INTO document_versions
                        (id, document_id, uploader_id, storage_ref, source_hash)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        version.id,
                        version.document_id,
                        version.uploader_id,
                        version.storage_ref,
                        version.source_hash,
                    ),
                )
                cur.execute(
                    f"""
                    UPDATE documents
                    SET current_version_id = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_DOCUMENT_COLUMNS}
                    """,
                    (version.id, document.id),
                )
                row = cur.fetchone()
            conn.commit()

        return _to_record(row)

    def update_pointer(
        self,
        document_id: str,
        *,
        current_version_id: str,
        status: str,
        signed_file_ref: str | None,
    ) -> DocumentRecord:
        """Move the current-version pointer, status and signed file reference together.

        Raises:
            NotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE documents
                    SET current_version_id = %s,
                        status = %s,
                        signed_file_ref = %s,
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_DOCUMENT_COLUMNS}
                    """,
                    (current_version_id, status, signed_file_ref, document_id),
                )
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError(f"Document {document_id} not found")
            conn.commit()

        return _to_record(row)

    def record_signed_version(
        self,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        status: str,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        """Write a sealed version, its signatures and the new pointer in one transaction.

        Raises:
            NotFoundError: if the document does not exist. Nothing is written.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                document, created_at = write_signed_version(
                    cur, version, signatures, status=status, signed_file_ref=signed_file_ref
                )
            conn.commit()

        return document, replace(version, created_at=created_at)

    def set_status(self, document_id: str, status: str) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (status, document_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Document {document_id} not found")
            conn.commit()

    def claim_finalization(self, document_id: str) -> bool:
        """Claim the document for finalization in a single conditional UPDATE."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET finalizing = TRUE, updated_at = NOW()
                    WHERE id = %s
                      AND status <> 'completed'
                      AND NOT finalizing
                      AND NOT EXISTS (
                          SELECT 1 FROM group_signer_assignments
                          WHERE document_id = %s AND status = 'pending'
                      )
                    RETURNING id
                    """,
                    (document_id, document_id),
                )
                claimed = cur.fetchone() is not None
            conn.commit()

        return claimed

    def complete_finalization(
        self,
        document_id: str,
        *,
        current_version_id: str,
        signed_file_ref: str,
    ) -> DocumentRecord:
        """Release the claim and mark the document completed.

        Raises:
            NotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE documents
                    SET current_version_id = %s,
                        status = 'completed',
                        signed_file_ref = %s,
                        finalizing = FALSE,
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_DOCUMENT_COLUMNS}
                    """,
                    (current_version_id, signed_file_ref, document_id),
                )
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError(f"Document {document_id} not found")
            conn.commit()

        return _to_record(row)

    def release_finalization(self, document_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE documents
                SET finalizing = FALSE, updated_at = NOW()
                WHERE id = %s
                """,
                (document_id,),
            )
            conn.commit()
